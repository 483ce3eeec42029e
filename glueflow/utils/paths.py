"""Dot-path helpers shared by the resolver and the step handlers."""

from __future__ import annotations

import json
from typing import Any, Iterable, Mapping


class _Missing:
    """Sentinel for a path that does not exist (distinct from ``None``)."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __bool__(self) -> bool:
        return False

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return "MISSING"


MISSING: Any = _Missing()


def get_path(obj: Any, path: str | Iterable[str]) -> Any:
    """Walk ``obj`` along a dot path; return ``MISSING`` when any segment is absent.

    Mappings are indexed by key and sequences by integer segment. An empty path
    returns ``obj`` itself.
    """
    parts = path.split(".") if isinstance(path, str) else list(path)
    current = obj
    for part in parts:
        if isinstance(current, Mapping):
            if part not in current:
                return MISSING
            current = current[part]
        elif isinstance(current, list) and part.isdigit():
            index = int(part)
            if index >= len(current):
                return MISSING
            current = current[index]
        else:
            return MISSING
    return current


def set_path(target: dict[str, Any], path: str, value: Any) -> None:
    """Assign ``value`` at a dot path, creating intermediate dicts."""
    *parents, last = path.split(".")
    current = target
    for part in parents:
        nested = current.get(part)
        if not isinstance(nested, dict):
            nested = {}
            current[part] = nested
        current = nested
    current[last] = value


def stringify(value: Any) -> str:
    """Render a resolved value for embedding inside a larger string."""
    if isinstance(value, str):
        return value
    if value is None or isinstance(value, (bool, dict, list)):
        return json.dumps(value, default=str)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
