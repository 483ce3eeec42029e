"""Built-in handlers for transformer and condition steps."""

from __future__ import annotations

from typing import Any, Mapping, Optional

from ..errors import ErrorCode, StepFailed
from ..utils.paths import MISSING, get_path, set_path, stringify


def transform(data: Mapping[str, Any], mapping: Mapping[str, str]) -> dict[str, Any]:
    """Build a new object by copying values from ``data``.

    ``mapping`` maps an output dot path to a source dot path. A missing source
    yields ``None`` at the output path.
    """
    result: dict[str, Any] = {}
    for output_path, source_path in mapping.items():
        if not isinstance(source_path, str):
            raise StepFailed(
                f"Mapping for {output_path!r} must be a dot path string",
                code=ErrorCode.INVALID_CONFIG.value,
            )
        value = get_path(data, source_path)
        set_path(result, output_path, None if value is MISSING else value)
    return result


def _strict_equals(left: Any, right: Any) -> bool:
    if isinstance(left, bool) != isinstance(right, bool):
        return False
    return left == right


def _compare(left: Any, right: Any, operator: str) -> bool:
    try:
        return left > right if operator == "gt" else left < right
    except TypeError:
        return False


def evaluate_condition(
    condition: Optional[Mapping[str, Any]], data: Mapping[str, Any]
) -> bool:
    """Evaluate a single ``{field, operator, value}`` predicate.

    Operators: ``eq``, ``ne``, ``gt``, ``lt``, ``contains``. An absent condition
    or an unknown operator evaluates to ``True``.
    """
    if not condition:
        return True

    field = condition.get("field")
    operator = condition.get("operator")
    expected = condition.get("value")
    actual = get_path(data, field) if isinstance(field, str) else MISSING
    if actual is MISSING:
        actual = None

    if operator == "eq":
        return _strict_equals(actual, expected)
    if operator == "ne":
        return not _strict_equals(actual, expected)
    if operator in ("gt", "lt"):
        return _compare(actual, expected, operator)
    if operator == "contains":
        return stringify(expected) in stringify(actual)
    return True
