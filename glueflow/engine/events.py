"""Lifecycle event sinks for workflow runs."""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class ExecutionEventEmitter(Protocol):
    """Receives ``execution.*`` and ``step.*`` lifecycle events."""

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        """Handle one event. Exceptions are logged by the caller and ignored."""


class LoggingEventEmitter:
    """Write every lifecycle event to a logger."""

    def __init__(self, log: Optional[logging.Logger] = None, level: int = logging.INFO) -> None:
        self._log = log or logger
        self._level = level

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        ids = {k: v for k, v in payload.items() if k.endswith("Id")}
        self._log.log(self._level, f"{event} {ids}")


class RecordingEventEmitter:
    """Keep emitted events in memory, in order."""

    def __init__(self) -> None:
        self.events: list[tuple[str, dict[str, Any]]] = []

    def emit(self, event: str, payload: dict[str, Any]) -> None:
        self.events.append((event, payload))

    def names(self) -> list[str]:
        return [name for name, _ in self.events]


def safe_emit(
    emitter: Optional[ExecutionEventEmitter],
    event: str,
    build_payload: Callable[[], dict[str, Any]],
) -> None:
    """Emit ``event`` if a sink is configured; sink failures never propagate.

    The payload is only built when there is a sink, and errors raised while
    building it (for example unserializable step output) are treated like
    sink failures.
    """
    if emitter is None:
        return
    try:
        emitter.emit(event, build_payload())
    except Exception as exc:
        logger.warning(f"Event sink failed while emitting {event}: {exc}")
