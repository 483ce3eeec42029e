"""Trigger routing: turns webhooks, schedules and internal events into jobs."""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Tuple

from apscheduler.triggers.cron import CronTrigger
from pydantic import Field

from .contracts import GlueflowModel, WorkflowDefinition, utcnow
from .errors import TriggerError

logger = logging.getLogger(__name__)

# (workflow_id, input) -> job id
EnqueueCallback = Callable[[str, Dict[str, Any]], Awaitable[str]]


class InternalEvent(GlueflowModel):
    """An event published inside the platform."""

    type: str
    source: str
    data: Dict[str, Any] = Field(default_factory=dict)
    timestamp: Any = Field(default_factory=utcnow)
    metadata: Optional[Dict[str, Any]] = None


class WebhookRegistration(GlueflowModel):
    workflow_id: str
    path: str
    method: str = "POST"


class ScheduleRegistration(GlueflowModel):
    workflow_id: str
    cron: str
    timezone: str = "UTC"


class EventRegistration(GlueflowModel):
    workflow_id: str
    event_type: str
    source: Optional[str] = None
    filters: Dict[str, Any] = Field(default_factory=dict)


def build_cron_trigger(expression: str, timezone: str = "UTC") -> CronTrigger:
    """Parse a 5 field crontab, or 6 fields with a leading seconds field.

    Raises:
        ValueError: If a field is malformed or out of range, or the timezone
            is unknown.
    """
    fields = expression.split()
    try:
        if len(fields) == 5:
            return CronTrigger.from_crontab(expression, timezone=timezone)
        if len(fields) == 6:
            second, minute, hour, day, month, day_of_week = fields
            return CronTrigger(
                second=second,
                minute=minute,
                hour=hour,
                day=day,
                month=month,
                day_of_week=day_of_week,
                timezone=timezone,
            )
    except LookupError as exc:
        # unknown timezone names surface as KeyError subclasses
        raise ValueError(f"Unknown timezone: {timezone}") from exc
    raise ValueError(f"Wrong number of fields; got {len(fields)}, expected 5 or 6")


def validate_cron(expression: str, timezone: str = "UTC") -> bool:
    try:
        build_cron_trigger(expression, timezone)
    except ValueError:
        return False
    return True


def _normalize_path(path: str) -> str:
    return path if path.startswith("/") else f"/{path}"


class TriggerRouter:
    """Keeps trigger registrations and enqueues executions when they fire.

    The router only decides *which* workflow runs with *what* input; the
    callback (usually ``JobDispatcher.enqueue_execute``) does the enqueueing.
    """

    def __init__(self, callback: EnqueueCallback) -> None:
        self._callback = callback
        self._manual: set[str] = set()
        self._webhooks: Dict[str, WebhookRegistration] = {}
        self._schedules: Dict[str, ScheduleRegistration] = {}
        self._events: Dict[str, EventRegistration] = {}

    def register(self, workflow: WorkflowDefinition) -> None:
        """Register ``workflow`` under its trigger type.

        Raises:
            TriggerError: If the trigger configuration is incomplete or invalid.
        """
        trigger = workflow.trigger
        config = trigger.config or {}
        self.unregister(workflow.id)

        if trigger.type == "manual":
            self._manual.add(workflow.id)
        elif trigger.type == "webhook":
            path = config.get("path")
            if not path:
                raise TriggerError(f"Webhook trigger of {workflow.id} requires a path")
            path = _normalize_path(path)
            existing = self._webhooks.get(path)
            if existing is not None and existing.workflow_id != workflow.id:
                raise TriggerError(
                    f"Webhook path {path} is already bound to {existing.workflow_id}"
                )
            self._webhooks[path] = WebhookRegistration(
                workflow_id=workflow.id,
                path=path,
                method=str(config.get("method") or "POST").upper(),
            )
        elif trigger.type == "schedule":
            cron = config.get("cron")
            timezone = config.get("timezone") or "UTC"
            if not cron or not isinstance(cron, str):
                raise TriggerError(f"Schedule trigger of {workflow.id} requires a cron")
            try:
                build_cron_trigger(cron, timezone)
            except ValueError as exc:
                raise TriggerError(
                    f"Schedule trigger of {workflow.id} has invalid cron {cron!r}: {exc}"
                ) from exc
            self._schedules[workflow.id] = ScheduleRegistration(
                workflow_id=workflow.id,
                cron=cron,
                timezone=timezone,
            )
        elif trigger.type == "event":
            event_type = config.get("eventType")
            if not event_type:
                raise TriggerError(f"Event trigger of {workflow.id} requires eventType")
            self._events[workflow.id] = EventRegistration(
                workflow_id=workflow.id,
                event_type=event_type,
                source=config.get("source"),
                filters=config.get("filters") or {},
            )

        logger.info(f"Registered {trigger.type} trigger for workflow {workflow.id}")

    def unregister(self, workflow_id: str) -> None:
        self._manual.discard(workflow_id)
        self._schedules.pop(workflow_id, None)
        self._events.pop(workflow_id, None)
        for path in [p for p, r in self._webhooks.items() if r.workflow_id == workflow_id]:
            del self._webhooks[path]

    def schedules(self) -> List[ScheduleRegistration]:
        return list(self._schedules.values())

    async def run_manual(
        self, workflow_id: str, input: Optional[Dict[str, Any]] = None
    ) -> str:
        return await self._callback(workflow_id, dict(input or {}))

    async def handle_webhook(
        self, path: str, method: str, body: Optional[Dict[str, Any]] = None
    ) -> Tuple[str, str]:
        """Enqueue the workflow bound to ``path``; return ``(job_id, workflow_id)``."""
        registration = self._webhooks.get(_normalize_path(path))
        if registration is None:
            raise TriggerError(f"No webhook registered for path: {path}")
        if registration.method != method.upper():
            raise TriggerError(
                f"Method {method.upper()} not allowed for {registration.path}; "
                f"expected {registration.method}"
            )
        job_id = await self._callback(registration.workflow_id, dict(body or {}))
        logger.info(f"Webhook {registration.path} enqueued job {job_id}")
        return job_id, registration.workflow_id

    async def fire_schedule(self, workflow_id: str) -> str:
        if workflow_id not in self._schedules:
            raise TriggerError(f"No schedule registered for workflow: {workflow_id}")
        return await self._callback(
            workflow_id,
            {"trigger": "schedule", "executedAt": utcnow().isoformat()},
        )

    async def publish_event(self, event: InternalEvent) -> List[str]:
        """Enqueue every workflow subscribed to ``event``; return their job ids."""
        job_ids: List[str] = []
        for registration in list(self._events.values()):
            if not self._event_matches(registration, event):
                continue
            payload = {
                "event": {
                    "type": event.type,
                    "source": event.source,
                    "timestamp": (
                        event.timestamp.isoformat()
                        if hasattr(event.timestamp, "isoformat")
                        else event.timestamp
                    ),
                },
                "data": event.data,
                "metadata": event.metadata,
            }
            try:
                job_ids.append(await self._callback(registration.workflow_id, payload))
            except Exception:
                logger.exception(
                    f"Failed to enqueue workflow {registration.workflow_id} "
                    f"for event {event.type}"
                )
        return job_ids

    @staticmethod
    def _event_matches(registration: EventRegistration, event: InternalEvent) -> bool:
        if registration.event_type != event.type:
            return False
        if registration.source and registration.source != event.source:
            return False
        data: Mapping[str, Any] = event.data or {}
        return all(data.get(key) == value for key, value in registration.filters.items())
