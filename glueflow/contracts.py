"""Core contracts for glueflow: workflow definitions, execution records, jobs."""

from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

StepType = Literal["connector", "transformer", "condition", "parallel"]
TriggerType = Literal["manual", "webhook", "schedule", "event"]
OnError = Literal["stop", "continue", "retry"]
StepStatus = Literal["pending", "running", "completed", "failed", "skipped"]
ExecutionStatus = Literal["pending", "running", "completed", "failed", "cancelled"]

TERMINAL_STEP_STATUSES = frozenset({"completed", "skipped"})
TERMINAL_EXECUTION_STATUSES = frozenset({"completed", "failed", "cancelled"})


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GlueflowModel(BaseModel):
    """Base model accepting both camelCase documents and snake_case kwargs."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def to_document(self) -> dict[str, Any]:
        """Return a JSON-compatible dict using the camelCase wire names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class RetryPolicy(GlueflowModel):
    """Per-step retry settings."""

    max_attempts: int = Field(default=1, ge=1)
    delay_ms: Optional[int] = Field(default=None, ge=0)
    backoff_multiplier: float = Field(default=1.0, ge=1)


class StepDefinition(GlueflowModel):
    """Defines one node in a workflow graph."""

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    type: StepType
    config: Dict[str, Any] = Field(default_factory=dict)
    parameters: Optional[Dict[str, Any]] = None
    retry_policy: Optional[RetryPolicy] = None
    timeout: Optional[int] = Field(default=None, ge=0)
    depends_on: List[str] = Field(default_factory=list)


class TriggerConfig(GlueflowModel):
    type: TriggerType = "manual"
    config: Dict[str, Any] = Field(default_factory=dict)


class ErrorHandlingConfig(GlueflowModel):
    on_error: OnError = "stop"
    max_retries: Optional[int] = Field(default=None, ge=0)
    fallback_step: Optional[str] = None


class WorkflowDefinition(GlueflowModel):
    """Immutable blueprint of a workflow."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(min_length=1)
    name: str = Field(min_length=1)
    version: str = Field(min_length=1)
    description: Optional[str] = None
    trigger: TriggerConfig = Field(default_factory=TriggerConfig)
    steps: List[StepDefinition] = Field(min_length=1)
    error_handling: Optional[ErrorHandlingConfig] = None
    metadata: Optional[Dict[str, Any]] = None

    @field_validator("steps")
    @classmethod
    def _unique_step_ids(cls, steps: List[StepDefinition]) -> List[StepDefinition]:
        seen: set[str] = set()
        for step in steps:
            if step.id in seen:
                raise ValueError(f"Duplicate step id: {step.id}")
            seen.add(step.id)
        return steps

    @property
    def on_error(self) -> OnError:
        return self.error_handling.on_error if self.error_handling else "stop"

    def get_step(self, step_id: str) -> Optional[StepDefinition]:
        return next((s for s in self.steps if s.id == step_id), None)


class StepError(GlueflowModel):
    message: str
    code: Optional[str] = None
    details: Any = None


class StepExecution(GlueflowModel):
    """Runtime record of one step's attempt(s)."""

    step_id: str
    status: StepStatus = "pending"
    input: Optional[Dict[str, Any]] = None
    output: Optional[Dict[str, Any]] = None
    error: Optional[StepError] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    attempts: int = 1


class ExecutionError(GlueflowModel):
    message: str
    code: Optional[str] = None
    step_id: Optional[str] = None
    details: Any = None


class WorkflowExecution(GlueflowModel):
    """One run of a workflow definition against an input."""

    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    workflow_id: str
    status: ExecutionStatus = "pending"
    input: Dict[str, Any] = Field(default_factory=dict)
    output: Optional[Dict[str, Any]] = None
    step_executions: List[StepExecution] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=utcnow)
    completed_at: Optional[datetime] = None
    error: Optional[ExecutionError] = None
    metadata: Optional[Dict[str, Any]] = None

    def is_terminal(self) -> bool:
        return self.status in TERMINAL_EXECUTION_STATUSES

    def latest_step_executions(self) -> Dict[str, StepExecution]:
        """Return the most recent record for every step id in the trace."""
        latest: Dict[str, StepExecution] = {}
        for step_execution in self.step_executions:
            latest[step_execution.step_id] = step_execution
        return latest


class ExecutionJob(GlueflowModel):
    """Envelope exchanged over the queue transport."""

    job_id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    type: Literal["execute", "resume"] = "execute"
    workflow_id: Optional[str] = None
    execution_id: Optional[str] = None
    input: Dict[str, Any] = Field(default_factory=dict)
    enqueued_at: datetime = Field(default_factory=utcnow)

    @model_validator(mode="after")
    def _check_target(self) -> "ExecutionJob":
        if self.type == "execute" and not self.workflow_id:
            raise ValueError("execute jobs require a workflow_id")
        if self.type == "resume" and not self.execution_id:
            raise ValueError("resume jobs require an execution_id")
        return self

    def to_json(self) -> str:
        """Serialize job to JSON."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_json(cls, data: str) -> "ExecutionJob":
        """Deserialize job from JSON."""
        return cls.model_validate_json(data)
