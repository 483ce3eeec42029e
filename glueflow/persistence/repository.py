"""Repository abstractions for workflow definitions and executions."""

from __future__ import annotations

from typing import Any, Mapping, Optional, Protocol

from ..contracts import WorkflowDefinition, WorkflowExecution


class WorkflowRepository(Protocol):
    """Protocol for workflow definition storage backends."""

    async def save(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        """Validate and store ``workflow``, replacing any previous version."""

    async def find_by_id(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        """Retrieve the workflow definition by id."""

    async def list_workflows(self) -> list[WorkflowDefinition]:
        """Return all stored workflow definitions."""


class ExecutionRepository(Protocol):
    """Protocol for execution record storage backends."""

    async def create(self, execution: WorkflowExecution) -> WorkflowExecution:
        """Persist a new execution record."""

    async def update(
        self, execution_id: str, partial: Mapping[str, Any]
    ) -> Optional[WorkflowExecution]:
        """Apply ``partial`` field updates; return ``None`` for unknown ids."""

    async def find_by_id(self, execution_id: str) -> Optional[WorkflowExecution]:
        """Retrieve the execution by id."""

    async def list_executions(
        self, workflow_id: Optional[str] = None
    ) -> list[WorkflowExecution]:
        """Return executions, newest first, optionally for one workflow."""


def apply_update(
    execution: WorkflowExecution, partial: Mapping[str, Any]
) -> WorkflowExecution:
    """Return a copy of ``execution`` with ``partial`` applied and revalidated.

    ``partial`` may use field names or their camelCase aliases; an ``id`` in
    ``partial`` is ignored.
    """
    merged = execution.model_dump(by_alias=True)
    for key, value in partial.items():
        field = WorkflowExecution.model_fields.get(key)
        alias = field.alias if field is not None and field.alias else key
        if alias == "id":
            continue
        merged[alias] = value
    return WorkflowExecution.model_validate(merged)
