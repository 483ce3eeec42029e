"""In-memory implementations of the repositories."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional

from ..contracts import WorkflowDefinition, WorkflowExecution
from ..engine.graph import validate_workflow
from .repository import ExecutionRepository, WorkflowRepository, apply_update


class InMemoryWorkflowRepository(WorkflowRepository):
    """Store workflow definitions in local memory.

    Useful for tests or when no database is configured. Data is not
    persisted across process restarts.
    """

    def __init__(self) -> None:
        self._workflows: Dict[str, WorkflowDefinition] = {}

    async def save(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        validate_workflow(workflow)
        self._workflows[workflow.id] = workflow
        return workflow

    async def find_by_id(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        return self._workflows.get(workflow_id)

    async def list_workflows(self) -> list[WorkflowDefinition]:
        return list(self._workflows.values())


class InMemoryExecutionRepository(ExecutionRepository):
    """Store execution records in local memory.

    Records are copied on the way in and out so callers never share state
    with the store.
    """

    def __init__(self) -> None:
        self._executions: Dict[str, WorkflowExecution] = {}

    async def create(self, execution: WorkflowExecution) -> WorkflowExecution:
        if execution.id in self._executions:
            raise ValueError(f"Execution already exists: {execution.id}")
        self._executions[execution.id] = execution.model_copy(deep=True)
        return execution.model_copy(deep=True)

    async def update(
        self, execution_id: str, partial: Mapping[str, Any]
    ) -> Optional[WorkflowExecution]:
        current = self._executions.get(execution_id)
        if current is None:
            return None
        updated = apply_update(current, partial)
        self._executions[execution_id] = updated
        return updated.model_copy(deep=True)

    async def find_by_id(self, execution_id: str) -> Optional[WorkflowExecution]:
        execution = self._executions.get(execution_id)
        return execution.model_copy(deep=True) if execution else None

    async def list_executions(
        self, workflow_id: Optional[str] = None
    ) -> list[WorkflowExecution]:
        executions = [
            e.model_copy(deep=True)
            for e in self._executions.values()
            if workflow_id is None or e.workflow_id == workflow_id
        ]
        return sorted(executions, key=lambda e: e.started_at, reverse=True)
