"""Workflow executor: orchestrates a complete workflow run."""

from __future__ import annotations

import asyncio
import copy
import logging
import os
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Optional

from ..constants import (
    EVENT_EXECUTION_COMPLETED,
    EVENT_EXECUTION_STARTED,
    EVENT_STEP_COMPLETED,
    EVENT_STEP_STARTED,
)
from ..contracts import (
    TERMINAL_STEP_STATUSES,
    ExecutionError,
    StepDefinition,
    WorkflowDefinition,
    WorkflowExecution,
    utcnow,
)
from ..errors import (
    ErrorCode,
    ExecutionNotFound,
    WorkflowDefinitionError,
    WorkflowNotFound,
)
from .events import ExecutionEventEmitter, safe_emit
from .graph import execution_order, terminal_step_ids
from .parameters import ParameterContext
from .step_runner import StepRunner

if TYPE_CHECKING:
    from ..persistence import ExecutionRepository, WorkflowRepository

logger = logging.getLogger(__name__)


class WorkflowExecutor:
    """Runs workflow definitions step by step in dependency order.

    One executor can drive many concurrent runs; each run owns its own
    ``WorkflowExecution`` and nothing else is shared between them.
    """

    def __init__(
        self,
        step_runner: Optional[StepRunner] = None,
        event_emitter: Optional[ExecutionEventEmitter] = None,
        workflow_repository: Optional["WorkflowRepository"] = None,
        execution_repository: Optional["ExecutionRepository"] = None,
        env: Optional[Mapping[str, str]] = None,
    ) -> None:
        self.step_runner = step_runner or StepRunner()
        self._event_emitter = event_emitter
        self._workflows = workflow_repository
        self._executions = execution_repository
        self._env = env
        self._cancel_requests: Dict[str, asyncio.Event] = {}

    async def execute(
        self, workflow: WorkflowDefinition, input: Mapping[str, Any]
    ) -> WorkflowExecution:
        """Run ``workflow`` against ``input``.

        Never raises: failures are reported through the returned execution's
        ``status`` and ``error``.
        """
        execution = WorkflowExecution(
            workflow_id=workflow.id,
            status="running",
            input=copy.deepcopy(dict(input)),
        )
        return await self._run(workflow, execution)

    async def resume(self, execution_id: str) -> WorkflowExecution:
        """Continue a persisted execution from its first unfinished step.

        Steps whose latest record is ``completed`` or ``skipped`` are not run
        again; their recorded outputs feed the remaining steps.
        """
        if self._workflows is None or self._executions is None:
            raise RuntimeError("resume requires workflow and execution repositories")

        stored = await self._executions.find_by_id(execution_id)
        if stored is None:
            raise ExecutionNotFound(f"Execution not found: {execution_id}")
        if stored.status == "completed":
            logger.info(f"Execution {execution_id} already completed; nothing to resume")
            return stored
        if execution_id in self._cancel_requests:
            raise RuntimeError(f"Execution {execution_id} is already running")
        # claim the id before awaiting so a concurrent resume sees it as running
        cancel_requested = asyncio.Event()
        self._cancel_requests[execution_id] = cancel_requested

        try:
            workflow = await self._workflows.find_by_id(stored.workflow_id)
            if workflow is None:
                raise WorkflowNotFound(f"Workflow not found: {stored.workflow_id}")
        except BaseException:
            self._cancel_requests.pop(execution_id, None)
            raise

        execution = stored.model_copy(deep=True)
        execution.status = "running"
        execution.output = None
        execution.error = None
        execution.completed_at = None
        logger.info(f"Resuming execution {execution_id} of workflow {workflow.id}")
        return await self._run(workflow, execution, cancel_requested)

    async def cancel(self, execution_id: str) -> None:
        """Request cancellation of ``execution_id``.

        A run in progress on this executor stops before its next step. A stored,
        unfinished execution that is not running here is marked cancelled.
        """
        pending = self._cancel_requests.get(execution_id)
        if pending is not None:
            logger.info(f"Cancellation requested for execution {execution_id}")
            pending.set()
            return

        if self._executions is not None:
            stored = await self._executions.find_by_id(execution_id)
            if stored is not None:
                if not stored.is_terminal():
                    await self._executions.update(
                        execution_id,
                        {
                            "status": "cancelled",
                            "completed_at": utcnow(),
                            "error": self._cancelled_error(),
                        },
                    )
                    logger.info(f"Marked stored execution {execution_id} as cancelled")
                return

        raise ExecutionNotFound(f"Execution not found: {execution_id}")

    def is_running(self, execution_id: str) -> bool:
        return execution_id in self._cancel_requests

    # ------------------------------------------------------------------
    async def _run(
        self,
        workflow: WorkflowDefinition,
        execution: WorkflowExecution,
        cancel_requested: Optional[asyncio.Event] = None,
    ) -> WorkflowExecution:
        if cancel_requested is None:
            cancel_requested = asyncio.Event()
            self._cancel_requests[execution.id] = cancel_requested

        logger.info(f"Starting execution {execution.id} of workflow {workflow.id}")
        self._emit(
            EVENT_EXECUTION_STARTED,
            lambda: {
                "executionId": execution.id,
                "workflowId": workflow.id,
                "execution": self._snapshot(execution),
            },
        )

        try:
            await self._run_steps(workflow, execution, cancel_requested)
        except Exception as exc:
            logger.exception(f"Execution {execution.id} aborted by unexpected error")
            execution.status = "failed"
            execution.error = ExecutionError(
                message=str(exc) or type(exc).__name__,
                code=ErrorCode.INTERNAL_ERROR.value,
                details={"type": type(exc).__name__},
            )
        finally:
            self._cancel_requests.pop(execution.id, None)

        execution.completed_at = utcnow()
        logger.info(f"Execution {execution.id} finished with status {execution.status}")
        self._emit(
            EVENT_EXECUTION_COMPLETED,
            lambda: {
                "executionId": execution.id,
                "workflowId": workflow.id,
                "execution": self._snapshot(execution),
            },
        )
        return execution

    async def _run_steps(
        self,
        workflow: WorkflowDefinition,
        execution: WorkflowExecution,
        cancel_requested: asyncio.Event,
    ) -> None:
        try:
            ordered = execution_order(workflow.steps)
        except WorkflowDefinitionError as exc:
            execution.status = "failed"
            execution.error = ExecutionError(
                message=str(exc), code=ErrorCode.INVALID_DEFINITION.value
            )
            return

        context = {"workflowId": workflow.id, "executionId": execution.id}
        env = dict(os.environ if self._env is None else self._env)
        finished = {
            step_id
            for step_id, record in execution.latest_step_executions().items()
            if record.status in TERMINAL_STEP_STATUSES
        }

        for step in ordered:
            if step.id in finished:
                continue
            if cancel_requested.is_set():
                execution.status = "cancelled"
                execution.error = self._cancelled_error()
                return

            self._emit(
                EVENT_STEP_STARTED,
                lambda: {
                    "executionId": execution.id,
                    "stepId": step.id,
                    "step": step.model_dump(mode="json", by_alias=True),
                    "execution": self._snapshot(execution),
                },
            )
            step_input = self._step_input(execution, step)
            parameter_context = ParameterContext.from_execution(execution, env=env)
            step_execution = await self.step_runner.execute_with_retry(
                step, step_input, context, parameter_context
            )
            execution.step_executions.append(step_execution)
            self._emit(
                EVENT_STEP_COMPLETED,
                lambda: {
                    "executionId": execution.id,
                    "stepId": step.id,
                    "stepExecution": step_execution.model_dump(mode="json", by_alias=True),
                },
            )

            if step_execution.status != "failed":
                continue

            if workflow.on_error == "stop":
                execution.status = "failed"
                execution.error = ExecutionError(
                    message=f"Step {step.id} failed",
                    code=ErrorCode.STEP_FAILED.value,
                    step_id=step.id,
                    details=(
                        step_execution.error.model_dump(mode="json", by_alias=True)
                        if step_execution.error
                        else None
                    ),
                )
                return
            logger.warning(
                f"Step {step.id} failed in execution {execution.id}; "
                f"continuing ({workflow.on_error})"
            )

        execution.status = "completed"
        execution.output = self._build_output(workflow, execution)

    @staticmethod
    def _step_input(
        execution: WorkflowExecution, step: StepDefinition
    ) -> Dict[str, Any]:
        step_input = dict(execution.input)
        latest = execution.latest_step_executions()
        for dependency in step.depends_on:
            record = latest.get(dependency)
            if record is not None and record.output is not None:
                step_input.update(record.output)
        # deep copy so a connector cannot alter execution.input or earlier outputs
        return copy.deepcopy(step_input)

    @staticmethod
    def _build_output(
        workflow: WorkflowDefinition, execution: WorkflowExecution
    ) -> Dict[str, Any]:
        """Merge the outputs of steps nothing else depends on, in run order."""
        terminals = terminal_step_ids(workflow.steps)
        output: Dict[str, Any] = {}
        for record in execution.step_executions:
            if record.step_id in terminals and record.output is not None:
                output.update(record.output)
        return output

    @staticmethod
    def _cancelled_error() -> ExecutionError:
        return ExecutionError(
            message="Execution cancelled", code=ErrorCode.CANCELLED.value
        )

    @staticmethod
    def _snapshot(execution: WorkflowExecution) -> dict[str, Any]:
        return execution.model_dump(mode="json", by_alias=True)

    def _emit(self, event: str, build_payload: Callable[[], dict[str, Any]]) -> None:
        safe_emit(self._event_emitter, event, build_payload)
