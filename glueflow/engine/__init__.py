"""Execution engine: parameter resolution, step running and orchestration."""

from .events import ExecutionEventEmitter, LoggingEventEmitter, RecordingEventEmitter
from .executor import WorkflowExecutor
from .graph import execution_order, terminal_step_ids, validate_workflow
from .parameters import ParameterContext, ParameterResolver
from .step_runner import StepRunner

__all__ = [
    "ExecutionEventEmitter",
    "LoggingEventEmitter",
    "RecordingEventEmitter",
    "ParameterContext",
    "ParameterResolver",
    "StepRunner",
    "WorkflowExecutor",
    "execution_order",
    "terminal_step_ids",
    "validate_workflow",
]
