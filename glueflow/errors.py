"""Error codes and exceptions raised by the glueflow engine."""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    INVALID_CONFIG = "INVALID_CONFIG"
    INVALID_INPUT = "INVALID_INPUT"
    CONNECTOR_NOT_FOUND = "CONNECTOR_NOT_FOUND"
    EXECUTION_ERROR = "EXECUTION_ERROR"
    HTTP_ERROR = "HTTP_ERROR"
    UNSUPPORTED_STEP_TYPE = "UNSUPPORTED_STEP_TYPE"
    TIMEOUT = "TIMEOUT"
    STEP_FAILED = "STEP_FAILED"
    INVALID_DEFINITION = "INVALID_DEFINITION"
    CANCELLED = "CANCELLED"
    INTERNAL_ERROR = "INTERNAL_ERROR"


# Failures that cannot change between attempts.
NON_RETRYABLE_CODES = frozenset(
    {
        ErrorCode.CONNECTOR_NOT_FOUND.value,
        ErrorCode.UNSUPPORTED_STEP_TYPE.value,
        ErrorCode.INVALID_CONFIG.value,
        ErrorCode.INVALID_INPUT.value,
    }
)


class GlueflowError(Exception):
    """Base class for glueflow errors."""


class StepFailed(GlueflowError):
    """Raised by step handlers; captured into the step's execution record."""

    def __init__(
        self,
        message: str,
        code: str = ErrorCode.EXECUTION_ERROR.value,
        details: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details


class ConnectorNotFound(StepFailed):
    def __init__(self, connector_type: str) -> None:
        super().__init__(
            f"Connector not found: {connector_type}",
            code=ErrorCode.CONNECTOR_NOT_FOUND.value,
            details={"connectorType": connector_type},
        )


class UnsupportedStepType(StepFailed):
    def __init__(self, step_type: str) -> None:
        super().__init__(
            f"Unsupported step type: {step_type}",
            code=ErrorCode.UNSUPPORTED_STEP_TYPE.value,
            details={"type": step_type},
        )


class WorkflowDefinitionError(GlueflowError):
    """The workflow graph is not executable (unknown dependency or cycle)."""


class WorkflowNotFound(GlueflowError):
    pass


class ExecutionNotFound(GlueflowError):
    pass


class TriggerError(GlueflowError):
    """Invalid trigger registration or an unroutable trigger invocation."""
