"""Execution of individual workflow steps."""

from __future__ import annotations

import asyncio
import copy
import logging
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from ..connectors import ConnectorRegistry, ConnectorResult, default_registry
from ..connectors.base import BaseConnector
from ..constants import DEFAULT_CONNECTOR_TYPE, DEFAULT_RETRY_DELAY_MS
from ..contracts import (
    RetryPolicy,
    StepDefinition,
    StepError,
    StepExecution,
    utcnow,
)
from ..errors import ErrorCode, NON_RETRYABLE_CODES, StepFailed, UnsupportedStepType
from ..utils import retry
from .handlers import evaluate_condition, transform
from .parameters import ParameterContext, ParameterResolver

logger = logging.getLogger(__name__)

StepHandler = Callable[
    [Dict[str, Any], Dict[str, Any], Mapping[str, Any]], Awaitable[Dict[str, Any]]
]


class StepRunner:
    """Runs one step: resolves its configuration, dispatches it and applies retries."""

    def __init__(
        self,
        registry: Optional[ConnectorRegistry] = None,
        resolver: Optional[ParameterResolver] = None,
        default_retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS,
    ) -> None:
        self.registry = registry if registry is not None else default_registry()
        self._resolver = resolver or ParameterResolver()
        self._default_retry_delay_ms = default_retry_delay_ms
        self._handlers: Dict[str, StepHandler] = {
            "connector": self._run_connector,
            "transformer": self._run_transformer,
            "condition": self._run_condition,
        }

    def register_connector(self, connector: BaseConnector) -> None:
        self.registry.register(connector)

    async def execute_step(
        self,
        step: StepDefinition,
        input: Mapping[str, Any],
        context: Optional[Mapping[str, Any]] = None,
        parameter_context: Optional[ParameterContext] = None,
    ) -> StepExecution:
        """Run a single attempt of ``step``.

        Never raises: every failure is recorded on the returned ``StepExecution``.
        """
        execution = StepExecution(
            step_id=step.id,
            status="running",
            input=copy.deepcopy(dict(input)),
            started_at=utcnow(),
            attempts=1,
        )

        try:
            # the handler gets its own copies; the recorded input must not change
            config: Dict[str, Any] = copy.deepcopy(step.config)
            resolved_input: Dict[str, Any] = copy.deepcopy(dict(input))
            if parameter_context is not None:
                config = self._resolver.resolve(step.config, parameter_context)
                if step.parameters:
                    resolved_input = {
                        **resolved_input,
                        **self._resolver.resolve(step.parameters, parameter_context),
                    }
                    execution.input = copy.deepcopy(resolved_input)

            handler = self._handlers.get(step.type)
            if handler is None:
                raise UnsupportedStepType(step.type)

            pending = handler(config, resolved_input, context or {})
            if step.timeout:
                output = await asyncio.wait_for(pending, timeout=step.timeout / 1000)
            else:
                output = await pending
        except StepFailed as exc:
            execution.status = "failed"
            execution.error = StepError(
                message=exc.message, code=exc.code, details=exc.details
            )
        except asyncio.TimeoutError:
            execution.status = "failed"
            execution.error = StepError(
                message=f"Step {step.id} timed out"
                + (f" after {step.timeout}ms" if step.timeout else ""),
                code=ErrorCode.TIMEOUT.value,
                details={"timeoutMs": step.timeout},
            )
        except Exception as exc:
            logger.debug(f"Step {step.id} raised {type(exc).__name__}", exc_info=True)
            execution.status = "failed"
            execution.error = StepError(
                message=str(exc) or type(exc).__name__,
                code=ErrorCode.EXECUTION_ERROR.value,
                details={"type": type(exc).__name__},
            )
        else:
            execution.status = "completed"
            execution.output = output

        execution.completed_at = utcnow()
        return execution

    async def execute_with_retry(
        self,
        step: StepDefinition,
        input: Mapping[str, Any],
        context: Optional[Mapping[str, Any]] = None,
        parameter_context: Optional[ParameterContext] = None,
    ) -> StepExecution:
        """Run ``step`` until it completes or its retry policy is exhausted."""
        policy = step.retry_policy or RetryPolicy()
        max_attempts = policy.max_attempts
        delay_ms = (
            policy.delay_ms
            if policy.delay_ms is not None
            else self._default_retry_delay_ms
        )

        execution: Optional[StepExecution] = None
        for attempt in range(1, max_attempts + 1):
            execution = await self.execute_step(step, input, context, parameter_context)
            execution.attempts = attempt

            if execution.status == "completed":
                return execution

            code = execution.error.code if execution.error else None
            if code in NON_RETRYABLE_CODES:
                logger.info(f"Step {step.id} failed with {code}; not retrying")
                return execution

            if attempt < max_attempts:
                wait_ms = retry.compute_backoff(
                    delay_ms, policy.backoff_multiplier, attempt
                )
                logger.warning(
                    f"Step {step.id} failed on attempt {attempt}/{max_attempts}; "
                    f"retrying in {wait_ms:g}ms"
                )
                await retry.sleep_ms(wait_ms)

        assert execution is not None
        return execution

    # ------------------------------------------------------------------
    # Step type handlers
    async def _run_connector(
        self,
        config: Dict[str, Any],
        input: Dict[str, Any],
        context: Mapping[str, Any],
    ) -> Dict[str, Any]:
        connector_type = config.get("connectorType") or DEFAULT_CONNECTOR_TYPE
        connector = self.registry.get(connector_type)

        result = await connector.execute(config, input)
        if not isinstance(result, ConnectorResult):
            result = ConnectorResult.model_validate(result)

        if not result.success:
            error = result.error
            raise StepFailed(
                error.message if error else "Connector execution failed",
                code=(error.code if error and error.code else ErrorCode.EXECUTION_ERROR.value),
                details=error.details if error else None,
            )
        return {"data": result.data}

    async def _run_transformer(
        self,
        config: Dict[str, Any],
        input: Dict[str, Any],
        context: Mapping[str, Any],
    ) -> Dict[str, Any]:
        mapping = config.get("mapping") or {}
        if not isinstance(mapping, Mapping):
            raise StepFailed(
                "Transformer mapping must be an object",
                code=ErrorCode.INVALID_CONFIG.value,
            )
        return transform(input, mapping)

    async def _run_condition(
        self,
        config: Dict[str, Any],
        input: Dict[str, Any],
        context: Mapping[str, Any],
    ) -> Dict[str, Any]:
        condition = config.get("condition")
        if condition is not None and not isinstance(condition, Mapping):
            raise StepFailed(
                "Condition must be an object with field, operator and value",
                code=ErrorCode.INVALID_CONFIG.value,
            )
        return {"conditionMet": evaluate_condition(condition, input)}
