"""Variable interpolation for step configuration and parameters.

Supported references:

- ``${workflow.input.<path>}`` - the workflow run's input
- ``${steps.<stepId>.<path>}`` - the recorded output of an earlier step
- ``${env.<NAME>}`` - the environment snapshot taken when the run started

A string that is exactly one reference resolves to the referenced value with its
original type. References embedded in a larger string are rendered as text.
Unresolvable references are left in place verbatim.
"""

from __future__ import annotations

import copy
import os
import re
from typing import TYPE_CHECKING, Any, Dict, Mapping, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..utils.paths import MISSING, get_path, stringify

if TYPE_CHECKING:
    from ..contracts import WorkflowExecution

REFERENCE_PATTERN = re.compile(r"\$\{([^}]+)\}")


class ParameterContext(BaseModel):
    """Values available to ``${...}`` references."""

    model_config = ConfigDict(frozen=True)

    workflow_input: Dict[str, Any] = Field(default_factory=dict)
    step_outputs: Dict[str, Dict[str, Any]] = Field(default_factory=dict)
    env: Dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_execution(
        cls,
        execution: "WorkflowExecution",
        env: Optional[Mapping[str, str]] = None,
    ) -> "ParameterContext":
        """Build a context from every step in ``execution`` that produced output."""
        step_outputs = {
            step_execution.step_id: step_execution.output
            for step_execution in execution.step_executions
            if step_execution.output is not None
        }
        return cls(
            workflow_input=execution.input,
            step_outputs=step_outputs,
            env=dict(os.environ if env is None else env),
        )


class ParameterResolver:
    """Resolve ``${...}`` references inside nested JSON-like structures."""

    def resolve(
        self, parameters: Mapping[str, Any], context: ParameterContext
    ) -> dict[str, Any]:
        return {
            key: self.resolve_value(value, context)
            for key, value in parameters.items()
        }

    def resolve_value(self, value: Any, context: ParameterContext) -> Any:
        if isinstance(value, str):
            return self._interpolate(value, context)
        if isinstance(value, list):
            return [self.resolve_value(item, context) for item in value]
        if isinstance(value, Mapping):
            return {k: self.resolve_value(v, context) for k, v in value.items()}
        return value

    def _interpolate(self, template: str, context: ParameterContext) -> Any:
        whole = REFERENCE_PATTERN.fullmatch(template)
        if whole is not None:
            resolved = self.resolve_reference(whole.group(1), context)
            if resolved is MISSING:
                return template
            # Copy so callers cannot mutate the context through the result.
            return copy.deepcopy(resolved)

        def replace(match: re.Match[str]) -> str:
            resolved = self.resolve_reference(match.group(1), context)
            return match.group(0) if resolved is MISSING else stringify(resolved)

        return REFERENCE_PATTERN.sub(replace, template)

    def resolve_reference(self, path: str, context: ParameterContext) -> Any:
        """Look up a reference path; return ``MISSING`` when it cannot be resolved."""
        parts = path.strip().split(".")

        if parts[:2] == ["workflow", "input"]:
            return get_path(context.workflow_input, parts[2:])

        if parts[0] == "steps" and len(parts) >= 2:
            output = context.step_outputs.get(parts[1])
            if output is None:
                return MISSING
            return get_path(output, parts[2:])

        if parts[0] == "env" and len(parts) == 2:
            return context.env.get(parts[1], MISSING)

        return MISSING
