"""Base connector interface for glueflow."""

from __future__ import annotations

import abc
from typing import Any, ClassVar, List, Optional, Type

from pydantic import BaseModel, ValidationError

from ..errors import ErrorCode


class ConnectorErrorInfo(BaseModel):
    message: str
    code: Optional[str] = None
    details: Any = None


class ConnectorResult(BaseModel):
    """Outcome of a connector call."""

    success: bool
    data: Any = None
    error: Optional[ConnectorErrorInfo] = None

    @classmethod
    def ok(cls, data: Any = None) -> "ConnectorResult":
        return cls(success=True, data=data)

    @classmethod
    def fail(
        cls,
        message: str,
        code: str = ErrorCode.EXECUTION_ERROR.value,
        details: Any = None,
    ) -> "ConnectorResult":
        return cls(
            success=False,
            error=ConnectorErrorInfo(message=message, code=code, details=details),
        )


def format_validation_errors(exc: ValidationError) -> List[str]:
    return [
        f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()
    ]


class BaseConnector(metaclass=abc.ABCMeta):
    """Adapter to an external system used by ``connector`` steps."""

    type: ClassVar[str]
    config_model: ClassVar[Optional[Type[BaseModel]]] = None

    @abc.abstractmethod
    async def execute(self, config: dict[str, Any], input: dict[str, Any]) -> ConnectorResult:
        """Run the connector against resolved ``config`` and ``input``."""
        raise NotImplementedError

    def validate(self, config: dict[str, Any]) -> List[str]:
        """Return validation errors for ``config`` (empty when valid)."""
        if self.config_model is None:
            return []
        try:
            self.config_model.model_validate(config)
        except ValidationError as exc:
            return format_validation_errors(exc)
        return []
