"""HTTP/REST connector."""

from __future__ import annotations

import json
import logging
from typing import Any, Dict, Literal, Optional

import httpx
from pydantic import BaseModel, ConfigDict, ValidationError

from ..errors import ErrorCode
from .base import BaseConnector, ConnectorResult, format_validation_errors

logger = logging.getLogger(__name__)


class HttpConfig(BaseModel):
    """Configuration accepted by ``HttpConnector``."""

    model_config = ConfigDict(extra="ignore")

    url: str
    method: Literal["GET", "POST", "PUT", "PATCH", "DELETE"] = "GET"
    headers: Dict[str, str] = {}
    params: Dict[str, Any] = {}
    body: Any = None
    timeout: float = 30000  # milliseconds


class HttpConnector(BaseConnector):
    """Send one HTTP request and return the decoded response body."""

    type = "http"
    config_model = HttpConfig

    def __init__(self, client: Optional[httpx.AsyncClient] = None) -> None:
        self._client = client

    async def execute(self, config: dict[str, Any], input: dict[str, Any]) -> ConnectorResult:
        try:
            http_config = HttpConfig.model_validate(config)
        except ValidationError as exc:
            return ConnectorResult.fail(
                "Invalid configuration",
                code=ErrorCode.INVALID_CONFIG.value,
                details=format_validation_errors(exc),
            )

        if not http_config.url.startswith(("http://", "https://")):
            return ConnectorResult.fail(
                "Invalid configuration",
                code=ErrorCode.INVALID_CONFIG.value,
                details=[f"url: not an absolute http(s) URL: {http_config.url}"],
            )

        body = http_config.body if http_config.body is not None else input.get("body")
        request_kwargs: dict[str, Any] = {
            "headers": {"Content-Type": "application/json", **http_config.headers},
            "params": http_config.params or None,
            "timeout": http_config.timeout / 1000,
        }
        if body is not None and http_config.method != "GET":
            request_kwargs["content"] = json.dumps(body)

        try:
            if self._client is not None:
                response = await self._client.request(
                    http_config.method, http_config.url, **request_kwargs
                )
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.request(
                        http_config.method, http_config.url, **request_kwargs
                    )
        except httpx.HTTPError as exc:
            logger.warning(f"HTTP {http_config.method} {http_config.url} failed: {exc}")
            return ConnectorResult.fail(
                str(exc) or type(exc).__name__,
                code=ErrorCode.EXECUTION_ERROR.value,
                details={"type": type(exc).__name__},
            )

        if "application/json" in response.headers.get("content-type", ""):
            data: Any = response.json()
        else:
            data = response.text

        if response.is_error:
            return ConnectorResult.fail(
                f"HTTP {response.status_code}: {response.reason_phrase}",
                code=ErrorCode.HTTP_ERROR.value,
                details={"status": response.status_code, "data": data},
            )
        return ConnectorResult.ok(data)
