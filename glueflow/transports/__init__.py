"""Queue transports and the factory that picks one from configuration."""

from __future__ import annotations

import os
from typing import Optional

from ..config import GlueflowConfig, RedisConfig, load_config
from .base import BaseTransport
from .inmemory import InMemoryTransport


def _redis_transport(settings: RedisConfig) -> BaseTransport:
    from .redis import RedisTransport

    return RedisTransport(
        host=settings.host,
        port=settings.port,
        db=settings.db,
        password=settings.password,
    )


def get_transport(
    backend: Optional[str] = None, config: Optional[GlueflowConfig] = None
) -> BaseTransport:
    """Build the job transport.

    The backend name comes from ``backend``, then ``GLUEFLOW_TRANSPORT``, then
    ``transport.backend`` in the loaded configuration.
    """
    config = config or load_config()
    name = (backend or os.getenv("GLUEFLOW_TRANSPORT") or config.transport.backend).lower()

    if name == "inmemory":
        return InMemoryTransport()
    if name == "redis":
        return _redis_transport(config.transport.redis)
    raise ValueError(f"Unsupported transport backend: {name}")


__all__ = ["BaseTransport", "InMemoryTransport", "get_transport"]
