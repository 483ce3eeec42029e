"""Configuration for glueflow processes (CLI, workers, embedded engines)."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Literal, Optional, Union

import yaml
from pydantic import BaseModel

from .constants import DEFAULT_QUEUE_TOPIC, DEFAULT_RETRY_DELAY_MS

CONFIG_ENV_VAR = "GLUEFLOW_CONFIG"
DEFAULT_CONFIG_FILE = "glueflow.yaml"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class RedisConfig(BaseModel):
    """Connection settings for the Redis job queue."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    password: Optional[str] = None


class TransportConfig(BaseModel):
    backend: Literal["inmemory", "redis"] = "inmemory"
    queue: str = DEFAULT_QUEUE_TOPIC
    redis: RedisConfig = RedisConfig()


class EngineConfig(BaseModel):
    """Engine defaults applied when a workflow does not say otherwise."""

    default_retry_delay_ms: int = DEFAULT_RETRY_DELAY_MS


class GlueflowConfig(BaseModel):
    transport: TransportConfig = TransportConfig()
    engine: EngineConfig = EngineConfig()
    database_url: Optional[str] = None
    log_level: str = "INFO"


def load_config(path: Optional[Union[str, Path]] = None) -> GlueflowConfig:
    """Load settings from YAML and apply environment overrides.

    The file is ``path``, else ``$GLUEFLOW_CONFIG``, else ``glueflow.yaml`` in
    the working directory; a missing file means defaults. Afterwards
    ``GLUEFLOW_DATABASE_URL`` (or ``DATABASE_URL``) and ``GLUEFLOW_LOG_LEVEL``
    win over the file.
    """
    config_path = Path(path or os.getenv(CONFIG_ENV_VAR, DEFAULT_CONFIG_FILE))
    data = {}
    if config_path.is_file():
        with config_path.open() as f:
            data = yaml.safe_load(f) or {}
    config = GlueflowConfig.model_validate(data)

    database_url = os.getenv("GLUEFLOW_DATABASE_URL") or os.getenv("DATABASE_URL")
    if database_url:
        config.database_url = database_url
    log_level = os.getenv("GLUEFLOW_LOG_LEVEL")
    if log_level:
        config.log_level = log_level
    return config


def configure_logging(config: GlueflowConfig) -> None:
    """Send glueflow logs to stderr at the configured level."""
    logging.basicConfig(level=config.log_level.upper(), format=LOG_FORMAT)
