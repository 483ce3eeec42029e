"""Persistence layer for glueflow workflows and executions."""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Optional

from ..config import GlueflowConfig, load_config
from .inmemory import InMemoryExecutionRepository, InMemoryWorkflowRepository
from .repository import ExecutionRepository, WorkflowRepository, apply_update
from .sqlite import SQLiteExecutionRepository, SQLiteStore, SQLiteWorkflowRepository


@dataclass
class Repositories:
    """Workflow and execution repositories sharing one backend."""

    workflows: WorkflowRepository
    executions: ExecutionRepository


_repositories_instance: Repositories | None = None


def get_repositories(
    database_url: Optional[str] = None, config: Optional[GlueflowConfig] = None
) -> Repositories:
    """Factory function to obtain the workflow and execution repositories.

    The backend is selected based on ``database_url`` which can be provided
    explicitly, via environment variable ``GLUEFLOW_DATABASE_URL`` or
    ``DATABASE_URL``, or from loaded configuration. When no database is
    configured, in-memory repositories are returned.
    """

    global _repositories_instance
    if _repositories_instance is not None and database_url is None and config is None:
        return _repositories_instance

    config = config or load_config()
    database_url = (
        database_url
        or os.getenv("GLUEFLOW_DATABASE_URL")
        or os.getenv("DATABASE_URL")
        or getattr(config, "database_url", None)
    )

    if not database_url:
        _repositories_instance = Repositories(
            workflows=InMemoryWorkflowRepository(),
            executions=InMemoryExecutionRepository(),
        )
        return _repositories_instance

    if database_url.startswith("sqlite://"):
        store = SQLiteStore(database_url.replace("sqlite://", "", 1))
        _repositories_instance = Repositories(
            workflows=SQLiteWorkflowRepository(store),
            executions=SQLiteExecutionRepository(store),
        )
    else:
        raise ValueError(f"Unsupported database backend: {database_url}")

    return _repositories_instance


__all__ = [
    "ExecutionRepository",
    "InMemoryExecutionRepository",
    "InMemoryWorkflowRepository",
    "Repositories",
    "SQLiteExecutionRepository",
    "SQLiteStore",
    "SQLiteWorkflowRepository",
    "WorkflowRepository",
    "apply_update",
    "get_repositories",
]
