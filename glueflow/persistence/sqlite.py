"""SQLite implementations of the repositories."""

from __future__ import annotations

import asyncio
import sqlite3
from pathlib import Path
from typing import Any, Mapping, Optional

from ..contracts import WorkflowDefinition, WorkflowExecution, utcnow
from ..engine.graph import validate_workflow
from .repository import ExecutionRepository, WorkflowRepository, apply_update


class SQLiteStore:
    """Shared SQLite connection holding both workflow and execution tables."""

    def __init__(self, db_path: str | Path):
        self.db_path = str(db_path)
        self._conn = sqlite3.connect(self.db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._lock = asyncio.Lock()
        self._ensure_schema()

    # ------------------------------------------------------------------
    # Schema management
    def _ensure_schema(self) -> None:
        cur = self._conn.cursor()
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS workflows (
                id TEXT PRIMARY KEY,
                document TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            """
        )
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS executions (
                id TEXT PRIMARY KEY,
                workflow_id TEXT NOT NULL,
                status TEXT NOT NULL,
                started_at TEXT NOT NULL,
                document TEXT NOT NULL
            )
            """
        )
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_executions_workflow ON executions (workflow_id)"
        )
        self._conn.commit()

    # ------------------------------------------------------------------
    # Helper methods
    def _execute(self, query: str, *params: Any) -> None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        self._conn.commit()

    def _fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchone()

    def _fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        cur = self._conn.cursor()
        cur.execute(query, params)
        return cur.fetchall()

    async def execute(self, query: str, *params: Any) -> None:
        async with self._lock:
            await asyncio.to_thread(self._execute, query, *params)

    async def fetchone(self, query: str, *params: Any) -> sqlite3.Row | None:
        async with self._lock:
            return await asyncio.to_thread(self._fetchone, query, *params)

    async def fetchall(self, query: str, *params: Any) -> list[sqlite3.Row]:
        async with self._lock:
            return await asyncio.to_thread(self._fetchall, query, *params)

    def close(self) -> None:
        self._conn.close()


class SQLiteWorkflowRepository(WorkflowRepository):
    """Persist workflow definitions using SQLite."""

    def __init__(self, store: SQLiteStore | str | Path):
        self._store = store if isinstance(store, SQLiteStore) else SQLiteStore(store)

    async def save(self, workflow: WorkflowDefinition) -> WorkflowDefinition:
        validate_workflow(workflow)
        await self._store.execute(
            "INSERT OR REPLACE INTO workflows (id, document, updated_at) VALUES (?, ?, ?)",
            workflow.id,
            workflow.model_dump_json(by_alias=True),
            utcnow().isoformat(),
        )
        return workflow

    async def find_by_id(self, workflow_id: str) -> Optional[WorkflowDefinition]:
        row = await self._store.fetchone(
            "SELECT document FROM workflows WHERE id = ?", workflow_id
        )
        if not row:
            return None
        return WorkflowDefinition.model_validate_json(row["document"])

    async def list_workflows(self) -> list[WorkflowDefinition]:
        rows = await self._store.fetchall("SELECT document FROM workflows ORDER BY id")
        return [WorkflowDefinition.model_validate_json(r["document"]) for r in rows]


class SQLiteExecutionRepository(ExecutionRepository):
    """Persist execution records using SQLite."""

    def __init__(self, store: SQLiteStore | str | Path):
        self._store = store if isinstance(store, SQLiteStore) else SQLiteStore(store)

    async def create(self, execution: WorkflowExecution) -> WorkflowExecution:
        await self._store.execute(
            "INSERT INTO executions (id, workflow_id, status, started_at, document) VALUES (?, ?, ?, ?, ?)",
            execution.id,
            execution.workflow_id,
            execution.status,
            execution.started_at.isoformat(),
            execution.model_dump_json(by_alias=True),
        )
        return execution.model_copy(deep=True)

    async def update(
        self, execution_id: str, partial: Mapping[str, Any]
    ) -> Optional[WorkflowExecution]:
        current = await self.find_by_id(execution_id)
        if current is None:
            return None
        updated = apply_update(current, partial)
        await self._store.execute(
            "UPDATE executions SET status = ?, document = ? WHERE id = ?",
            updated.status,
            updated.model_dump_json(by_alias=True),
            execution_id,
        )
        return updated

    async def find_by_id(self, execution_id: str) -> Optional[WorkflowExecution]:
        row = await self._store.fetchone(
            "SELECT document FROM executions WHERE id = ?", execution_id
        )
        if not row:
            return None
        return WorkflowExecution.model_validate_json(row["document"])

    async def list_executions(
        self, workflow_id: Optional[str] = None
    ) -> list[WorkflowExecution]:
        if workflow_id is None:
            rows = await self._store.fetchall(
                "SELECT document FROM executions ORDER BY started_at DESC"
            )
        else:
            rows = await self._store.fetchall(
                "SELECT document FROM executions WHERE workflow_id = ? ORDER BY started_at DESC",
                workflow_id,
            )
        return [WorkflowExecution.model_validate_json(r["document"]) for r in rows]
