"""Persistence of run records.

The engine saves an :class:`ExecutionRecord` when a run pauses and when it
ends. Stores are synchronous; records are small and written rarely.
"""

from __future__ import annotations

import builtins
import logging
from abc import ABC, abstractmethod

from pydantic import ValidationError as PydanticValidationError

from packflow.config.settings import Settings
from packflow.errors import ExecutionNotFoundError, StoreError
from packflow.state.backends import SQLiteBackend
from packflow.workflow.models import utcnow

from .models import ExecutionRecord, RunStatus

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS executions (
    id TEXT PRIMARY KEY,
    workflow_id TEXT,
    status TEXT NOT NULL,
    archived INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    data TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_executions_status ON executions(status);
CREATE INDEX IF NOT EXISTS idx_executions_workflow ON executions(workflow_id);
"""


class ExecutionStore(ABC):
    """Where run records live."""

    @abstractmethod
    def save(self, record: ExecutionRecord) -> None:
        """Insert or replace ``record``."""

    @abstractmethod
    def load(self, execution_id: str) -> ExecutionRecord | None:
        """Return the record, or ``None`` if unknown."""

    @abstractmethod
    def list(
        self, status: RunStatus | None = None, include_archived: bool = False
    ) -> builtins.list[ExecutionRecord]:
        """Records newest first, optionally filtered by status."""

    @abstractmethod
    def archive(self, execution_id: str) -> ExecutionRecord:
        """Mark a record archived.

        Raises:
            ExecutionNotFoundError: If the record does not exist
        """

    def close(self) -> None:
        return None


class InMemoryExecutionStore(ExecutionStore):
    def __init__(self) -> None:
        self._records: dict[str, ExecutionRecord] = {}

    def save(self, record: ExecutionRecord) -> None:
        self._records[record.id] = record.model_copy(deep=True)

    def load(self, execution_id: str) -> ExecutionRecord | None:
        record = self._records.get(execution_id)
        return record.model_copy(deep=True) if record else None

    def list(
        self, status: RunStatus | None = None, include_archived: bool = False
    ) -> builtins.list[ExecutionRecord]:
        records = [
            r.model_copy(deep=True)
            for r in self._records.values()
            if (status is None or r.status == status) and (include_archived or not r.archived)
        ]
        return sorted(records, key=lambda r: r.created_at, reverse=True)

    def archive(self, execution_id: str) -> ExecutionRecord:
        record = self._records.get(execution_id)
        if record is None:
            raise ExecutionNotFoundError(f"Execution {execution_id} not found")
        record.archived = True
        record.updated_at = utcnow()
        return record.model_copy(deep=True)


class SQLiteExecutionStore(ExecutionStore):
    """Records serialized as JSON in a single SQLite table."""

    def __init__(self, db_path: str = "packflow-executions.db"):
        self.backend = SQLiteBackend(db_path)
        self.backend.executescript(SCHEMA)

    def save(self, record: ExecutionRecord) -> None:
        try:
            with self.backend.transaction():
                self.backend.execute(
                    """
                    INSERT OR REPLACE INTO executions
                        (id, workflow_id, status, archived, created_at, updated_at, data)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        record.id,
                        record.workflow_id,
                        record.status.value,
                        int(record.archived),
                        record.created_at.isoformat(),
                        record.updated_at.isoformat(),
                        record.model_dump_json(),
                    ),
                )
        except Exception as e:
            raise StoreError(f"Failed to save execution {record.id}: {e}") from e

    def _decode(self, row: dict) -> ExecutionRecord:
        try:
            return ExecutionRecord.model_validate_json(row["data"])
        except PydanticValidationError as e:
            raise StoreError(f"Corrupt execution record {row['id']}: {e}") from e

    def load(self, execution_id: str) -> ExecutionRecord | None:
        row = self.backend.fetchone("SELECT id, data FROM executions WHERE id = ?", (execution_id,))
        return self._decode(row) if row else None

    def list(
        self, status: RunStatus | None = None, include_archived: bool = False
    ) -> builtins.list[ExecutionRecord]:
        query = "SELECT id, data FROM executions WHERE 1 = 1"
        params: builtins.list = []
        if status is not None:
            query += " AND status = ?"
            params.append(status.value)
        if not include_archived:
            query += " AND archived = 0"
        query += " ORDER BY created_at DESC"
        return [self._decode(row) for row in self.backend.fetchall(query, tuple(params))]

    def archive(self, execution_id: str) -> ExecutionRecord:
        record = self.load(execution_id)
        if record is None:
            raise ExecutionNotFoundError(f"Execution {execution_id} not found")
        record.archived = True
        record.updated_at = utcnow()
        self.save(record)
        return record

    def close(self) -> None:
        self.backend.close()


def create_execution_store(settings: Settings) -> ExecutionStore:
    """Memory store by default, SQLite when ``execution_store`` names a file."""
    if settings.uses_sqlite_store:
        logger.debug("Using SQLite execution store at %s", settings.execution_store)
        return SQLiteExecutionStore(settings.execution_store)
    return InMemoryExecutionStore()
