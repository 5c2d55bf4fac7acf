"""SQLite connection handling for the execution store."""

from __future__ import annotations

import sqlite3
import threading
from collections.abc import Generator
from contextlib import contextmanager
from pathlib import Path
from typing import Any

MEMORY_DB = ":memory:"


class SQLiteBackend:
    """Thread-local SQLite connections with dict rows.

    An in-memory database is shared by every thread through a single
    connection, otherwise each thread would see its own empty database.
    """

    def __init__(self, db_path: str | Path = "packflow-executions.db"):
        self.db_path = str(db_path)
        self._local = threading.local()
        self._shared: sqlite3.Connection | None = None
        self._lock = threading.Lock()
        if self.db_path != MEMORY_DB:
            Path(self.db_path).parent.mkdir(parents=True, exist_ok=True)

    @property
    def is_memory(self) -> bool:
        return self.db_path == MEMORY_DB

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def _get_conn(self) -> sqlite3.Connection:
        if self.is_memory:
            with self._lock:
                if self._shared is None:
                    self._shared = self._connect()
                return self._shared
        if getattr(self._local, "conn", None) is None:
            self._local.conn = self._connect()
        return self._local.conn

    def execute(self, query: str, params: tuple = ()) -> sqlite3.Cursor:
        return self._get_conn().execute(query, params)

    def executescript(self, script: str) -> None:
        conn = self._get_conn()
        conn.executescript(script)
        conn.commit()

    def fetchone(self, query: str, params: tuple = ()) -> dict[str, Any] | None:
        row = self.execute(query, params).fetchone()
        return dict(row) if row else None

    def fetchall(self, query: str, params: tuple = ()) -> list[dict[str, Any]]:
        return [dict(row) for row in self.execute(query, params).fetchall()]

    @contextmanager
    def transaction(self) -> Generator[None, None, None]:
        """Commit on success, roll back and re-raise on error."""
        conn = self._get_conn()
        try:
            yield
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def close(self) -> None:
        if self._shared is not None:
            self._shared.close()
            self._shared = None
        if getattr(self._local, "conn", None) is not None:
            self._local.conn.close()
            self._local.conn = None
