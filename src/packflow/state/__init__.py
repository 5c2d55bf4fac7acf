"""Storage backends."""

from .backends import MEMORY_DB, SQLiteBackend

__all__ = ["MEMORY_DB", "SQLiteBackend"]
