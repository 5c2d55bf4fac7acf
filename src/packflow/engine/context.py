"""Run-scoped shared context."""

from __future__ import annotations

from collections.abc import Iterator
from typing import Any

from .models import TaskResult


class SharedContext:
    """Mapping of settled task results visible to later prompts.

    Only the engine writes here, after a task settles. Each task contributes
    ``task_id -> result dict`` and, when it produced output,
    ``"<task_id>_output" -> output``.
    """

    def __init__(self, initial: dict[str, Any] | None = None):
        self._data: dict[str, Any] = dict(initial or {})

    def record(self, task_id: str, result: TaskResult) -> None:
        self._data[task_id] = result.model_dump(mode="json")
        if result.output:
            self._data[f"{task_id}_output"] = result.output

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def outputs(self) -> dict[str, Any]:
        """Only the ``*_output`` entries."""
        return {k: v for k, v in self._data.items() if k.endswith("_output")}

    def snapshot(self) -> dict[str, Any]:
        return dict(self._data)

    def clear(self) -> None:
        self._data.clear()

    def __contains__(self, key: object) -> bool:
        return key in self._data

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)
