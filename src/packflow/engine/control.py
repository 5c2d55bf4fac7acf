"""Pause, resume and cancel for a running engine."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable
from typing import TypeVar

from packflow.errors import ExecutionCancelledError

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RunControl:
    """Cooperative run control shared between the engine and its caller.

    The engine checks :meth:`wait_if_paused` at task (or batch) boundaries
    and wraps every agent call in :meth:`race`, so :meth:`cancel` also
    interrupts calls already in flight.
    """

    def __init__(self) -> None:
        self._resume = asyncio.Event()
        self._resume.set()
        self._cancel = asyncio.Event()

    def pause(self) -> None:
        if not self._cancel.is_set():
            logger.info("Pause requested")
            self._resume.clear()

    def resume(self) -> None:
        self._resume.set()

    def cancel(self) -> None:
        logger.info("Cancel requested")
        self._cancel.set()
        self._resume.set()

    def reset(self) -> None:
        """Clear pause and cancel so the control can drive another run."""
        self._cancel.clear()
        self._resume.set()

    @property
    def is_paused(self) -> bool:
        return not self._resume.is_set()

    @property
    def is_cancelled(self) -> bool:
        return self._cancel.is_set()

    async def wait_if_paused(self) -> bool:
        """Block while paused. Returns True if the caller actually waited."""
        if self._resume.is_set():
            return False
        await self._resume.wait()
        return True

    async def race(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable`` unless the run is cancelled first.

        Raises:
            ExecutionCancelledError: If :meth:`cancel` fired before the
                awaitable finished; the awaitable is cancelled
        """
        task = asyncio.ensure_future(awaitable)
        if self._cancel.is_set():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise ExecutionCancelledError("Execution was cancelled")

        cancel_wait = asyncio.ensure_future(self._cancel.wait())
        try:
            await asyncio.wait({task, cancel_wait}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            cancel_wait.cancel()

        if task.done():
            return task.result()

        task.cancel()
        await asyncio.gather(task, return_exceptions=True)
        raise ExecutionCancelledError("Execution was cancelled")
