"""Run events and the sinks that deliver them.

The engine emits a :class:`WorkflowEvent` on every status transition, for
agent progress, after each recorded task result, and once at the end of a
run. Sinks decide where events go: callbacks, an asyncio queue for
streaming consumers, or the log.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from enum import Enum
from typing import Any, Protocol

from pydantic import BaseModel, Field

from packflow.workflow.models import utcnow

logger = logging.getLogger(__name__)


class EventType(str, Enum):
    STATUS = "status"
    PROGRESS = "progress"
    TASK_COMPLETE = "task_complete"
    EXECUTION_COMPLETE = "execution_complete"
    EXECUTION_ERROR = "execution_error"


class WorkflowEvent(BaseModel):
    type: EventType
    execution_id: str
    task_id: str | None = None
    payload: dict[str, Any] = Field(default_factory=dict)
    timestamp: datetime = Field(default_factory=utcnow)


EventCallback = Callable[[WorkflowEvent], None]


class EventSink(Protocol):
    def emit(self, event: WorkflowEvent) -> None: ...


class CallbackEventSink:
    """Fan events out to registered callbacks.

    A failing callback is logged and does not affect the others.
    """

    def __init__(self, *callbacks: EventCallback):
        self._callbacks: list[EventCallback] = list(callbacks)

    def register_callback(self, callback: EventCallback) -> None:
        self._callbacks.append(callback)

    def unregister_callback(self, callback: EventCallback) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def emit(self, event: WorkflowEvent) -> None:
        for callback in self._callbacks:
            try:
                callback(event)
            except Exception as e:
                logger.error(f"Callback error for {event.type.value}: {e}")


class QueueEventSink:
    """Push events onto an ``asyncio.Queue`` for streaming consumers.

    When a bounded queue is full the oldest event is dropped.
    """

    def __init__(self, maxsize: int = 0):
        self.queue: asyncio.Queue[WorkflowEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0

    def emit(self, event: WorkflowEvent) -> None:
        if self.queue.full():
            self.queue.get_nowait()
            self.dropped += 1
            logger.warning("Event queue full, dropped oldest event")
        self.queue.put_nowait(event)

    def drain(self) -> list[WorkflowEvent]:
        """Remove and return everything currently queued."""
        events = []
        while not self.queue.empty():
            events.append(self.queue.get_nowait())
        return events


class LoggingEventSink:
    """Write events to the ``packflow.events`` logger."""

    def __init__(self, level: int = logging.DEBUG):
        self.level = level
        self._logger = logging.getLogger("packflow.events")

    def emit(self, event: WorkflowEvent) -> None:
        extra = {"execution_id": event.execution_id}
        if event.task_id:
            extra["task_id"] = event.task_id
        self._logger.log(
            self.level, "%s %s", event.type.value, event.payload or "", extra=extra
        )


class CompositeEventSink:
    def __init__(self, *sinks: EventSink):
        self.sinks = list(sinks)

    def add(self, sink: EventSink) -> None:
        self.sinks.append(sink)

    def emit(self, event: WorkflowEvent) -> None:
        for sink in self.sinks:
            sink.emit(event)
