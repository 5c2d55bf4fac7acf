"""Tests for event sinks, run control and the shared context."""

import asyncio
import logging

import pytest

from packflow.engine.context import SharedContext
from packflow.engine.control import RunControl
from packflow.engine.events import (
    CallbackEventSink,
    CompositeEventSink,
    EventType,
    LoggingEventSink,
    QueueEventSink,
    WorkflowEvent,
)
from packflow.engine.models import TaskError, TaskResult
from packflow.errors import ExecutionCancelledError


def _event(event_type=EventType.STATUS, task_id=None, **payload):
    return WorkflowEvent(type=event_type, execution_id="exec-1", task_id=task_id, payload=payload)


class TestCallbackEventSink:
    def test_fans_out(self):
        first, second = [], []
        sink = CallbackEventSink(first.append)
        sink.register_callback(second.append)
        sink.emit(_event(status="running"))
        assert len(first) == 1
        assert second[0].payload == {"status": "running"}

    def test_unregister(self):
        seen = []
        sink = CallbackEventSink(seen.append)
        sink.unregister_callback(seen.append)
        sink.unregister_callback(seen.append)
        sink.emit(_event())
        assert seen == []

    def test_failing_callback_isolated(self, caplog):
        seen = []

        def broken(event):
            raise RuntimeError("listener crashed")

        sink = CallbackEventSink(broken, seen.append)
        with caplog.at_level(logging.ERROR, logger="packflow.engine.events"):
            sink.emit(_event())
        assert len(seen) == 1
        assert "listener crashed" in caplog.text


class TestQueueEventSink:
    """Bounded queue drops the oldest event."""

    @pytest.mark.asyncio
    async def test_drop_oldest(self):
        sink = QueueEventSink(maxsize=2)
        for i in range(3):
            sink.emit(_event(EventType.PROGRESS, n=i))
        assert sink.dropped == 1
        assert [e.payload["n"] for e in sink.drain()] == [1, 2]
        assert sink.queue.empty()

    @pytest.mark.asyncio
    async def test_consumer_reads_queue(self):
        sink = QueueEventSink()
        sink.emit(_event(EventType.TASK_COMPLETE, task_id="t1"))
        event = await asyncio.wait_for(sink.queue.get(), timeout=1)
        assert event.task_id == "t1"
        assert sink.dropped == 0


class TestOtherSinks:
    def test_logging_sink(self, caplog):
        sink = LoggingEventSink(level=logging.INFO)
        with caplog.at_level(logging.INFO, logger="packflow.events"):
            sink.emit(_event(EventType.EXECUTION_COMPLETE, task_id="t9", status="completed"))
        record = caplog.records[-1]
        assert record.name == "packflow.events"
        assert record.getMessage().startswith("execution_complete")
        assert record.task_id == "t9"
        assert record.execution_id == "exec-1"

    def test_composite(self):
        seen = []
        queue = QueueEventSink()
        composite = CompositeEventSink(CallbackEventSink(seen.append))
        composite.add(queue)
        composite.emit(_event())
        assert len(seen) == 1
        assert len(queue.drain()) == 1


class TestRunControl:
    """Pause, resume and cancel flags plus in-flight cancellation."""

    @pytest.mark.asyncio
    async def test_flags(self):
        control = RunControl()
        assert not control.is_paused
        control.pause()
        assert control.is_paused
        control.resume()
        assert not control.is_paused
        control.cancel()
        assert control.is_cancelled
        control.pause()
        # Pause is ignored once cancelled
        assert not control.is_paused
        control.reset()
        assert not control.is_cancelled

    @pytest.mark.asyncio
    async def test_wait_if_paused(self):
        control = RunControl()
        assert await control.wait_if_paused() is False

        control.pause()
        waiter = asyncio.create_task(control.wait_if_paused())
        await asyncio.sleep(0.01)
        assert not waiter.done()
        control.resume()
        assert await asyncio.wait_for(waiter, timeout=1) is True

    @pytest.mark.asyncio
    async def test_cancel_releases_pause(self):
        control = RunControl()
        control.pause()
        waiter = asyncio.create_task(control.wait_if_paused())
        await asyncio.sleep(0.01)
        control.cancel()
        assert await asyncio.wait_for(waiter, timeout=1) is True

    @pytest.mark.asyncio
    async def test_race_returns_result(self):
        async def work():
            await asyncio.sleep(0.01)
            return 42

        assert await RunControl().race(work()) == 42

    @pytest.mark.asyncio
    async def test_race_propagates_errors(self):
        async def broken():
            raise ValueError("bad")

        with pytest.raises(ValueError, match="bad"):
            await RunControl().race(broken())

    @pytest.mark.asyncio
    async def test_cancel_interrupts_in_flight(self):
        control = RunControl()
        interrupted = asyncio.Event()

        async def slow():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                interrupted.set()
                raise

        racer = asyncio.create_task(control.race(slow()))
        await asyncio.sleep(0.01)
        control.cancel()
        with pytest.raises(ExecutionCancelledError):
            await asyncio.wait_for(racer, timeout=1)
        assert interrupted.is_set()

    @pytest.mark.asyncio
    async def test_already_cancelled(self):
        control = RunControl()
        control.cancel()
        with pytest.raises(ExecutionCancelledError):
            await control.race(asyncio.sleep(10))


class TestSharedContext:
    def test_record_success(self):
        context = SharedContext({"request": "ship it"})
        context.record("t1", TaskResult(success=True, output="done"))

        assert context.get("t1")["success"] is True
        assert context.get("t1_output") == "done"
        assert context.outputs() == {"t1_output": "done"}
        assert "request" in context
        assert len(context) == 3
        assert set(context) == {"request", "t1", "t1_output"}

    def test_record_failure_has_no_output_key(self):
        context = SharedContext()
        context.record(
            "t1", TaskResult(success=False, error=TaskError(message="x", code="TASK_TIMEOUT"))
        )
        assert "t1" in context
        assert "t1_output" not in context
        assert context.get("t1")["error"]["code"] == "TASK_TIMEOUT"

    def test_snapshot_is_a_copy(self):
        context = SharedContext()
        snapshot = context.snapshot()
        snapshot["x"] = 1
        assert "x" not in context
        context.record("t", TaskResult(success=True, output="o"))
        context.clear()
        assert len(context) == 0
        assert context.get("missing", "default") == "default"
