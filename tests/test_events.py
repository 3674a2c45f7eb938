"""Tests for termagent/events.py -- listener isolation, queue and recorder."""

import asyncio

import pytest

from termagent.events import ToolEvent, ToolEventQueue, ToolEventRecorder, ToolPhase, notify


def _event(phase=ToolPhase.STARTED, name="read_file") -> ToolEvent:
    return ToolEvent(tool_name=name, phase=phase, message=str(phase), tool_use_id="t1")


class TestNotify:
    @pytest.mark.asyncio
    async def test_none_listener(self):
        await notify(None, _event())

    @pytest.mark.asyncio
    async def test_listener_error_is_swallowed(self, caplog):
        async def broken(event):
            raise RuntimeError("listener broke")

        await notify(broken, _event())
        assert "listener" in caplog.text.lower()

    @pytest.mark.asyncio
    async def test_cancellation_propagates(self):
        async def cancelled(event):
            raise asyncio.CancelledError()

        with pytest.raises(asyncio.CancelledError):
            await notify(cancelled, _event())


class TestToolEvent:
    def test_to_dict(self):
        data = ToolEvent(
            tool_name="run_python",
            phase=ToolPhase.FINISHED,
            message="42",
            tool_use_id="t9",
            duration_ms=12,
        ).to_dict()
        assert data["phase"] == "finished"
        assert data["tool_name"] == "run_python"
        assert data["duration_ms"] == 12
        assert data["is_error"] is False
        assert "timestamp" in data


class TestListeners:
    @pytest.mark.asyncio
    async def test_recorder_keeps_order(self):
        recorder = ToolEventRecorder()
        await recorder(_event(ToolPhase.STARTED))
        await recorder(_event(ToolPhase.FINISHED))
        assert [e.phase for e in recorder.events] == [ToolPhase.STARTED, ToolPhase.FINISHED]

    @pytest.mark.asyncio
    async def test_queue_drains_until_closed(self):
        queue = ToolEventQueue()
        await queue(_event(ToolPhase.STARTED))
        await queue(_event(ToolPhase.FINISHED))
        queue.close()

        phases = [event.phase async for event in queue.events()]
        assert phases == [ToolPhase.STARTED, ToolPhase.FINISHED]

    @pytest.mark.asyncio
    async def test_queue_full_still_closes(self):
        queue = ToolEventQueue(max_queue=1)
        await queue(_event(ToolPhase.STARTED))
        await queue(_event(ToolPhase.FINISHED))  # dropped
        queue.close()

        events = [event async for event in queue.events()]
        assert events == []
