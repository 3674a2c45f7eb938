"""Tool progress events published by the agent loop.

Listeners are awaited in order before the loop continues, but a broken
listener never changes what the loop does next: its errors are logged
and dropped, the same isolation the loop gives every observer.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Awaitable, Callable

logger = logging.getLogger(__name__)


class ToolPhase(StrEnum):
    STARTED = "started"
    FINISHED = "finished"
    SKIPPED = "skipped"


@dataclass
class ToolEvent:
    """A single step of tool activity within an agent run."""

    tool_name: str
    phase: ToolPhase
    message: str = ""
    tool_use_id: str | None = None
    is_error: bool = False
    duration_ms: int | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool_name": self.tool_name,
            "phase": str(self.phase),
            "message": self.message,
            "tool_use_id": self.tool_use_id,
            "is_error": self.is_error,
            "duration_ms": self.duration_ms,
            "timestamp": self.timestamp.isoformat(),
        }


# Listener type: async function taking a ToolEvent
ToolEventListener = Callable[[ToolEvent], Awaitable[None]]


async def notify(listener: ToolEventListener | None, event: ToolEvent) -> None:
    """Deliver event to listener with error isolation (CancelledError propagates)."""
    if listener is None:
        return
    try:
        await listener(event)
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception(
            "Tool event listener %s failed for %s (%s)",
            getattr(listener, "__qualname__", repr(listener)),
            event.tool_name,
            event.phase,
        )


class ToolEventQueue:
    """Listener that buffers events on an asyncio.Queue for a consumer.

    Used by the streaming endpoint: the agent run publishes here while the
    response generator drains it. ``close()`` puts a sentinel so the
    consumer knows the run has finished.
    """

    _CLOSED = None

    def __init__(self, max_queue: int = 1000) -> None:
        self._queue: asyncio.Queue[ToolEvent | None] = asyncio.Queue(maxsize=max_queue)

    async def __call__(self, event: ToolEvent) -> None:
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning("Tool event queue full, dropping event: %s %s", event.tool_name, event.phase)

    def close(self) -> None:
        # Sentinel must always land, so make room for it if needed
        while True:
            try:
                self._queue.put_nowait(self._CLOSED)
                return
            except asyncio.QueueFull:
                self._queue.get_nowait()

    async def events(self):
        """Yield events until close() is called."""
        while True:
            event = await self._queue.get()
            if event is self._CLOSED:
                return
            yield event


class ToolEventRecorder:
    """Listener that keeps every event in memory, in order."""

    def __init__(self) -> None:
        self.events: list[ToolEvent] = []

    async def __call__(self, event: ToolEvent) -> None:
        self.events.append(event)
