"""Tool dispatcher for direct Anthropic API integration.

ToolDispatcher maps tool names to async handlers, validates required
parameters against each tool's descriptor, and normalises every outcome
into a ToolResult. Nothing a handler raises escapes dispatch.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from termagent.api.models import ToolDescriptor, ToolError, ToolResult
from termagent.errors import ToolExecutionError, ToolInputInvalid, ToolNotFound

logger = logging.getLogger(__name__)

# Handler type: async function taking the tool's parameters as kwargs
ToolHandler = Callable[..., Awaitable[ToolResult]]


class ToolDispatcher:
    """Registers tool handlers and dispatches tool calls from the model.

    Handlers must not block the event loop: file work goes through
    asyncio.to_thread and processes through asyncio subprocesses. The
    caller awaits each dispatch before issuing the next.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, ToolHandler] = {}
        self._descriptors: dict[str, ToolDescriptor] = {}

    def register(self, descriptor: ToolDescriptor, handler: ToolHandler) -> None:
        """Register a tool handler under its descriptor's name."""
        self._handlers[descriptor.name] = handler
        self._descriptors[descriptor.name] = descriptor

    @property
    def descriptors(self) -> tuple[ToolDescriptor, ...]:
        """Registered descriptors, in registration order."""
        return tuple(self._descriptors.values())

    async def execute_tool(self, name: str, params: dict[str, Any] | None) -> ToolResult:
        """Dispatch a tool call and return a ToolSuccess or ToolError."""
        handler = self._handlers.get(name)
        if handler is None:
            return ToolError.from_exception(ToolNotFound(name))

        descriptor = self._descriptors[name]
        params = params if isinstance(params, dict) else {}

        # Declaration order, so the first missing parameter reported is stable
        for param in descriptor.input_schema.properties:
            if param in descriptor.input_schema.required and params.get(param) is None:
                return ToolError.from_exception(ToolInputInvalid(param))

        known = descriptor.input_schema.properties
        dropped = sorted(set(params) - set(known))
        if dropped:
            logger.debug("Dropping undeclared parameters for %s: %s", name, dropped)
        kwargs = {key: value for key, value in params.items() if key in known}

        try:
            return await handler(**kwargs)
        except Exception as e:
            logger.exception("Tool dispatch error for %s", name)
            return ToolError.from_exception(
                ToolExecutionError(f"Tool execution failed: {e}"),
                exception=type(e).__name__,
            )
