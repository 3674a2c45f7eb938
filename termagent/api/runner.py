"""Agent runner -- the turn-by-turn loop between model and tools.

Each run appends the user's text to the conversation, then repeatedly
calls the model gateway with the full history, dispatches the tool calls
it returns, and feeds the results back until the model ends its turn.
Manages the tool use loop internally (no external SDK).
"""

from __future__ import annotations

import logging
import time
from typing import Any

from termagent.api.conversation import Conversation
from termagent.api.gateway import ModelGateway
from termagent.api.models import (
    Failure,
    Message,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from termagent.api.tools import ToolDispatcher
from termagent.config import Settings
from termagent.events import ToolEvent, ToolEventListener, ToolPhase, notify
from termagent.shell.engine import CommandEngine

logger = logging.getLogger(__name__)

STOP_END_TURN = "end_turn"
STOP_TOOL_USE = "tool_use"

MAX_TURNS_NOTICE = "[Stopped: reached the maximum number of tool iterations.]"


class AgentRunner:
    """Runs agent turns for one session.

    Owns nothing but the loop: the conversation, dispatcher and engine
    are passed in so one session's state stays in one place.
    """

    SYSTEM_PROMPT = (
        "You are a helpful AI assistant running as a terminal agent on the user's device.\n"
        "You have access to execute shell commands and manipulate files through a terminal interface.\n\n"
        "You have the following tools available:\n"
        "- execute_command: Run shell commands (ls, cat, mkdir, rm, cp, mv, cd, etc.)\n"
        "- read_file: Read file contents\n"
        "- write_file: Create or update files\n"
        "- list_files: List directory contents\n"
        "- create_directory: Create new directories\n"
        "- delete_file: Delete files or directories\n"
        "- run_python: Execute Python code\n"
        "- run_javascript: Execute JavaScript/Node.js code\n\n"
        "When users ask you to perform tasks:\n"
        "1. USE THE TOOLS to actually perform the requested actions\n"
        "2. Break down complex tasks into steps\n"
        "3. Explain what you're doing before and after using tools\n"
        "4. Handle errors gracefully and report them clearly\n\n"
        "Be proactive! If a user asks you to do something, use the appropriate tools to do it. "
        "Don't just suggest commands - actually execute them using the tools."
    )

    def __init__(
        self,
        gateway: ModelGateway,
        dispatcher: ToolDispatcher,
        engine: CommandEngine,
        settings: Settings,
        conversation: Conversation | None = None,
    ) -> None:
        self._gateway = gateway
        self._dispatcher = dispatcher
        self._engine = engine
        self._settings = settings
        self.conversation = conversation or Conversation(session_id="default")
        self.last_usage: dict[str, int] = {"input_tokens": 0, "output_tokens": 0}
        self.total_usage: dict[str, int] = {"input_tokens": 0, "output_tokens": 0}

    async def run(self, user_text: str, on_tool_event: ToolEventListener | None = None) -> str:
        """Execute one agent run and return the accumulated response text.

        Steps:
        1. Append the user message
        2. Call the model with full history, system prompt and tools
        3. Text blocks accumulate; each tool_use block is flushed with the
           preceding text as one assistant message, dispatched, and
           answered with a user message carrying its tool_result
        4. end_turn (or any unknown stop reason) ends the run; tool_use
           loops back to 2 so the model sees the results
        5. A gateway failure ends the run with an "Error: ..." string
        """
        self.last_usage = {"input_tokens": 0, "output_tokens": 0}
        self.conversation.append(Message(role="user", content=user_text))
        system_prompt = self._build_system_prompt()
        tools = self._dispatcher.descriptors

        text_parts: list[str] = []
        turns = 0
        max_turns = self._settings.max_turns

        while turns < max_turns:
            pending = self.conversation.pending_tool_use_ids()
            if pending:
                logger.warning("Calling model with unanswered tool_use ids: %s", pending)

            result = await self._gateway.send(self.conversation.snapshot(), system_prompt, tools)
            turns += 1
            if isinstance(result, Failure):
                logger.error("Agent run aborted in session %s: %s", self.conversation.session_id, result.message)
                return f"Error: {result.message}"

            response = result.value
            self._add_usage(response.usage)

            buffer: list[TextBlock] = []
            dispatched = 0
            for block in response.content:
                if isinstance(block, TextBlock):
                    buffer.append(block)
                    text_parts.append(block.text)
                elif isinstance(block, ToolUseBlock):
                    if not block.is_well_formed:
                        await self._skip_malformed(block, on_tool_event)
                        continue
                    await self._run_tool(block, buffer, on_tool_event)
                    buffer = []
                    dispatched += 1

            if response.stop_reason == STOP_TOOL_USE and dispatched:
                if buffer:
                    # History has to end with the tool results before the next call
                    logger.debug("Dropping %d trailing text block(s) after tool calls", len(buffer))
                continue

            if response.stop_reason == STOP_TOOL_USE:
                logger.warning("stop_reason=tool_use without a dispatchable tool call; ending run")
            elif response.stop_reason != STOP_END_TURN:
                logger.info("Run ended with stop_reason=%s", response.stop_reason)
            self._flush(buffer)
            return "".join(text_parts)

        logger.warning("Tool loop reached max_turns=%d", max_turns)
        text = "".join(text_parts)
        return f"{text}\n\n{MAX_TURNS_NOTICE}" if text else MAX_TURNS_NOTICE

    def reset(self) -> None:
        """Forget the conversation. Working directory and usage totals stay."""
        self.conversation.clear()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    async def _run_tool(
        self,
        block: ToolUseBlock,
        buffer: list[TextBlock],
        on_tool_event: ToolEventListener | None,
    ) -> None:
        """Dispatch one tool call and record the use/result pair."""
        await notify(on_tool_event, ToolEvent(
            tool_name=block.name,
            phase=ToolPhase.STARTED,
            message="started",
            tool_use_id=block.id,
        ))

        self.conversation.append(Message(role="assistant", content=(*buffer, block)))

        start_time = time.monotonic()
        result = await self._dispatcher.execute_tool(block.name, block.input)
        duration_ms = int((time.monotonic() - start_time) * 1000)
        logger.debug("Tool %s finished in %dms (error=%s)", block.name, duration_ms, result.is_error)

        await notify(on_tool_event, ToolEvent(
            tool_name=block.name,
            phase=ToolPhase.FINISHED,
            message=f"Error: {result.text}" if result.is_error else result.text,
            tool_use_id=block.id,
            is_error=result.is_error,
            duration_ms=duration_ms,
        ))

        self.conversation.append(Message(role="user", content=(
            ToolResultBlock(tool_use_id=block.id, content=result.text, is_error=result.is_error),
        )))

    async def _skip_malformed(self, block: ToolUseBlock, on_tool_event: ToolEventListener | None) -> None:
        """A tool_use without id or name is neither recorded nor dispatched."""
        logger.warning("Skipping malformed tool_use block (id=%r, name=%r)", block.id, block.name)
        await notify(on_tool_event, ToolEvent(
            tool_name=block.name or "unknown",
            phase=ToolPhase.SKIPPED,
            message="Error: tool call is missing its id or name and was not executed",
            tool_use_id=block.id,
            is_error=True,
        ))

    def _flush(self, buffer: list[TextBlock]) -> None:
        if buffer:
            self.conversation.append(Message(role="assistant", content=tuple(buffer)))

    def _build_system_prompt(self) -> str:
        base = self._settings.system_prompt or self.SYSTEM_PROMPT
        return f"{base}\n\nCurrent working directory: {self._engine.current_directory}"

    def _add_usage(self, usage: dict[str, Any] | None) -> None:
        if not usage:
            return
        for key in ("input_tokens", "output_tokens"):
            value = usage.get(key)
            if isinstance(value, int):
                self.last_usage[key] += value
                self.total_usage[key] += value
