"""Append-only message history for one agent session."""

from __future__ import annotations

from termagent.api.models import Message, ToolResultBlock, ToolUseBlock


class Conversation:
    """Ordered message history. The AgentRunner is its only writer."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self._messages: list[Message] = []

    def append(self, message: Message) -> None:
        self._messages.append(message)

    def clear(self) -> None:
        self._messages.clear()

    def snapshot(self) -> tuple[Message, ...]:
        """Immutable copy of the history; messages themselves are frozen."""
        return tuple(self._messages)

    def __len__(self) -> int:
        return len(self._messages)

    def pending_tool_use_ids(self) -> list[str]:
        """ids of tool_use blocks that have no matching tool_result yet."""
        answered: set[str] = set()
        requested: list[str] = []
        for message in self._messages:
            for block in message.blocks:
                if isinstance(block, ToolUseBlock) and block.id:
                    requested.append(block.id)
                elif isinstance(block, ToolResultBlock):
                    answered.add(block.tool_use_id)
        return [tool_id for tool_id in requested if tool_id not in answered]
