"""Per-session command history with cursor navigation and search."""

from __future__ import annotations

MAX_HISTORY_SIZE = 500
MAX_SEARCH_RESULTS = 10


class CommandHistory:
    """Most-recent-last list of unique commands.

    Re-entering a command moves it to the end. The cursor sits one past
    the newest entry until previous()/next() move it.
    """

    def __init__(self, max_size: int = MAX_HISTORY_SIZE) -> None:
        self._max_size = max_size
        self._history: list[str] = []
        self._index = 0

    def add(self, command: str) -> None:
        command = command.strip()
        if not command:
            return
        if command in self._history:
            self._history.remove(command)
        self._history.append(command)
        if len(self._history) > self._max_size:
            del self._history[0]
        self._index = len(self._history)

    def previous(self) -> str | None:
        if not self._history:
            return None
        if self._index > 0:
            self._index -= 1
        return self._history[self._index]

    def next(self) -> str | None:
        """Step forward; returns "" when moving past the newest entry."""
        if not self._history:
            return None
        if self._index < len(self._history) - 1:
            self._index += 1
            return self._history[self._index]
        if self._index == len(self._history) - 1:
            self._index = len(self._history)
            return ""
        return None

    def reset_cursor(self) -> None:
        self._index = len(self._history)

    def search(self, query: str) -> list[str]:
        """Case-insensitive substring match, newest first."""
        query = query.lower()
        matches = [c for c in reversed(self._history) if query in c.lower()]
        return matches[:MAX_SEARCH_RESULTS]

    def entries(self) -> list[str]:
        """All commands, newest first."""
        return list(reversed(self._history))

    def clear(self) -> None:
        self._history.clear()
        self._index = 0

    def __len__(self) -> int:
        return len(self._history)
