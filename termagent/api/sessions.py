"""Per-session agent state.

Each session owns its own CommandEngine (and therefore its own working
directory), conversation, command history and runner. Sessions are kept
in an LRU map so an idle one is eventually evicted.

A session's lock serialises agent runs and terminal commands within that
session; different sessions never share mutable state.
"""

from __future__ import annotations

import asyncio
import logging
from collections import OrderedDict
from dataclasses import dataclass, field

from termagent.api.builtin_tools import register_builtin_tools
from termagent.api.conversation import Conversation
from termagent.api.gateway import ModelGateway
from termagent.api.models import CommandResult
from termagent.api.runner import AgentRunner
from termagent.api.tools import ToolDispatcher
from termagent.config import Settings
from termagent.events import ToolEventListener
from termagent.runtime import RuntimeManager
from termagent.shell import CommandEngine, CommandHistory, FileSystem

logger = logging.getLogger(__name__)


@dataclass
class AgentSession:
    """Everything that belongs to one terminal/agent session."""

    session_id: str
    engine: CommandEngine
    runtimes: RuntimeManager
    dispatcher: ToolDispatcher
    runner: AgentRunner
    history: CommandHistory = field(default_factory=CommandHistory)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def conversation(self) -> Conversation:
        return self.runner.conversation

    async def chat(self, message: str, on_tool_event: ToolEventListener | None = None) -> str:
        async with self.lock:
            return await self.runner.run(message, on_tool_event)

    async def terminal(self, command: str) -> CommandResult:
        """Run a line typed at the terminal; a plain ``cd <path>`` moves the working directory."""
        command = command.strip()
        async with self.lock:
            self.history.add(command)
            cd_target = self.engine.cd_target(command)
            if cd_target is not None:
                return self.engine.change_directory(cd_target)
            return await self.engine.execute(command)

    async def reset(self) -> None:
        async with self.lock:
            self.runner.reset()


class SessionManager:
    """Creates, looks up and evicts sessions."""

    def __init__(self, settings: Settings, gateway: ModelGateway) -> None:
        self._settings = settings
        self._gateway = gateway
        self._sessions: OrderedDict[str, AgentSession] = OrderedDict()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def get(self, session_id: str) -> AgentSession | None:
        return self._sessions.get(session_id)

    def get_or_create(self, session_id: str) -> AgentSession:
        """Get existing or create new session with LRU eviction."""
        if session_id in self._sessions:
            # Move to end (most recently used)
            self._sessions.move_to_end(session_id)
            return self._sessions[session_id]

        # Evict oldest idle session if at capacity; busy ones are never dropped
        while len(self._sessions) >= self._settings.max_sessions:
            evicted_id = next(
                (sid for sid, session in self._sessions.items() if not session.lock.locked()),
                None,
            )
            if evicted_id is None:
                logger.warning("All %d sessions are busy, exceeding max_sessions", len(self._sessions))
                break
            del self._sessions[evicted_id]
            logger.info("Evicted idle session %s", evicted_id)

        session = self._create(session_id)
        self._sessions[session_id] = session
        return session

    def end(self, session_id: str) -> bool:
        """Drop a session entirely. Returns False if it did not exist."""
        return self._sessions.pop(session_id, None) is not None

    def _create(self, session_id: str) -> AgentSession:
        settings = self._settings
        engine = CommandEngine(
            settings.home_dir,
            timeout=settings.command_timeout,
            max_output_chars=settings.max_output_chars,
            bin_dir=settings.bin_dir,
        )
        runtimes = RuntimeManager(engine, settings)
        dispatcher = ToolDispatcher()
        register_builtin_tools(dispatcher, engine, FileSystem(), runtimes)
        runner = AgentRunner(
            self._gateway,
            dispatcher,
            engine,
            settings,
            conversation=Conversation(session_id),
        )
        logger.debug("Created session %s (home: %s)", session_id, engine.home_directory)
        return AgentSession(
            session_id=session_id,
            engine=engine,
            runtimes=runtimes,
            dispatcher=dispatcher,
            runner=runner,
        )
