"""Error taxonomy for termagent.

Gateway errors (TransportError, ApiError) end an agent run. Tool errors
are turned into ToolError results and handed back to the model so it can
recover. Command failures never leave the Command Engine as exceptions;
CommandNonZeroExit exists for callers that want to raise on a bad exit.
"""

from __future__ import annotations


class TermAgentError(Exception):
    """Base class for all termagent errors."""


class TransportError(TermAgentError):
    """Connecting to, writing to or reading from the model API failed."""


class ApiError(TermAgentError):
    """The model API answered with a bad status or an unparsable body."""

    def __init__(self, message: str, status_code: int | None = None, error_type: str = "api_error") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.error_type = error_type


class ToolNotFound(TermAgentError):
    def __init__(self, name: str) -> None:
        super().__init__(f"Unknown tool: {name}")
        self.name = name


class ToolInputInvalid(TermAgentError):
    def __init__(self, param: str) -> None:
        super().__init__(f"Missing {param} parameter")
        self.param = param


class ToolExecutionError(TermAgentError):
    """The file or process operation behind a tool failed."""


class CommandNonZeroExit(TermAgentError):
    def __init__(self, command: str, exit_code: int, stderr: str = "") -> None:
        detail = f": {stderr.strip()}" if stderr.strip() else ""
        super().__init__(f"Command exited with code {exit_code}{detail}")
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
