"""Shell module: command engine, file-system operations and command history.

Public API: CommandEngine, FileSystem, FileInfo, CommandHistory.
"""

from termagent.shell.engine import CommandEngine
from termagent.shell.filesystem import FileInfo, FileSystem
from termagent.shell.history import CommandHistory

__all__ = [
    "CommandEngine",
    "CommandHistory",
    "FileInfo",
    "FileSystem",
]
