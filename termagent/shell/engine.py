"""Command engine: built-in file commands plus native shell fallback.

A small set of commands (ls, pwd, cat, echo, mkdir, touch, rm, cp, mv)
is emulated directly against the file system, relative to a tracked
working directory. Everything else runs through the system shell with
that directory as cwd.

The working directory is single-writer state. Scope one engine to one
session; concurrent execute() calls on the same engine are undefined.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
from collections.abc import Callable
from pathlib import Path

from termagent.api.models import CommandResult
from termagent.utils import kill_process, truncate

logger = logging.getLogger(__name__)

# Limits
_DEFAULT_TIMEOUT = 300  # seconds
_DEFAULT_MAX_OUTPUT_CHARS = 100 * 1024  # 100KB

# Lines with any of these keep their shell meaning and go native
SHELL_OPERATORS = ("|", ";", "&", ">", "<", "`", "$(")

# Built-ins that take one path; surrounding quotes are not part of it
_SINGLE_PATH = frozenset({"ls", "cat", "mkdir", "touch", "rm"})


def has_shell_operators(command_line: str) -> bool:
    return any(op in command_line for op in SHELL_OPERATORS)


def _strip_quotes(text: str) -> str:
    if len(text) >= 2 and text[0] == text[-1] and text[0] in ("'", '"'):
        return text[1:-1]
    return text


class CommandEngine:
    """Executes command lines against a tracked working directory."""

    def __init__(
        self,
        home_dir: str | Path,
        *,
        timeout: int = _DEFAULT_TIMEOUT,
        max_output_chars: int = _DEFAULT_MAX_OUTPUT_CHARS,
        bin_dir: str | Path | None = None,
    ) -> None:
        self._home = Path(home_dir).expanduser().resolve()
        self._home.mkdir(parents=True, exist_ok=True)
        self._cwd = self._home
        self._timeout = timeout
        self._max_output_chars = max_output_chars

        # Native commands see bin_dir first on PATH
        self._env: dict[str, str] | None = None
        if bin_dir:
            path = os.environ.get("PATH", "")
            self._env = {**os.environ, "PATH": f"{Path(bin_dir).expanduser()}{os.pathsep}{path}"}

        # Fixed precedence: first matching name wins
        self._builtins: dict[str, Callable[[str], CommandResult]] = {
            "ls": self._ls,
            "pwd": self._pwd,
            "cat": self._cat,
            "echo": self._echo,
            "mkdir": self._mkdir,
            "touch": self._touch,
            "rm": self._rm,
            "cp": self._cp,
            "mv": self._mv,
        }
        # Built-ins that need an argument; bare forms fall through to the shell
        self._needs_argument = frozenset({"cat", "echo", "mkdir", "touch", "rm", "cp", "mv"})

    @property
    def home_directory(self) -> Path:
        return self._home

    @property
    def current_directory(self) -> Path:
        return self._cwd

    def resolve_path(self, path: str) -> Path:
        """Resolve absolute, ~ and relative paths against the working directory."""
        path = path.strip()
        if path == "~":
            return self._home
        if path.startswith("~/"):
            return (self._home / path[2:]).resolve()
        candidate = Path(path)
        if candidate.is_absolute():
            return candidate.resolve()
        return (self._cwd / candidate).resolve()

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def execute(self, command_line: str) -> CommandResult:
        """Run a command line. Never raises; failures come back as exit code 1."""
        command_line = command_line.strip()
        if not command_line:
            return CommandResult("", "Empty command", 1)

        builtin = self._match_builtin(command_line)
        try:
            if builtin is not None:
                handler, argument = builtin
                return await asyncio.to_thread(handler, argument)
            return await self._execute_native(command_line)
        except Exception as e:
            logger.exception("Command failed: %s", command_line)
            return CommandResult("", f"Error: {e}", 1)

    def cd_target(self, command_line: str) -> str | None:
        """The path of a plain ``cd`` / ``cd <path>`` line, else None.

        Compound lines such as ``cd build && make`` return None and belong
        to execute(), which runs them in the native shell.
        """
        name, _, argument = command_line.strip().partition(" ")
        if name != "cd" or has_shell_operators(command_line):
            return None
        argument = argument.strip()
        if len(argument.split()) > 1 and _strip_quotes(argument) == argument:
            return None
        return argument

    def change_directory(self, path: str) -> CommandResult:
        """Move the working directory. State only changes if the target is a directory."""
        path = _strip_quotes(path.strip())
        if not path or path == "~":
            target = self._home
        elif path == "..":
            target = self._cwd.parent
        else:
            target = self.resolve_path(path)

        if target.is_dir():
            self._cwd = target
            return CommandResult("", "", 0)
        return CommandResult("", f"Directory not found: {path}", 1)

    # ------------------------------------------------------------------
    # Dispatch
    # ------------------------------------------------------------------

    def _match_builtin(self, command_line: str) -> tuple[Callable[[str], CommandResult], str] | None:
        if has_shell_operators(command_line):
            return None
        name, _, argument = command_line.partition(" ")
        handler = self._builtins.get(name)
        if handler is None:
            return None
        argument = argument.strip()
        if name in self._needs_argument and not argument:
            return None
        # Flags are not emulated
        if argument.startswith("-"):
            return None
        if name in _SINGLE_PATH:
            argument = _strip_quotes(argument)
        return handler, argument

    async def _execute_native(self, command_line: str) -> CommandResult:
        proc = await asyncio.create_subprocess_shell(
            command_line,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(self._cwd),
            env=self._env,
        )
        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError:
            await kill_process(proc)
            logger.warning("Command timed out after %ss: %s", self._timeout, command_line)
            return CommandResult("", f"Command timed out after {self._timeout}s", 1)
        except BaseException:
            # Cancelled run: the child must not outlive it
            await kill_process(proc)
            raise

        return CommandResult(
            truncate(stdout.decode("utf-8", errors="replace"), self._max_output_chars, "output"),
            truncate(stderr.decode("utf-8", errors="replace"), self._max_output_chars, "stderr"),
            proc.returncode if proc.returncode is not None else 1,
        )

    # ------------------------------------------------------------------
    # Built-ins
    # ------------------------------------------------------------------

    def _ls(self, argument: str) -> CommandResult:
        target = self.resolve_path(argument) if argument else self._cwd
        if not target.is_dir():
            return CommandResult("", f"Directory not found: {argument or target}", 1)

        lines = []
        for entry in sorted(target.iterdir(), key=lambda p: p.name):
            if entry.is_dir():
                lines.append(f"d {entry.name} (0 bytes)")
            else:
                lines.append(f"- {entry.name} ({entry.stat().st_size} bytes)")
        return CommandResult("\n".join(lines), "", 0)

    def _pwd(self, argument: str) -> CommandResult:
        return CommandResult(str(self._cwd), "", 0)

    def _cat(self, argument: str) -> CommandResult:
        target = self.resolve_path(argument)
        if not target.exists():
            return CommandResult("", f"File not found: {argument}", 1)
        if not target.is_file():
            return CommandResult("", f"{argument} is not a file", 1)
        return CommandResult(target.read_text(encoding="utf-8", errors="replace"), "", 0)

    def _echo(self, argument: str) -> CommandResult:
        return CommandResult(_strip_quotes(argument), "", 0)

    def _mkdir(self, argument: str) -> CommandResult:
        target = self.resolve_path(argument)
        if target.exists():
            return CommandResult("", f"Failed to create directory: {argument} already exists", 1)
        try:
            target.mkdir(parents=True)
        except OSError as e:
            return CommandResult("", f"Failed to create directory: {argument} ({e.strerror or e})", 1)
        return CommandResult(f"Directory created: {argument}", "", 0)

    def _touch(self, argument: str) -> CommandResult:
        target = self.resolve_path(argument)
        try:
            target.touch(exist_ok=True)
        except OSError as e:
            return CommandResult("", f"Failed to create file: {e.strerror or e}", 1)
        return CommandResult(f"File created: {argument}", "", 0)

    def _rm(self, argument: str) -> CommandResult:
        target = self.resolve_path(argument)
        if not target.exists() and not target.is_symlink():
            return CommandResult("", f"File not found: {argument}", 1)
        try:
            if target.is_dir() and not target.is_symlink():
                shutil.rmtree(target)
            else:
                target.unlink()
        except OSError as e:
            return CommandResult("", f"Failed to remove: {argument} ({e.strerror or e})", 1)
        return CommandResult(f"Removed: {argument}", "", 0)

    def _two_paths(self, verb: str, argument: str) -> tuple[Path, Path, list[str]] | CommandResult:
        parts = argument.split()
        if len(parts) != 2:
            return CommandResult("", f"Usage: {verb} <source> <destination>", 1)
        source = self.resolve_path(parts[0])
        if not source.exists():
            return CommandResult("", f"Source not found: {parts[0]}", 1)
        return source, self.resolve_path(parts[1]), parts

    def _cp(self, argument: str) -> CommandResult:
        paths = self._two_paths("cp", argument)
        if isinstance(paths, CommandResult):
            return paths
        source, dest, parts = paths
        try:
            if source.is_dir():
                shutil.copytree(source, dest, dirs_exist_ok=True)
            else:
                shutil.copy2(source, dest)
        except OSError as e:
            return CommandResult("", f"Copy failed: {e}", 1)
        return CommandResult(f"Copied: {parts[0]} -> {parts[1]}", "", 0)

    def _mv(self, argument: str) -> CommandResult:
        paths = self._two_paths("mv", argument)
        if isinstance(paths, CommandResult):
            return paths
        source, dest, parts = paths
        try:
            shutil.move(str(source), str(dest))
        except OSError as e:
            return CommandResult("", f"Move failed: {e}", 1)
        return CommandResult(f"Moved: {parts[0]} -> {parts[1]}", "", 0)
