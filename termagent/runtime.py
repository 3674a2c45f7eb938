"""Language runtimes: run Python or JavaScript source through a local interpreter.

Source text is written to a temp file under the tmp root and executed with
the session's working directory as cwd. Results come back as
Success(stdout) or Failure(error) and never raise.
"""

from __future__ import annotations

import asyncio
import logging
import tempfile
from pathlib import Path

from termagent.api.models import Failure, Result, Success
from termagent.config import Settings
from termagent.errors import ToolExecutionError
from termagent.shell.engine import CommandEngine
from termagent.utils import kill_process, truncate

logger = logging.getLogger(__name__)


class LanguageRuntime:
    """Runs source files with one interpreter."""

    language = ""
    label = ""
    suffix = ""

    def __init__(self, interpreter: str, engine: CommandEngine, settings: Settings) -> None:
        self._interpreter = interpreter
        self._engine = engine
        self._tmp_dir = Path(settings.tmp_dir)
        self._timeout = settings.command_timeout
        self._max_output_chars = settings.max_output_chars

    async def execute_code(self, code: str) -> Result[str]:
        """Write code to a temp script, run it, and delete the script."""
        try:
            script = await asyncio.to_thread(self._write_temp_script, code)
        except OSError as e:
            return Failure(ToolExecutionError(f"Failed to execute {self.label} code: {e}"))
        try:
            return await self._run(script)
        finally:
            script.unlink(missing_ok=True)

    async def execute(self, script_path: str, args: list[str] | None = None) -> Result[str]:
        """Run an existing script, resolved against the working directory."""
        script = self._engine.resolve_path(script_path)
        if not script.is_file():
            return Failure(ToolExecutionError(f"Script not found: {script_path}"))
        return await self._run(script, args or [])

    async def check_version(self) -> str | None:
        """Interpreter version string, or None if it is not available."""
        try:
            proc = await asyncio.create_subprocess_exec(
                self._interpreter,
                "--version",
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=10)
        except (OSError, asyncio.TimeoutError) as e:
            logger.debug("%s not available: %s", self._interpreter, e)
            return None
        if proc.returncode != 0:
            return None
        # Older Pythons print --version on stderr
        return (stdout or stderr).decode("utf-8", errors="replace").strip() or None

    def _write_temp_script(self, code: str) -> Path:
        self._tmp_dir.mkdir(parents=True, exist_ok=True)
        with tempfile.NamedTemporaryFile(
            "w",
            encoding="utf-8",
            prefix=f"{self.language}_",
            suffix=self.suffix,
            dir=self._tmp_dir,
            delete=False,
        ) as handle:
            handle.write(code)
        return Path(handle.name)

    async def _run(self, script: Path, args: list[str] | None = None) -> Result[str]:
        try:
            proc = await asyncio.create_subprocess_exec(
                self._interpreter,
                str(script),
                *(args or []),
                stdin=asyncio.subprocess.DEVNULL,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=str(self._engine.current_directory),
            )
        except OSError as e:
            return Failure(ToolExecutionError(f"Failed to execute {self.label} code: {e}"))

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError:
            await kill_process(proc)
            return Failure(ToolExecutionError(
                f"{self.label} execution timed out after {self._timeout}s"
            ))
        except BaseException:
            await kill_process(proc)
            raise

        out = truncate(stdout.decode("utf-8", errors="replace"), self._max_output_chars, "output")
        err = truncate(stderr.decode("utf-8", errors="replace"), self._max_output_chars, "stderr")
        if proc.returncode == 0:
            return Success(out)
        return Failure(ToolExecutionError(f"{self.label} execution failed:\n{err}"))


class PythonRuntime(LanguageRuntime):
    language = "python"
    label = "Python"
    suffix = ".py"


class NodeRuntime(LanguageRuntime):
    language = "javascript"
    label = "Node.js"
    suffix = ".js"


class RuntimeManager:
    """Owns the Python and Node runtimes of one session."""

    def __init__(self, engine: CommandEngine, settings: Settings) -> None:
        self.python = PythonRuntime(settings.python_command, engine, settings)
        self.node = NodeRuntime(settings.node_command, engine, settings)

    def for_language(self, language: str) -> LanguageRuntime | None:
        language = language.lower()
        if language in ("python", "py"):
            return self.python
        if language in ("node", "javascript", "js"):
            return self.node
        return None

    async def execute_code(self, code: str, language: str) -> Result[str]:
        runtime = self.for_language(language)
        if runtime is None:
            return Failure(ToolExecutionError(f"Unsupported runtime: {language}"))
        return await runtime.execute_code(code)

    async def execute_script(self, script_path: str, args: list[str] | None = None) -> Result[str]:
        """Run a script with the runtime matching its extension."""
        if script_path.endswith(".py"):
            return await self.python.execute(script_path, args)
        if script_path.endswith((".js", ".mjs")):
            return await self.node.execute(script_path, args)
        return Failure(ToolExecutionError(f"Unknown or unsupported runtime for: {script_path}"))

    async def check_available_runtimes(self) -> dict[str, str | None]:
        python_version, node_version = await asyncio.gather(
            self.python.check_version(),
            self.node.check_version(),
        )
        return {"python": python_version, "node": node_version}
