"""Built-in tools: shell commands, file operations and code runners.

Each handler turns the result of one CommandEngine, FileSystem or
runtime call into a ToolSuccess or ToolError. Relative paths resolve
against the session's working directory.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from termagent.api import registry
from termagent.api.models import Failure, ToolError, ToolResult, ToolSuccess
from termagent.api.tools import ToolDispatcher
from termagent.errors import CommandNonZeroExit
from termagent.runtime import LanguageRuntime, RuntimeManager
from termagent.shell.engine import CommandEngine
from termagent.shell.filesystem import FileSystem

logger = logging.getLogger(__name__)


def _error(failure: Failure, **details: Any) -> ToolError:
    return ToolError.from_exception(failure.error, **details)


# ---------------------------------------------------------------------------
# Tool handlers
# ---------------------------------------------------------------------------


async def execute_command_tool(engine: CommandEngine, command: str) -> ToolResult:
    """Run a command line; a plain ``cd <path>`` moves the working directory."""
    command = str(command).strip()
    cd_target = engine.cd_target(command)
    if cd_target is not None:
        result = engine.change_directory(cd_target)
    else:
        result = await engine.execute(command)

    if result.exit_code == 0:
        if cd_target is not None:
            output = f"Changed directory to {engine.current_directory}"
        else:
            output = result.stdout or "Command executed successfully"
        return ToolSuccess(output=output, metadata={"exit_code": result.exit_code})

    return ToolError.from_exception(
        CommandNonZeroExit(command, result.exit_code, result.stderr),
        exit_code=result.exit_code,
        output=result.stdout,
    )


async def read_file_tool(engine: CommandEngine, fs: FileSystem, path: str) -> ToolResult:
    target = engine.resolve_path(str(path))
    result = await asyncio.to_thread(fs.read_file, target)
    if isinstance(result, Failure):
        return _error(result, path=str(path))
    return ToolSuccess(output=result.value, metadata={"path": str(target), "size": len(result.value)})


async def write_file_tool(engine: CommandEngine, fs: FileSystem, path: str, content: str) -> ToolResult:
    target = engine.resolve_path(str(path))
    result = await asyncio.to_thread(fs.write_file, target, str(content))
    if isinstance(result, Failure):
        return _error(result, path=str(path))
    return ToolSuccess(
        output=f"File written successfully to {target}",
        metadata={"path": str(target), "size": result.value},
    )


async def list_files_tool(engine: CommandEngine, fs: FileSystem, path: str | None = None) -> ToolResult:
    target = engine.resolve_path(str(path)) if path else engine.current_directory
    result = await asyncio.to_thread(fs.list_files, target)
    if isinstance(result, Failure):
        return _error(result, path=str(target))

    lines = []
    for info in result.value:
        if info.is_directory:
            lines.append(f"DIR  {info.name}")
        else:
            lines.append(f"FILE  {info.name}  {info.size} bytes")
    return ToolSuccess(
        output="\n".join(lines) or "Directory is empty",
        metadata={"path": str(target), "count": len(result.value)},
    )


async def create_directory_tool(engine: CommandEngine, fs: FileSystem, path: str) -> ToolResult:
    target = engine.resolve_path(str(path))
    result = await asyncio.to_thread(fs.create_directory, target)
    if isinstance(result, Failure):
        return _error(result, path=str(path))
    return ToolSuccess(output=f"Directory created: {target}", metadata={"path": str(target)})


async def delete_file_tool(engine: CommandEngine, fs: FileSystem, path: str) -> ToolResult:
    target = engine.resolve_path(str(path))
    result = await asyncio.to_thread(fs.delete, target)
    if isinstance(result, Failure):
        return _error(result, path=str(path))
    return ToolSuccess(output=f"Deleted: {target}", metadata={"path": str(target)})


async def run_code_tool(runtime: LanguageRuntime, code: str) -> ToolResult:
    result = await runtime.execute_code(str(code))
    if isinstance(result, Failure):
        return _error(result, language=runtime.language)
    return ToolSuccess(output=result.value, metadata={"language": runtime.language})


# ---------------------------------------------------------------------------
# Registration
# ---------------------------------------------------------------------------


def register_builtin_tools(
    dispatcher: ToolDispatcher,
    engine: CommandEngine,
    fs: FileSystem,
    runtimes: RuntimeManager,
) -> None:
    """Register the full tool catalogue with the dispatcher.

    Creates closure wrappers that bind the session's engine, file system
    and runtimes.
    """

    async def _execute_command(command: str) -> ToolResult:
        return await execute_command_tool(engine, command)

    async def _read_file(path: str) -> ToolResult:
        return await read_file_tool(engine, fs, path)

    async def _write_file(path: str, content: str) -> ToolResult:
        return await write_file_tool(engine, fs, path, content)

    async def _list_files(path: str | None = None) -> ToolResult:
        return await list_files_tool(engine, fs, path)

    async def _create_directory(path: str) -> ToolResult:
        return await create_directory_tool(engine, fs, path)

    async def _delete_file(path: str) -> ToolResult:
        return await delete_file_tool(engine, fs, path)

    async def _run_python(code: str) -> ToolResult:
        return await run_code_tool(runtimes.python, code)

    async def _run_javascript(code: str) -> ToolResult:
        return await run_code_tool(runtimes.node, code)

    dispatcher.register(registry.EXECUTE_COMMAND, _execute_command)
    dispatcher.register(registry.READ_FILE, _read_file)
    dispatcher.register(registry.WRITE_FILE, _write_file)
    dispatcher.register(registry.LIST_FILES, _list_files)
    dispatcher.register(registry.CREATE_DIRECTORY, _create_directory)
    dispatcher.register(registry.DELETE_FILE, _delete_file)
    dispatcher.register(registry.RUN_PYTHON, _run_python)
    dispatcher.register(registry.RUN_JAVASCRIPT, _run_javascript)
    logger.debug("Registered %d built-in tools", len(dispatcher.descriptors))
