"""File-system operations used by the file tools.

Every operation returns a Result instead of raising, so the tool layer
can turn failures into error results with the underlying reason.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass
from pathlib import Path

from termagent.api.models import Failure, Result, Success
from termagent.errors import ToolExecutionError

_MAX_FILE_SIZE = 1 * 1024 * 1024  # 1MB


@dataclass(frozen=True)
class FileInfo:
    name: str
    path: str
    is_directory: bool
    size: int
    last_modified: float


def _failure(action: str, path: Path, exc: OSError) -> Failure:
    reason = exc.strerror or str(exc)
    return Failure(ToolExecutionError(f"Failed to {action}: {path} ({reason})"))


class FileSystem:
    """File operations rooted at absolute paths."""

    def __init__(self, max_file_size: int = _MAX_FILE_SIZE) -> None:
        self._max_file_size = max_file_size

    def read_file(self, path: Path) -> Result[str]:
        if not path.exists():
            return Failure(ToolExecutionError(f"File not found: {path}"))
        if not path.is_file():
            return Failure(ToolExecutionError(f"Not a file: {path}"))
        try:
            size = path.stat().st_size
            if size > self._max_file_size:
                return Failure(ToolExecutionError(
                    f"File too large: {size:,} bytes (limit: {self._max_file_size:,} bytes)"
                ))
            return Success(path.read_text(encoding="utf-8", errors="replace"))
        except OSError as e:
            return _failure("read file", path, e)

    def write_file(self, path: Path, content: str) -> Result[int]:
        """Write content, creating parent directories. Returns bytes written."""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            data = content.encode("utf-8")
            path.write_bytes(data)
            return Success(len(data))
        except OSError as e:
            return _failure("write file", path, e)

    def list_files(self, directory: Path) -> Result[list[FileInfo]]:
        if not directory.is_dir():
            return Failure(ToolExecutionError(f"Not a directory: {directory}"))
        try:
            entries = []
            for entry in sorted(directory.iterdir(), key=lambda p: p.name):
                stat = entry.stat()
                is_dir = entry.is_dir()
                entries.append(FileInfo(
                    name=entry.name,
                    path=str(entry),
                    is_directory=is_dir,
                    size=0 if is_dir else stat.st_size,
                    last_modified=stat.st_mtime,
                ))
            return Success(entries)
        except OSError as e:
            return _failure("list directory", directory, e)

    def create_directory(self, path: Path) -> Result[Path]:
        if path.is_dir():
            return Failure(ToolExecutionError(f"Directory already exists: {path}"))
        try:
            path.mkdir(parents=True)
            return Success(path)
        except OSError as e:
            return _failure("create directory", path, e)

    def delete(self, path: Path) -> Result[Path]:
        """Delete a file, or a directory recursively."""
        if not path.exists() and not path.is_symlink():
            return Failure(ToolExecutionError(f"File not found: {path}"))
        try:
            if path.is_dir() and not path.is_symlink():
                shutil.rmtree(path)
            else:
                path.unlink()
            return Success(path)
        except OSError as e:
            return _failure("delete", path, e)
