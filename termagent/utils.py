"""Shared utility functions for termagent."""

from __future__ import annotations

import asyncio
import contextlib


def truncate(text: str, limit: int, label: str = "output") -> str:
    """Cut text at limit characters and append a marker naming what was cut.

    A limit of 0 or less disables truncation.
    """
    if limit <= 0 or len(text) <= limit:
        return text
    size = f"{limit // 1024}KB" if limit >= 1024 else f"{limit} chars"
    return text[:limit] + f"\n... [{label} truncated at {size}]"


async def kill_process(proc: asyncio.subprocess.Process) -> None:
    """Kill proc if it is still running and reap it."""
    if proc.returncode is not None:
        return
    with contextlib.suppress(ProcessLookupError):
        proc.kill()
    await proc.wait()
