"""Shared fixtures: settings rooted in tmp_path, engines and a scripted gateway."""

import sys
import uuid
from unittest.mock import AsyncMock

import pytest

from termagent.api.models import ApiResponse, Success, TextBlock, ToolUseBlock
from termagent.config import Settings
from termagent.shell import CommandEngine


@pytest.fixture
def settings(tmp_path, monkeypatch):
    """Settings with all sandbox roots under tmp_path and no .env influence."""
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    return Settings(
        _env_file=None,
        ANTHROPIC_API_KEY="test-key",
        home_dir=str(tmp_path / "home"),
        python_command=sys.executable,
        command_timeout=10,
        max_turns=5,
    )


@pytest.fixture
def engine(settings):
    return CommandEngine(
        settings.home_dir,
        timeout=settings.command_timeout,
        max_output_chars=settings.max_output_chars,
    )


# ---------------------------------------------------------------------------
# Scripted model responses
# ---------------------------------------------------------------------------


def make_response(
    text: str = "",
    stop_reason: str = "end_turn",
    tool_uses: list[dict] | None = None,
    usage: dict | None = None,
) -> Success:
    """Build Success(ApiResponse) with text and/or tool_use blocks."""
    content: list = []
    if text:
        content.append(TextBlock(text=text))
    for tu in tool_uses or []:
        content.append(ToolUseBlock(
            id=tu.get("id", f"toolu_{uuid.uuid4().hex[:12]}"),
            name=tu.get("name"),
            input=tu.get("input", {}),
        ))
    return Success(ApiResponse(content=content, stop_reason=stop_reason, usage=usage))


@pytest.fixture
def gateway():
    """Stand-in for ModelGateway; tests set send.side_effect to a response script."""
    gw = AsyncMock()
    gw.send = AsyncMock(return_value=make_response("ok"))
    return gw
