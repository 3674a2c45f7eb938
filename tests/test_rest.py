"""Integration tests for REST API endpoints.

Uses httpx AsyncClient with ASGITransport for async HTTP testing. The
model gateway is a scripted AsyncMock; sessions, engines and tools are
real and rooted in tmp_path.
"""

import json
from pathlib import Path

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from termagent.api.rest import create_app
from termagent.api.sessions import SessionManager
from termagent.main import build_app

from conftest import make_response


@pytest.fixture
def sessions(settings, gateway):
    return SessionManager(settings, gateway)


@pytest_asyncio.fixture
async def client(sessions, settings):
    app = create_app(sessions=sessions, settings=settings)
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as c:
        yield c


# ---------------------------------------------------------------------------
# /chat
# ---------------------------------------------------------------------------


class TestChat:
    @pytest.mark.asyncio
    async def test_chat(self, client, gateway):
        gateway.send.side_effect = [make_response("Hi!", usage={"input_tokens": 4, "output_tokens": 2})]
        response = await client.post("/chat", json={"message": "hello", "session_id": "s1"})

        assert response.status_code == 200
        data = response.json()
        assert data["response"] == "Hi!"
        assert data["session_id"] == "s1"
        assert data["usage"] == {"input_tokens": 4, "output_tokens": 2}
        assert data["tool_events"] == []

    @pytest.mark.asyncio
    async def test_chat_generates_session_id(self, client):
        response = await client.post("/chat", json={"message": "hello"})
        assert response.status_code == 200
        assert response.json()["session_id"]

    @pytest.mark.asyncio
    async def test_chat_reports_tool_events(self, client, gateway):
        gateway.send.side_effect = [
            make_response("", "tool_use", [{"id": "t1", "name": "list_files", "input": {}}]),
            make_response("Empty."),
        ]
        response = await client.post("/chat", json={"message": "ls", "session_id": "s1"})
        events = response.json()["tool_events"]
        assert [e["phase"] for e in events] == ["started", "finished"]
        assert events[1]["message"] == "Directory is empty"

    @pytest.mark.asyncio
    async def test_chat_missing_message(self, client):
        response = await client.post("/chat", json={"session_id": "s1"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_chat_invalid_json(self, client):
        response = await client.post("/chat", content=b"{not json", headers={"content-type": "application/json"})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_end_chat(self, client, sessions):
        await client.post("/chat", json={"message": "hello", "session_id": "s1"})
        response = await client.delete("/chat/s1")
        assert response.status_code == 200
        assert len(sessions.get("s1").conversation) == 0

    @pytest.mark.asyncio
    async def test_end_unknown_chat(self, client):
        response = await client.delete("/chat/ghost")
        assert response.status_code == 404


class TestChatStream:
    @pytest.mark.asyncio
    async def test_stream_events_then_done(self, client, gateway):
        gateway.send.side_effect = [
            make_response("", "tool_use", [{"id": "t1", "name": "list_files", "input": {}}]),
            make_response("Nothing here."),
        ]
        response = await client.post("/chat/stream", json={"message": "ls", "session_id": "s1"})
        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/event-stream")

        payloads = [
            json.loads(line[len("data: "):])
            for line in response.text.splitlines()
            if line.startswith("data: ")
        ]
        assert [p["type"] for p in payloads] == ["tool_event", "tool_event", "done"]
        assert payloads[-1]["response"] == "Nothing here."


# ---------------------------------------------------------------------------
# /terminal
# ---------------------------------------------------------------------------


class TestTerminal:
    @pytest.mark.asyncio
    async def test_execute_and_cd(self, client):
        await client.post("/terminal/t1/execute", json={"command": "mkdir proj"})
        response = await client.post("/terminal/t1/execute", json={"command": "cd proj"})
        data = response.json()
        assert data["exit_code"] == 0
        assert data["cwd"].endswith("proj")

    @pytest.mark.asyncio
    async def test_execute_error(self, client):
        response = await client.post("/terminal/t1/execute", json={"command": "cat nope.txt"})
        data = response.json()
        assert data["exit_code"] == 1
        assert data["stderr"] == "File not found: nope.txt"

    @pytest.mark.asyncio
    async def test_execute_missing_command(self, client):
        response = await client.post("/terminal/t1/execute", json={})
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_history_and_search(self, client):
        for command in ("echo one", "pwd", "echo two"):
            await client.post("/terminal/t1/execute", json={"command": command})

        response = await client.get("/terminal/t1/history")
        assert response.json()["history"] == ["echo two", "pwd", "echo one"]

        response = await client.get("/terminal/t1/history", params={"q": "ECHO"})
        assert response.json()["history"] == ["echo two", "echo one"]

    @pytest.mark.asyncio
    async def test_history_unknown_session(self, client):
        response = await client.get("/terminal/ghost/history")
        assert response.status_code == 404


# ---------------------------------------------------------------------------
# /status, /health and app wiring
# ---------------------------------------------------------------------------


class TestStatus:
    @pytest.mark.asyncio
    async def test_health(self, client):
        response = await client.get("/health")
        assert response.json() == {"status": "healthy"}

    @pytest.mark.asyncio
    async def test_status(self, client, settings):
        response = await client.get("/status")
        data = response.json()
        assert data["model"] == settings.model
        assert data["sessions"] == 0
        assert data["runtimes"]["python"] is not None

    @pytest.mark.asyncio
    async def test_tools(self, client):
        response = await client.get("/tools")
        names = [tool["name"] for tool in response.json()["tools"]]
        assert names[0] == "execute_command"
        assert len(names) == 8

    def test_build_app_creates_directories(self, settings, gateway):
        build_app(settings, gateway=gateway)
        for directory in (settings.home_dir, settings.tmp_dir, settings.bin_dir):
            assert Path(directory).is_dir()
