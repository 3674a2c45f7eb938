"""Tests for termagent/api/gateway.py using httpx.MockTransport.

No network: every request is answered by a handler that records what
was sent and returns a canned Messages API body.
"""

import json

import httpx
import pytest

from termagent.api import registry
from termagent.api.gateway import ModelGateway, build_anthropic_headers, parse_response
from termagent.api.models import (
    Failure,
    Message,
    Success,
    TextBlock,
    ToolResultBlock,
    ToolUseBlock,
)
from termagent.errors import ApiError, TransportError


def _gateway(settings, handler) -> ModelGateway:
    http = httpx.AsyncClient(
        base_url="https://api.test",
        headers=build_anthropic_headers(settings),
        transport=httpx.MockTransport(handler),
    )
    return ModelGateway(settings, http=http)


def _ok_body(content, stop_reason="end_turn"):
    return {
        "id": "msg_1",
        "type": "message",
        "role": "assistant",
        "content": content,
        "stop_reason": stop_reason,
        "usage": {"input_tokens": 10, "output_tokens": 5},
    }


# ---------------------------------------------------------------------------
# parse_response
# ---------------------------------------------------------------------------


class TestParseResponse:
    def test_text_and_tool_use(self):
        response = parse_response(_ok_body(
            [
                {"type": "text", "text": "Listing."},
                {"type": "tool_use", "id": "t1", "name": "list_files", "input": {}},
            ],
            stop_reason="tool_use",
        ))
        assert response.stop_reason == "tool_use"
        assert response.content == [
            TextBlock(text="Listing."),
            ToolUseBlock(id="t1", name="list_files", input={}),
        ]
        assert response.usage == {"input_tokens": 10, "output_tokens": 5}

    def test_tool_use_missing_id_kept_as_malformed(self):
        response = parse_response(_ok_body(
            [{"type": "tool_use", "name": "list_files"}],
            stop_reason="tool_use",
        ))
        (block,) = response.content
        assert block.id is None
        assert not block.is_well_formed

    def test_unknown_block_types_skipped(self):
        response = parse_response(_ok_body([
            {"type": "thinking", "thinking": "..."},
            {"type": "text", "text": "hi"},
        ]))
        assert response.content == [TextBlock(text="hi")]

    @pytest.mark.parametrize("body", [
        [],
        {"content": "not a list", "stop_reason": "end_turn"},
        {"content": []},
        {"content": ["string block"], "stop_reason": "end_turn"},
    ])
    def test_malformed_bodies(self, body):
        with pytest.raises(ApiError):
            parse_response(body)


# ---------------------------------------------------------------------------
# ModelGateway.send
# ---------------------------------------------------------------------------


class TestModelGateway:
    @pytest.mark.asyncio
    async def test_request_shape(self, settings):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["headers"] = request.headers
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json=_ok_body([{"type": "text", "text": "hello"}]))

        gateway = _gateway(settings, handler)
        history = (Message(role="user", content="hi"),)
        result = await gateway.send(history, "be brief", registry.TOOL_CATALOGUE)

        assert isinstance(result, Success)
        assert result.value.content == [TextBlock(text="hello")]
        assert captured["url"] == "https://api.test/v1/messages"
        assert captured["headers"]["x-api-key"] == "test-key"
        assert captured["headers"]["anthropic-version"] == "2023-06-01"

        body = captured["body"]
        assert body["model"] == settings.model
        assert body["max_tokens"] == settings.max_tokens
        assert body["system"] == "be brief"
        assert body["messages"] == [{"role": "user", "content": "hi"}]
        assert [tool["name"] for tool in body["tools"]] == [t.name for t in registry.TOOL_CATALOGUE]
        await gateway.close()

    @pytest.mark.asyncio
    async def test_block_messages_serialised(self, settings):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json=_ok_body([]))

        gateway = _gateway(settings, handler)
        history = (
            Message(role="user", content="list"),
            Message(role="assistant", content=(ToolUseBlock(id="t1", name="list_files", input={}),)),
            Message(role="user", content=(ToolResultBlock(tool_use_id="t1", content="FILE  a", is_error=False),)),
        )
        await gateway.send(history)

        messages = captured["body"]["messages"]
        assert messages[1]["content"] == [{"type": "tool_use", "id": "t1", "name": "list_files", "input": {}}]
        assert messages[2]["content"] == [
            {"type": "tool_result", "tool_use_id": "t1", "content": "FILE  a", "is_error": False},
        ]
        assert "system" not in captured["body"]
        assert "tools" not in captured["body"]
        await gateway.close()

    @pytest.mark.asyncio
    async def test_history_not_mutated(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, json=_ok_body([{"type": "text", "text": "x"}]))

        gateway = _gateway(settings, handler)
        history = (Message(role="user", content="hi"),)
        await gateway.send(history)
        assert history == (Message(role="user", content="hi"),)
        await gateway.close()

    @pytest.mark.asyncio
    async def test_api_error_status(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(429, json={
                "type": "error",
                "error": {"type": "rate_limit_error", "message": "slow down"},
            })

        gateway = _gateway(settings, handler)
        result = await gateway.send((Message(role="user", content="hi"),))
        assert isinstance(result, Failure)
        assert isinstance(result.error, ApiError)
        assert result.error.status_code == 429
        assert result.error.error_type == "rate_limit_error"
        assert "slow down" in result.message
        await gateway.close()

    @pytest.mark.asyncio
    async def test_non_json_error_body(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(502, text="Bad Gateway")

        gateway = _gateway(settings, handler)
        result = await gateway.send((Message(role="user", content="hi"),))
        assert isinstance(result, Failure)
        assert "HTTP 502: Bad Gateway" in result.message
        await gateway.close()

    @pytest.mark.asyncio
    async def test_malformed_success_body(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            return httpx.Response(200, text="not json")

        gateway = _gateway(settings, handler)
        result = await gateway.send((Message(role="user", content="hi"),))
        assert isinstance(result, Failure)
        assert isinstance(result.error, ApiError)
        await gateway.close()

    @pytest.mark.asyncio
    async def test_transport_error(self, settings):
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        gateway = _gateway(settings, handler)
        result = await gateway.send((Message(role="user", content="hi"),))
        assert isinstance(result, Failure)
        assert isinstance(result.error, TransportError)
        assert "connection refused" in result.message
        await gateway.close()

    @pytest.mark.asyncio
    async def test_send_before_start(self, settings):
        result = await ModelGateway(settings).send((Message(role="user", content="hi"),))
        assert isinstance(result, Failure)
        assert isinstance(result.error, TransportError)

    @pytest.mark.asyncio
    async def test_start_and_close(self, settings):
        gateway = ModelGateway(settings)
        await gateway.start()
        assert gateway._http is not None
        await gateway.close()
        assert gateway._http is None
