"""Model gateway -- one request/response exchange with the Anthropic Messages API.

Serialises the conversation and tool catalogue into a wire request, posts
it with httpx, and parses the reply into content blocks plus a stop
reason. Every failure collapses into a single Failure; callers never see
a partial response. No retries happen here.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

import httpx

from termagent.api.models import (
    ApiResponse,
    Failure,
    Message,
    Result,
    Success,
    TextBlock,
    ToolDescriptor,
    ToolUseBlock,
)
from termagent.config import Settings
from termagent.errors import ApiError, TermAgentError, TransportError

logger = logging.getLogger(__name__)

# Anthropic API version header
_API_VERSION = "2023-06-01"


def build_anthropic_headers(settings: Settings) -> dict[str, str]:
    """Static auth and version headers for every request."""
    headers: dict[str, str] = {
        "anthropic-version": _API_VERSION,
        "content-type": "application/json",
    }
    if settings.anthropic_api_key:
        headers["x-api-key"] = settings.anthropic_api_key
    else:
        logger.warning("ANTHROPIC_API_KEY is not set -- API calls will fail")
    return headers


def parse_response(data: Any) -> ApiResponse:
    """Parse a Messages API body. Raises ApiError if the shape is wrong."""
    if not isinstance(data, dict):
        raise ApiError("Malformed response: body is not a JSON object")
    raw_content = data.get("content")
    if not isinstance(raw_content, list):
        raise ApiError("Malformed response: missing content list")
    stop_reason = data.get("stop_reason")
    if not isinstance(stop_reason, str):
        raise ApiError("Malformed response: missing stop_reason")

    blocks: list[TextBlock | ToolUseBlock] = []
    for raw in raw_content:
        if not isinstance(raw, dict):
            raise ApiError("Malformed response: content block is not an object")
        block_type = raw.get("type")
        if block_type == "text":
            blocks.append(TextBlock(text=str(raw.get("text", ""))))
        elif block_type == "tool_use":
            tool_input = raw.get("input")
            tool_id = raw.get("id")
            tool_name = raw.get("name")
            blocks.append(ToolUseBlock(
                id=str(tool_id) if tool_id else None,
                name=str(tool_name) if tool_name else None,
                input=tool_input if isinstance(tool_input, dict) else {},
            ))
        else:
            logger.debug("Skipping unsupported content block type: %s", block_type)

    usage = data.get("usage")
    return ApiResponse(
        content=blocks,
        stop_reason=stop_reason,
        id=str(data.get("id", "")),
        role=str(data.get("role", "assistant")),
        usage=usage if isinstance(usage, dict) else None,
    )


class ModelGateway:
    """Sends conversation state to the model and returns its reply."""

    def __init__(self, settings: Settings, http: httpx.AsyncClient | None = None) -> None:
        self._settings = settings
        self._http = http

    async def start(self) -> None:
        """Initialize the httpx client with auth and timeout settings."""
        if self._http is not None:
            return
        settings = self._settings

        timeout = httpx.Timeout(
            connect=settings.api_timeout_connect,
            read=settings.api_timeout_read,
            write=settings.api_timeout_write,
            pool=10.0,
        )
        limits = httpx.Limits(
            max_connections=10,
            max_keepalive_connections=5,
        )
        self._http = httpx.AsyncClient(
            base_url=settings.api_base_url,
            headers=build_anthropic_headers(settings),
            timeout=timeout,
            limits=limits,
        )
        logger.info("httpx client initialized (model: %s)", settings.model)

    async def close(self) -> None:
        """Clean up httpx client."""
        if self._http:
            await self._http.aclose()
            self._http = None

    def build_payload(
        self,
        history: Sequence[Message],
        system_prompt: str | None = None,
        tools: Sequence[ToolDescriptor] | None = None,
    ) -> dict[str, Any]:
        """Build Anthropic Messages API request payload."""
        payload: dict[str, Any] = {
            "model": self._settings.model,
            "max_tokens": self._settings.max_tokens,
            "temperature": self._settings.temperature,
            "messages": [message.to_wire() for message in history],
            "stream": False,
        }
        if system_prompt:
            payload["system"] = system_prompt
        if tools:
            payload["tools"] = [tool.to_wire() for tool in tools]
        return payload

    async def send(
        self,
        history: Sequence[Message],
        system_prompt: str | None = None,
        tools: Sequence[ToolDescriptor] | None = None,
    ) -> Result[ApiResponse]:
        """Call the Messages API once.

        Returns Success(ApiResponse) or Failure(TransportError | ApiError).
        """
        try:
            return Success(await self._post(self.build_payload(history, system_prompt, tools)))
        except TermAgentError as e:
            logger.error("Model API call failed: %s", e)
            return Failure(e)

    async def _post(self, payload: dict[str, Any]) -> ApiResponse:
        if not self._http:
            raise TransportError("httpx client not initialized -- call start() first")

        try:
            response = await self._http.post("/v1/messages", json=payload)
        except httpx.TimeoutException as e:
            raise TransportError(f"API request timed out: {e}") from e
        except httpx.HTTPError as e:
            raise TransportError(f"HTTP error: {e}") from e

        if not response.is_success:
            # Parse error body
            try:
                error_data = response.json()
                error_type = error_data.get("error", {}).get("type", "unknown")
                error_msg = error_data.get("error", {}).get("message", "unknown error")
            except (ValueError, AttributeError):
                error_type = "http_error"
                error_msg = f"HTTP {response.status_code}: {response.text[:500]}"
            raise ApiError(
                f"Anthropic API error ({response.status_code}): {error_type} - {error_msg}",
                status_code=response.status_code,
                error_type=error_type,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ApiError(f"Malformed response body: {e}", status_code=response.status_code) from e
        return parse_response(data)
