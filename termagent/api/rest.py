"""REST API for termagent.

Endpoints:
  POST   /chat                          - Run the agent on a message, get the response
  POST   /chat/stream                   - Same, as SSE: tool events then the response
  DELETE /chat/{session_id}             - Clear a session's conversation
  POST   /terminal/{session_id}/execute - Run a terminal command line (cd included)
  GET    /terminal/{session_id}/history - Command history, optional ?q= search
  GET    /tools                         - Tool catalogue as sent to the model
  GET    /status                        - Sessions, model and available runtimes
  GET    /health                        - Health check
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any
from uuid import uuid4

from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, StreamingResponse
from starlette.routing import Route

from termagent.api import registry
from termagent.api.sessions import SessionManager
from termagent.config import Settings
from termagent.events import ToolEventQueue, ToolEventRecorder
from termagent.runtime import RuntimeManager
from termagent.shell import CommandEngine

logger = logging.getLogger(__name__)


async def _read_body(request: Request) -> dict[str, Any] | None:
    try:
        body = await request.json()
    except ValueError:
        return None
    return body if isinstance(body, dict) else None


def create_app(
    sessions: SessionManager,
    settings: Settings,
    lifespan: Any | None = None,
) -> Starlette:
    """Create the Starlette ASGI app with all routes."""

    async def chat(request: Request) -> JSONResponse:
        """POST /chat - Send a message, get a response."""
        body = await _read_body(request)
        if body is None:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        message = body.get("message")
        if not message or not isinstance(message, str):
            return JSONResponse({"error": "Missing required field: message"}, status_code=400)

        session_id = body.get("session_id") or str(uuid4())
        session = sessions.get_or_create(session_id)
        recorder = ToolEventRecorder()
        response_text = await session.chat(message, recorder)

        return JSONResponse({
            "response": response_text,
            "session_id": session_id,
            "usage": session.runner.last_usage,
            "tool_events": [event.to_dict() for event in recorder.events],
        })

    async def chat_stream(request: Request) -> StreamingResponse | JSONResponse:
        """POST /chat/stream - SSE stream of tool events, then the final response."""
        body = await _read_body(request)
        if body is None:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        message = body.get("message")
        if not message or not isinstance(message, str):
            return JSONResponse({"error": "Missing required field: message"}, status_code=400)

        session_id = body.get("session_id") or str(uuid4())
        session = sessions.get_or_create(session_id)
        queue = ToolEventQueue()

        async def run() -> str:
            try:
                return await session.chat(message, queue)
            finally:
                queue.close()

        async def event_generator():
            task = asyncio.create_task(run(), name=f"agent-run-{session_id}")
            try:
                async for event in queue.events():
                    data = json.dumps({"type": "tool_event", **event.to_dict()})
                    yield f"data: {data}\n\n"
                response_text = await task
                data = json.dumps({
                    "type": "done",
                    "response": response_text,
                    "session_id": session_id,
                    "usage": session.runner.last_usage,
                })
                yield f"data: {data}\n\n"
            except Exception as e:
                logger.error("Stream error: %s", e)
                error_data = json.dumps({"type": "error", "text": str(e)})
                yield f"data: {error_data}\n\n"
            finally:
                if not task.done():
                    task.cancel()

        return StreamingResponse(
            event_generator(),
            media_type="text/event-stream",
            headers={
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
            },
        )

    async def end_chat(request: Request) -> JSONResponse:
        """DELETE /chat/{session_id} - Clear a conversation."""
        session_id = request.path_params["session_id"]
        session = sessions.get(session_id)
        if session is None:
            return JSONResponse({"error": f"Unknown session: {session_id}"}, status_code=404)
        await session.reset()
        return JSONResponse({"status": "cleared", "session_id": session_id})

    async def terminal_execute(request: Request) -> JSONResponse:
        """POST /terminal/{session_id}/execute - Run one command line."""
        body = await _read_body(request)
        if body is None:
            return JSONResponse({"error": "Invalid JSON body"}, status_code=400)

        command = body.get("command")
        if not command or not isinstance(command, str):
            return JSONResponse({"error": "Missing required field: command"}, status_code=400)

        session_id = request.path_params["session_id"]
        session = sessions.get_or_create(session_id)
        result = await session.terminal(command)
        return JSONResponse({
            **result.to_dict(),
            "cwd": str(session.engine.current_directory),
            "session_id": session_id,
        })

    async def terminal_history(request: Request) -> JSONResponse:
        """GET /terminal/{session_id}/history - Newest first; ?q= filters."""
        session_id = request.path_params["session_id"]
        session = sessions.get(session_id)
        if session is None:
            return JSONResponse({"error": f"Unknown session: {session_id}"}, status_code=404)
        query = request.query_params.get("q")
        entries = session.history.search(query) if query else session.history.entries()
        return JSONResponse({"session_id": session_id, "history": entries})

    async def tools(request: Request) -> JSONResponse:
        """GET /tools - Tool definitions in Anthropic format."""
        return JSONResponse({"tools": registry.tool_definitions()})

    async def status(request: Request) -> JSONResponse:
        """GET /status - Model, sessions and runtimes."""
        probe = RuntimeManager(CommandEngine(settings.home_dir), settings)
        runtimes = await probe.check_available_runtimes()
        return JSONResponse({
            "model": settings.model,
            "sessions": len(sessions),
            "max_turns": settings.max_turns,
            "home_dir": settings.home_dir,
            "runtimes": runtimes,
        })

    async def health(request: Request) -> JSONResponse:
        """GET /health - Liveness check."""
        return JSONResponse({"status": "healthy"})

    routes = [
        Route("/chat", chat, methods=["POST"]),
        Route("/chat/stream", chat_stream, methods=["POST"]),
        Route("/chat/{session_id}", end_chat, methods=["DELETE"]),
        Route("/terminal/{session_id}/execute", terminal_execute, methods=["POST"]),
        Route("/terminal/{session_id}/history", terminal_history),
        Route("/tools", tools),
        Route("/status", status),
        Route("/health", health),
    ]

    kwargs: dict[str, Any] = {"routes": routes}
    if lifespan is not None:
        kwargs["lifespan"] = lifespan
    return Starlette(**kwargs)
