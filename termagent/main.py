"""termagent entry point.

Initializes all components and starts the server:
  Settings -> ModelGateway -> SessionManager -> App -> Uvicorn

Uses Starlette lifespan to open and close the gateway's HTTP client on
the same event loop as uvicorn.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from starlette.applications import Starlette

from termagent.api.gateway import ModelGateway
from termagent.api.rest import create_app
from termagent.api.sessions import SessionManager
from termagent.config import Settings

logger = logging.getLogger(__name__)


def build_app(settings: Settings, gateway: ModelGateway | None = None) -> Starlette:
    """Build the Starlette app with its components and lifespan."""
    settings.ensure_directories()
    gateway = gateway or ModelGateway(settings)
    sessions = SessionManager(settings, gateway)

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        # Startup
        await gateway.start()
        app.state.components = {"gateway": gateway, "sessions": sessions}
        logger.info(
            "termagent started: model=%s, max_turns=%d, home=%s",
            settings.model,
            settings.max_turns,
            settings.home_dir,
        )
        yield

        # Shutdown
        logger.info("Shutting down termagent...")
        await gateway.close()
        logger.info("termagent shutdown complete.")

    return create_app(sessions=sessions, settings=settings, lifespan=lifespan)


def main() -> None:
    """Entry point -- parse settings, build app, run server."""
    settings = Settings()

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    logger.info("Starting termagent (model: %s)", settings.model)
    logger.info("Sandbox roots: home=%s tmp=%s bin=%s", settings.home_dir, settings.tmp_dir, settings.bin_dir)

    if not settings.anthropic_api_key:
        logger.warning("ANTHROPIC_API_KEY is not set -- /chat endpoints will fail")

    app = build_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
