"""groqchat server entry point.

  Settings -> GroqTransport -> App -> Uvicorn

Uses Starlette lifespan to manage the transport's httpx client on the
same event loop as uvicorn.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import uvicorn
from starlette.applications import Starlette

from groqchat.api.rest import create_app
from groqchat.config import Settings
from groqchat.transport import GroqTransport

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )


def build_app(settings: Settings, transport: GroqTransport | None = None) -> Starlette:
    """Build the Starlette app; the transport is started and closed by lifespan."""
    transport = transport or GroqTransport(settings)

    @asynccontextmanager
    async def lifespan(app: Starlette) -> AsyncIterator[None]:
        await transport.start()
        logger.info(
            "groqchat started: %d modes, default=%s",
            len(settings.models),
            settings.default_mode,
        )
        try:
            yield
        finally:
            await transport.close()
            logger.info("groqchat shutdown complete.")

    return create_app(transport=transport, settings=settings, lifespan=lifespan)


def main() -> None:
    """Entry point -- parse settings, build app, run server."""
    settings = Settings()
    configure_logging(settings)

    logger.info("Starting groqchat on %s:%d", settings.host, settings.port)
    logger.info("Provider: %s", settings.api_base_url)
    if not settings.groq_api_key:
        logger.warning("GROQ_API_KEY is not set -- /api/chat will fail")

    app = build_app(settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level,
    )


if __name__ == "__main__":
    main()
