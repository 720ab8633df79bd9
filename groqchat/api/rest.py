"""REST API for groqchat.

Endpoints:
  POST /api/chat    - Stream a completion for a transcript + mode
  GET  /api/models  - Mode catalog (mode key -> model id)
  GET  /health      - Health check

The chat route is a thin relay: it validates the request, resolves the
mode to a backend model and re-encodes the provider stream in
data-stream framing (see groqchat.wire).
"""

from __future__ import annotations

import logging
from typing import Any
from uuid import uuid4

import pydantic
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, PlainTextResponse, Response, StreamingResponse
from starlette.routing import Route

from groqchat.api.models import ChatRequest
from groqchat.config import Settings
from groqchat.transport import InferenceTransport, StreamRequest
from groqchat.wire import (
    DATA_STREAM_HEADER,
    DATA_STREAM_VERSION,
    encode_error,
    encode_event,
    encode_start,
)

logger = logging.getLogger(__name__)


def create_app(
    transport: InferenceTransport,
    settings: Settings,
    lifespan: Any | None = None,
) -> Starlette:
    """Create the Starlette ASGI app with all routes."""
    catalog = settings.catalog()

    async def chat(request: Request) -> Response:
        """POST /api/chat - Stream a chat completion."""
        try:
            body = await request.json()
        except Exception:
            return PlainTextResponse("Invalid JSON body", status_code=400)

        if not isinstance(body, dict):
            return PlainTextResponse("Invalid JSON body", status_code=400)

        messages = body.get("messages")
        if not isinstance(messages, list):
            return PlainTextResponse("Messages array is required", status_code=400)

        mode = body.get("mode")
        if not mode or mode not in catalog:
            return PlainTextResponse("Valid mode is required", status_code=400)

        try:
            chat_request = ChatRequest.model_validate(body)
        except pydantic.ValidationError as e:
            return PlainTextResponse(
                f"Invalid messages: {e.error_count()} validation error(s)", status_code=400
            )

        stream_request = StreamRequest(
            messages=[m.to_wire() for m in chat_request.messages],
            model=catalog.resolve(chat_request.mode),
            mode=chat_request.mode,
        )
        logger.info(
            "Chat request: mode=%s model=%s messages=%d",
            stream_request.mode, stream_request.model, len(stream_request.messages),
        )

        async def part_generator():
            yield encode_start(f"msg-{uuid4().hex}")
            try:
                async for event in transport.stream(stream_request):
                    yield encode_event(event)
                    if event.type in ("done", "error"):
                        return
            except Exception as e:
                logger.error("Chat API error: %s", e)
                yield encode_error("Internal server error")

        return StreamingResponse(
            part_generator(),
            media_type="text/plain; charset=utf-8",
            headers={
                DATA_STREAM_HEADER: DATA_STREAM_VERSION,
                "Cache-Control": "no-cache",
                "X-Accel-Buffering": "no",
            },
        )

    async def list_models(request: Request) -> JSONResponse:
        """GET /api/models - Available modes."""
        return JSONResponse({"default": settings.default_mode, "models": catalog.as_dict()})

    async def health(request: Request) -> JSONResponse:
        """GET /health - Health check."""
        return JSONResponse({"status": "healthy"})

    routes = [
        Route("/api/chat", chat, methods=["POST"]),
        Route("/api/models", list_models),
        Route("/health", health),
    ]

    kwargs: dict[str, Any] = {"routes": routes}
    if lifespan is not None:
        kwargs["lifespan"] = lifespan
    return Starlette(**kwargs)
