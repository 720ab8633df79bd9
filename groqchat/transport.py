"""Inference transports -- one streaming request per turn.

A transport takes the transcript plus the resolved model and yields
StreamEvents in arrival order: any number of text_delta events followed
by exactly one terminal event (done or error).

  GroqTransport   - talks to the provider's OpenAI-compatible API directly
  RelayTransport  - talks to groqchat's own /api/chat route (console client)

Both own an httpx.AsyncClient with an explicit start()/close() lifecycle.
Connection-level failures (timeouts, refused connections) propagate as
httpx exceptions; the controller classifies them.
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Protocol

import httpx

from groqchat.config import Settings
from groqchat.wire import (
    SSE_DONE,
    StreamEvent,
    build_completion_payload,
    decode_data_stream_line,
    parse_completion_chunk,
    parse_sse_line,
)

logger = logging.getLogger(__name__)

COMPLETIONS_PATH = "/v1/chat/completions"
RELAY_CHAT_PATH = "/api/chat"

_MAX_ERROR_BODY = 500


@dataclass(frozen=True)
class StreamRequest:
    """Everything one outbound turn needs."""

    messages: list[dict[str, str]] = field(default_factory=list)
    model: str = ""
    mode: str = ""


class InferenceTransport(Protocol):
    def stream(self, request: StreamRequest) -> AsyncIterator[StreamEvent]: ...


class _HttpTransport:
    """Shared httpx client lifecycle.

    http_transport lets callers swap the network layer (e.g. an
    httpx.MockTransport or ASGITransport) without touching auth or
    timeout configuration.
    """

    def __init__(
        self,
        base_url: str,
        settings: Settings,
        headers: dict[str, str] | None = None,
        http_transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url
        self._settings = settings
        self._headers = headers or {}
        self._http_transport = http_transport
        self._http: httpx.AsyncClient | None = None

    async def start(self) -> None:
        """Initialize the httpx client with timeout settings."""
        if self._http is not None:
            return

        # Read timeout stays generous; inactivity between chunks is
        # enforced by the controller
        timeout = httpx.Timeout(
            connect=self._settings.api_timeout_connect,
            read=self._settings.api_timeout_read,
            write=10.0,
            pool=10.0,
        )
        limits = httpx.Limits(max_connections=10, max_keepalive_connections=5)
        self._http = httpx.AsyncClient(
            base_url=self._base_url,
            headers=self._headers,
            timeout=timeout,
            limits=limits,
            transport=self._http_transport,
        )
        logger.info("%s client initialized (%s)", type(self).__name__, self._base_url)

    async def close(self) -> None:
        """Clean up httpx client."""
        if self._http:
            await self._http.aclose()
            self._http = None

    async def __aenter__(self):
        await self.start()
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    def _client(self) -> httpx.AsyncClient:
        if not self._http:
            raise RuntimeError("httpx client not initialized -- call start() first")
        return self._http

    @staticmethod
    async def _error_from_response(response: httpx.Response) -> StreamEvent:
        body = await response.aread()
        text = body.decode(errors="replace")[:_MAX_ERROR_BODY]
        return StreamEvent(type="error", text=f"HTTP {response.status_code}: {text}")


class GroqTransport(_HttpTransport):
    """Streams chat completions straight from the Groq API."""

    def __init__(self, settings: Settings, http_transport: httpx.AsyncBaseTransport | None = None) -> None:
        headers = {"content-type": "application/json"}
        if settings.groq_api_key:
            headers["authorization"] = f"Bearer {settings.groq_api_key}"
        else:
            logger.warning("GROQ_API_KEY is not set -- API calls will fail")
        super().__init__(settings.api_base_url, settings, headers, http_transport)

    async def stream(self, request: StreamRequest) -> AsyncIterator[StreamEvent]:
        """Yield StreamEvents for one completion.

        Non-200 responses and in-stream error payloads become a single
        error event. A stream that closes without finish_reason or [DONE]
        is reported as an error too.
        """
        http = self._client()
        payload = build_completion_payload(request.messages, request.model)
        logger.debug("POST %s model=%s messages=%d", COMPLETIONS_PATH, request.model, len(request.messages))

        async with http.stream("POST", COMPLETIONS_PATH, json=payload) as response:
            if response.status_code != 200:
                yield await self._error_from_response(response)
                return

            async for line in response.aiter_lines():
                data = parse_sse_line(line)
                if data is None:
                    continue
                if data == SSE_DONE:
                    yield StreamEvent(type="done", finish_reason="stop")
                    return
                for event in parse_completion_chunk(data):
                    yield event
                    if event.type in ("done", "error"):
                        return

        yield StreamEvent(type="error", text="Stream ended without a terminal event")


class RelayTransport(_HttpTransport):
    """Streams through a groqchat server's /api/chat route.

    The server resolves the mode key itself, so only messages and mode
    are sent.
    """

    def __init__(self, settings: Settings, http_transport: httpx.AsyncBaseTransport | None = None) -> None:
        super().__init__(settings.relay_url, settings, {"content-type": "application/json"}, http_transport)

    async def stream(self, request: StreamRequest) -> AsyncIterator[StreamEvent]:
        http = self._client()
        body = {"messages": request.messages, "mode": request.mode}

        async with http.stream("POST", RELAY_CHAT_PATH, json=body) as response:
            if response.status_code != 200:
                yield await self._error_from_response(response)
                return

            async for line in response.aiter_lines():
                event = decode_data_stream_line(line)
                if event is None:
                    continue
                yield event
                if event.type in ("done", "error"):
                    return

        yield StreamEvent(type="error", text="Stream ended without a terminal event")
