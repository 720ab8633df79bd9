"""Wire-format helpers for the two streams groqchat speaks.

Upstream (provider -> server): OpenAI-compatible chat completion SSE.
Each line is ``data: {json}``; the stream ends with ``data: [DONE]``.

Downstream (server -> client): line-oriented data-stream framing, one
part per line as ``<code>:<json>``:

    f:{"messageId": "..."}       start of message
    0:"text"                     text fragment
    3:"message"                  error
    d:{"finishReason": "stop"}   finish (terminal)

Both sides decode into the same StreamEvent shape so transports are
interchangeable from the controller's point of view.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any

SSE_DATA_PREFIX = "data: "
SSE_DONE = "[DONE]"

TEXT_PART = "0"
ERROR_PART = "3"
FINISH_MESSAGE_PART = "d"
START_PART = "f"

DATA_STREAM_HEADER = "X-Vercel-AI-Data-Stream"
DATA_STREAM_VERSION = "v1"


@dataclass
class StreamEvent:
    """A single event from a streaming response."""

    type: str  # text_delta, done, error
    text: str = ""
    finish_reason: str = ""
    usage: dict[str, int] | None = None


class WireFormatError(ValueError):
    """Raised when a stream line cannot be decoded."""


# ----------------------------------------------------------------------
# Upstream: OpenAI-compatible SSE
# ----------------------------------------------------------------------


def build_completion_payload(messages: list[dict[str, str]], model: str) -> dict[str, Any]:
    """Request body for a streaming chat completion."""
    return {
        "model": model,
        "messages": [{"role": m["role"], "content": m["content"]} for m in messages],
        "stream": True,
    }


def parse_sse_line(line: str) -> dict[str, Any] | str | None:
    """Strip the SSE framing from one line.

    Returns the decoded JSON object, the SSE_DONE sentinel, or None for
    lines that carry no data (blank keepalives, ``event:``/``:`` lines).
    """
    if not line.startswith(SSE_DATA_PREFIX):
        return None
    payload = line[len(SSE_DATA_PREFIX):].strip()
    if payload == SSE_DONE:
        return SSE_DONE
    try:
        data = json.loads(payload)
    except json.JSONDecodeError as e:
        raise WireFormatError(f"Malformed SSE payload: {payload[:200]}") from e
    if not isinstance(data, dict):
        raise WireFormatError(f"Unexpected SSE payload type: {type(data).__name__}")
    return data


def parse_completion_chunk(data: dict[str, Any]) -> list[StreamEvent]:
    """Parse one chat.completion.chunk dict into StreamEvents.

    A chunk may carry a text delta, a finish_reason, or both. In-stream
    errors arrive as ``{"error": {...}}`` with HTTP 200.
    """
    if "error" in data:
        error = data.get("error") or {}
        if isinstance(error, dict):
            text = f"{error.get('type', 'unknown')}: {error.get('message', '')}"
        else:
            text = str(error)
        return [StreamEvent(type="error", text=text)]

    events: list[StreamEvent] = []
    for choice in data.get("choices") or []:
        delta = choice.get("delta") or {}
        content = delta.get("content")
        if content:
            events.append(StreamEvent(type="text_delta", text=content))
        finish_reason = choice.get("finish_reason")
        if finish_reason:
            # Groq reports usage under x_groq on the final chunk
            usage = (data.get("x_groq") or {}).get("usage") or data.get("usage")
            events.append(StreamEvent(type="done", finish_reason=finish_reason, usage=usage))
    return events


# ----------------------------------------------------------------------
# Downstream: data-stream framing
# ----------------------------------------------------------------------


def _part(code: str, value: Any) -> str:
    return f"{code}:{json.dumps(value, separators=(',', ':'))}\n"


def encode_start(message_id: str) -> str:
    return _part(START_PART, {"messageId": message_id})


def encode_text(text: str) -> str:
    return _part(TEXT_PART, text)


def encode_error(message: str) -> str:
    return _part(ERROR_PART, message)


def encode_finish(finish_reason: str = "stop", usage: dict[str, int] | None = None) -> str:
    body: dict[str, Any] = {"finishReason": finish_reason or "stop"}
    if usage:
        body["usage"] = {
            "promptTokens": usage.get("prompt_tokens", 0),
            "completionTokens": usage.get("completion_tokens", 0),
        }
    return _part(FINISH_MESSAGE_PART, body)


def encode_event(event: StreamEvent) -> str:
    """Encode a StreamEvent as one data-stream line."""
    if event.type == "text_delta":
        return encode_text(event.text)
    if event.type == "error":
        return encode_error(event.text)
    if event.type == "done":
        return encode_finish(event.finish_reason, event.usage)
    raise WireFormatError(f"Cannot encode event type {event.type!r}")


def decode_data_stream_line(line: str) -> StreamEvent | None:
    """Decode one data-stream line.

    Returns None for blank lines and for part types the client ignores
    (message start, step boundaries, annotations).
    """
    line = line.strip()
    if not line:
        return None
    code, sep, raw = line.partition(":")
    if not sep:
        raise WireFormatError(f"Missing part separator: {line[:200]}")
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as e:
        raise WireFormatError(f"Malformed data-stream part: {line[:200]}") from e

    if code == TEXT_PART:
        return StreamEvent(type="text_delta", text=str(value))
    if code == ERROR_PART:
        return StreamEvent(type="error", text=str(value))
    if code == FINISH_MESSAGE_PART:
        value = value if isinstance(value, dict) else {}
        usage = value.get("usage")
        return StreamEvent(
            type="done",
            finish_reason=value.get("finishReason", "stop"),
            usage={
                "prompt_tokens": usage.get("promptTokens", 0),
                "completion_tokens": usage.get("completionTokens", 0),
            }
            if isinstance(usage, dict)
            else None,
        )
    return None
