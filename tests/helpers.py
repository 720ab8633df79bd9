"""Test doubles shared across test modules."""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Callable

from groqchat.transport import StreamRequest
from groqchat.wire import StreamEvent


class QueueTransport:
    """In-memory transport: each stream() yields whatever the test puts on the queue.

    Putting an Exception instance raises it from inside the stream.
    """

    def __init__(self) -> None:
        self.requests: list[StreamRequest] = []
        self.queue: asyncio.Queue[StreamEvent | Exception] = asyncio.Queue()
        self.closed = 0

    async def stream(self, request: StreamRequest) -> AsyncIterator[StreamEvent]:
        self.requests.append(request)
        try:
            while True:
                item = await self.queue.get()
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            self.closed += 1

    def text(self, text: str) -> None:
        self.queue.put_nowait(StreamEvent(type="text_delta", text=text))

    def done(self, finish_reason: str = "stop") -> None:
        self.queue.put_nowait(StreamEvent(type="done", finish_reason=finish_reason))

    def error(self, text: str) -> None:
        self.queue.put_nowait(StreamEvent(type="error", text=text))

    def fail(self, exc: Exception) -> None:
        self.queue.put_nowait(exc)


class ScriptedTransport:
    """Yields a fixed list of events, then stops."""

    def __init__(self, *events: StreamEvent) -> None:
        self.events = list(events)
        self.requests: list[StreamRequest] = []

    async def stream(self, request: StreamRequest) -> AsyncIterator[StreamEvent]:
        self.requests.append(request)
        for event in self.events:
            yield event


async def wait_until(predicate: Callable[[], object], timeout: float = 2.0) -> None:
    """Poll predicate on the event loop until it holds."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)
