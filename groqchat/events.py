"""In-process mutation notifications for the conversation store.

Every store mutation produces one MutationEvent which is handed to all
registered observers synchronously, in registration order, on the thread
that performed the mutation. Observer errors are isolated -- one broken
observer never breaks the store or blocks the others.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum

logger = logging.getLogger(__name__)


class MutationKind(StrEnum):
    APPENDED = "appended"
    STREAMING = "streaming"
    CHUNK = "chunk"
    COMPLETED = "completed"
    ERRORED = "errored"


@dataclass(frozen=True)
class MutationEvent:
    """What changed, with enough detail for a UI to re-render one turn."""

    kind: MutationKind
    turn_id: str
    position: int
    role: str
    status: str
    content_length: int
    chunk: str = ""  # set for CHUNK events only
    error_reason: str | None = None


# Observer type: plain callable taking a MutationEvent
Observer = Callable[[MutationEvent], None]


class Observers:
    """Ordered observer registry with error isolation."""

    def __init__(self) -> None:
        self._observers: list[Observer] = []

    def add(self, observer: Observer) -> Callable[[], None]:
        """Register an observer. Returns a callable that unregisters it."""
        self._observers.append(observer)
        logger.debug("Registered observer %s", getattr(observer, "__qualname__", observer))

        def unsubscribe() -> None:
            try:
                self._observers.remove(observer)
            except ValueError:
                pass

        return unsubscribe

    def notify(self, event: MutationEvent) -> None:
        # Copy so observers may unsubscribe while being notified
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception:
                logger.exception(
                    "Observer %s failed for %s event on turn %s",
                    getattr(observer, "__qualname__", observer),
                    event.kind,
                    event.turn_id,
                )

    def __len__(self) -> int:
        return len(self._observers)
