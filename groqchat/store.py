"""Conversation store -- ordered, in-memory transcript for one session.

Turns are only ever appended; nothing is reordered or deleted. Assistant
turns follow a one-way state machine:

    pending -> streaming -> complete | errored

and at most one turn per conversation may be streaming at any time.
User and system turns are created complete and never change.

Streamed text is kept as a list of parts and joined lazily on read, so
append_chunk() is O(1) amortized no matter how long the response gets.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import StrEnum
from uuid import uuid4

from groqchat.errors import (
    InvalidRoleError,
    InvalidTransitionError,
    TransportErrorReason,
    ValidationError,
)
from groqchat.events import MutationEvent, MutationKind, Observer, Observers

logger = logging.getLogger(__name__)


class Role(StrEnum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class TurnStatus(StrEnum):
    PENDING = "pending"
    STREAMING = "streaming"
    COMPLETE = "complete"
    ERRORED = "errored"


TERMINAL_STATUSES = frozenset({TurnStatus.COMPLETE, TurnStatus.ERRORED})


@dataclass(frozen=True)
class TurnView:
    """Read-only copy of a turn, safe to hand to renderers."""

    id: str
    role: Role
    content: str
    status: TurnStatus
    error_reason: TransportErrorReason | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def to_message(self) -> dict[str, str]:
        """Reduce to the {role, content} shape sent upstream."""
        return {"role": self.role.value, "content": self.content}


@dataclass
class Turn:
    """A single message in a conversation (mutable, owned by the store)."""

    id: str
    role: Role
    status: TurnStatus
    error_reason: TransportErrorReason | None = None
    _parts: list[str] = field(default_factory=list, repr=False)
    _length: int = 0

    @property
    def content(self) -> str:
        if len(self._parts) > 1:
            # Collapse so repeated reads don't re-join
            self._parts[:] = ["".join(self._parts)]
        return self._parts[0] if self._parts else ""

    @property
    def content_length(self) -> int:
        return self._length

    def _append(self, text: str) -> None:
        if text:
            self._parts.append(text)
            self._length += len(text)

    def view(self) -> TurnView:
        return TurnView(
            id=self.id,
            role=self.role,
            content=self.content,
            status=self.status,
            error_reason=self.error_reason,
        )


class ConversationStore:
    """Holds the ordered turns of one conversation and notifies observers."""

    def __init__(self) -> None:
        self._turns: list[Turn] = []
        self._positions: dict[str, int] = {}
        self._streaming_id: str | None = None
        self._observers = Observers()

    # ------------------------------------------------------------------
    # Observers
    # ------------------------------------------------------------------

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register observer for every mutation. Returns an unsubscribe callable."""
        return self._observers.add(observer)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def append_turn(self, role: Role | str, initial_content: str = "") -> str:
        """Append a new turn and return its id.

        Assistant turns start empty in PENDING; user and system turns are
        COMPLETE with their content fixed.
        """
        try:
            role = Role(role)
        except (ValueError, TypeError):
            raise InvalidRoleError(role) from None

        if role is Role.ASSISTANT:
            if initial_content:
                raise ValidationError("assistant turns must start with empty content")
            status = TurnStatus.PENDING
        else:
            status = TurnStatus.COMPLETE

        turn = Turn(id=uuid4().hex, role=role, status=status)
        turn._append(initial_content)
        position = len(self._turns)
        self._turns.append(turn)
        self._positions[turn.id] = position

        logger.debug("Appended %s turn %s at position %d", role.value, turn.id, position)
        self._emit(MutationKind.APPENDED, turn)
        return turn.id

    def begin_streaming(self, turn_id: str) -> None:
        turn = self._get(turn_id)
        if turn.status is not TurnStatus.PENDING:
            raise InvalidTransitionError(
                turn_id, f"cannot begin streaming from {turn.status.value}"
            )
        if self._streaming_id is not None:
            raise InvalidTransitionError(
                turn_id, f"turn {self._streaming_id} is already streaming"
            )
        turn.status = TurnStatus.STREAMING
        self._streaming_id = turn.id
        self._emit(MutationKind.STREAMING, turn)

    def append_chunk(self, turn_id: str, text: str) -> None:
        turn = self._get(turn_id)
        if turn.status is not TurnStatus.STREAMING:
            raise InvalidTransitionError(
                turn_id, f"cannot append chunk while {turn.status.value}"
            )
        turn._append(text)
        self._emit(MutationKind.CHUNK, turn, chunk=text)

    def complete_turn(self, turn_id: str) -> None:
        turn = self._end_streaming(turn_id, TurnStatus.COMPLETE)
        self._emit(MutationKind.COMPLETED, turn)

    def error_turn(self, turn_id: str, reason: TransportErrorReason | str) -> None:
        reason = TransportErrorReason(reason)
        turn = self._end_streaming(turn_id, TurnStatus.ERRORED)
        turn.error_reason = reason
        logger.debug("Turn %s errored (%s) after %d chars", turn_id, reason.value, turn.content_length)
        self._emit(MutationKind.ERRORED, turn)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def snapshot(self) -> tuple[TurnView, ...]:
        """Immutable copy of all turns in order."""
        return tuple(turn.view() for turn in self._turns)

    def get(self, turn_id: str) -> TurnView:
        return self._get(turn_id).view()

    def streaming_turn(self) -> TurnView | None:
        if self._streaming_id is None:
            return None
        return self._get(self._streaming_id).view()

    def open_turn(self) -> TurnView | None:
        """The streaming turn, else the latest pending turn, else None."""
        if self._streaming_id is not None:
            return self._get(self._streaming_id).view()
        for turn in reversed(self._turns):
            if turn.status is TurnStatus.PENDING:
                return turn.view()
        return None

    def transcript(self) -> list[dict[str, str]]:
        """All turns reduced to {role, content}, in order."""
        return [turn.view().to_message() for turn in self._turns]

    def __len__(self) -> int:
        return len(self._turns)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _get(self, turn_id: str) -> Turn:
        position = self._positions.get(turn_id)
        if position is None:
            raise InvalidTransitionError(turn_id, "no such turn in this conversation")
        return self._turns[position]

    def _end_streaming(self, turn_id: str, status: TurnStatus) -> Turn:
        turn = self._get(turn_id)
        if turn.status is not TurnStatus.STREAMING:
            raise InvalidTransitionError(
                turn_id, f"cannot move to {status.value} from {turn.status.value}"
            )
        turn.status = status
        self._streaming_id = None
        return turn

    def _emit(self, kind: MutationKind, turn: Turn, chunk: str = "") -> None:
        self._observers.notify(
            MutationEvent(
                kind=kind,
                turn_id=turn.id,
                position=self._positions[turn.id],
                role=turn.role.value,
                status=turn.status.value,
                content_length=turn.content_length,
                chunk=chunk,
                error_reason=turn.error_reason.value if turn.error_reason else None,
            )
        )
