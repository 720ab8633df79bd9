"""Tests for the ConversationStore turn state machine.

Tests cover:
- append_turn roles, initial status and validation
- pending -> streaming -> complete | errored transitions (and rejections)
- chunk concatenation and snapshot isolation
- observer notifications and error isolation
- randomized operation sequences: at most one streaming turn, no chunk loss
"""

import random

import pytest

from groqchat.errors import (
    InvalidRoleError,
    InvalidTransitionError,
    TransportErrorReason,
    ValidationError,
)
from groqchat.events import MutationEvent, MutationKind
from groqchat.store import ConversationStore, Role, TurnStatus


def _streaming_assistant(store: ConversationStore) -> str:
    turn_id = store.append_turn(Role.ASSISTANT)
    store.begin_streaming(turn_id)
    return turn_id


# ---------------------------------------------------------------------------
# TestAppendTurn
# ---------------------------------------------------------------------------


class TestAppendTurn:
    def test_user_turn_is_complete(self):
        store = ConversationStore()
        turn_id = store.append_turn(Role.USER, "Hello")
        turn = store.get(turn_id)
        assert turn.role is Role.USER
        assert turn.content == "Hello"
        assert turn.status is TurnStatus.COMPLETE

    def test_system_turn_accepts_plain_string_role(self):
        store = ConversationStore()
        turn_id = store.append_turn("system", "Be brief.")
        assert store.get(turn_id).role is Role.SYSTEM
        assert store.get(turn_id).status is TurnStatus.COMPLETE

    def test_assistant_turn_starts_pending_and_empty(self):
        store = ConversationStore()
        turn_id = store.append_turn(Role.ASSISTANT)
        turn = store.get(turn_id)
        assert turn.status is TurnStatus.PENDING
        assert turn.content == ""

    def test_assistant_turn_rejects_initial_content(self):
        store = ConversationStore()
        with pytest.raises(ValidationError):
            store.append_turn(Role.ASSISTANT, "pre-filled")
        assert len(store) == 0

    @pytest.mark.parametrize("role", ["tool", "", "USER", None, 3])
    def test_invalid_role(self, role):
        store = ConversationStore()
        with pytest.raises(InvalidRoleError):
            store.append_turn(role, "x")
        assert len(store) == 0

    def test_ids_unique_and_order_preserved(self):
        store = ConversationStore()
        ids = [store.append_turn(Role.USER, str(i)) for i in range(5)]
        assert len(set(ids)) == 5
        assert [t.id for t in store.snapshot()] == ids
        assert [t.content for t in store.snapshot()] == ["0", "1", "2", "3", "4"]


# ---------------------------------------------------------------------------
# TestTransitions
# ---------------------------------------------------------------------------


class TestTransitions:
    def test_full_happy_path(self):
        store = ConversationStore()
        turn_id = _streaming_assistant(store)
        assert store.get(turn_id).status is TurnStatus.STREAMING
        store.append_chunk(turn_id, "Hel")
        store.append_chunk(turn_id, "lo")
        store.complete_turn(turn_id)
        turn = store.get(turn_id)
        assert turn.status is TurnStatus.COMPLETE
        assert turn.content == "Hello"
        assert turn.error_reason is None

    def test_error_keeps_partial_content(self):
        store = ConversationStore()
        turn_id = _streaming_assistant(store)
        store.append_chunk(turn_id, "partial")
        store.error_turn(turn_id, TransportErrorReason.REMOTE_ERROR)
        turn = store.get(turn_id)
        assert turn.status is TurnStatus.ERRORED
        assert turn.error_reason is TransportErrorReason.REMOTE_ERROR
        assert turn.content == "partial"

    def test_error_reason_from_string(self):
        store = ConversationStore()
        turn_id = _streaming_assistant(store)
        store.error_turn(turn_id, "timeout")
        assert store.get(turn_id).error_reason is TransportErrorReason.TIMEOUT

    def test_chunk_requires_streaming(self):
        store = ConversationStore()
        turn_id = store.append_turn(Role.ASSISTANT)
        with pytest.raises(InvalidTransitionError):
            store.append_chunk(turn_id, "too early")

    def test_complete_requires_streaming(self):
        """pending -> complete skips a state."""
        store = ConversationStore()
        turn_id = store.append_turn(Role.ASSISTANT)
        with pytest.raises(InvalidTransitionError):
            store.complete_turn(turn_id)
        with pytest.raises(InvalidTransitionError):
            store.error_turn(turn_id, "unknown")

    def test_terminal_is_final(self):
        store = ConversationStore()
        turn_id = _streaming_assistant(store)
        store.complete_turn(turn_id)
        for op in (
            lambda: store.begin_streaming(turn_id),
            lambda: store.append_chunk(turn_id, "late"),
            lambda: store.complete_turn(turn_id),
            lambda: store.error_turn(turn_id, "cancelled"),
        ):
            with pytest.raises(InvalidTransitionError):
                op()
        assert store.get(turn_id).content == ""

    def test_user_turn_cannot_stream(self):
        store = ConversationStore()
        turn_id = store.append_turn(Role.USER, "hi")
        with pytest.raises(InvalidTransitionError):
            store.begin_streaming(turn_id)
        with pytest.raises(InvalidTransitionError):
            store.append_chunk(turn_id, "more")
        assert store.get(turn_id).content == "hi"

    def test_second_streaming_turn_rejected(self):
        store = ConversationStore()
        first = _streaming_assistant(store)
        second = store.append_turn(Role.ASSISTANT)
        with pytest.raises(InvalidTransitionError):
            store.begin_streaming(second)
        assert store.get(second).status is TurnStatus.PENDING
        assert store.streaming_turn().id == first

    def test_streaming_slot_frees_after_terminal(self):
        store = ConversationStore()
        first = _streaming_assistant(store)
        store.error_turn(first, "cancelled")
        second = _streaming_assistant(store)
        assert store.streaming_turn().id == second

    def test_unknown_turn_id(self):
        store = ConversationStore()
        with pytest.raises(InvalidTransitionError):
            store.append_chunk("nope", "x")
        with pytest.raises(InvalidTransitionError):
            store.get("nope")


# ---------------------------------------------------------------------------
# TestReads
# ---------------------------------------------------------------------------


class TestReads:
    def test_snapshot_is_a_copy(self):
        store = ConversationStore()
        turn_id = _streaming_assistant(store)
        store.append_chunk(turn_id, "a")
        snap = store.snapshot()
        store.append_chunk(turn_id, "b")
        assert snap[0].content == "a"
        assert store.snapshot()[0].content == "ab"
        with pytest.raises(AttributeError):
            snap[0].content = "changed"  # frozen dataclass

    def test_transcript_shape(self):
        store = ConversationStore()
        store.append_turn(Role.SYSTEM, "sys")
        store.append_turn(Role.USER, "q")
        turn_id = _streaming_assistant(store)
        store.append_chunk(turn_id, "a")
        assert store.transcript() == [
            {"role": "system", "content": "sys"},
            {"role": "user", "content": "q"},
            {"role": "assistant", "content": "a"},
        ]

    def test_open_turn(self):
        store = ConversationStore()
        assert store.open_turn() is None
        store.append_turn(Role.USER, "q")
        assert store.open_turn() is None

        pending = store.append_turn(Role.ASSISTANT)
        assert store.open_turn().id == pending
        assert store.streaming_turn() is None

        store.begin_streaming(pending)
        assert store.open_turn().status is TurnStatus.STREAMING
        store.complete_turn(pending)
        assert store.open_turn() is None

    def test_many_chunks_concatenate_in_order(self):
        store = ConversationStore()
        turn_id = _streaming_assistant(store)
        chunks = [f"<{i}>" for i in range(2000)]
        for i, chunk in enumerate(chunks):
            store.append_chunk(turn_id, chunk)
            if i % 500 == 0:
                # interleaved reads must not disturb later appends
                assert store.get(turn_id).content == "".join(chunks[: i + 1])
        assert store.get(turn_id).content == "".join(chunks)

    def test_empty_chunk_is_accepted(self):
        store = ConversationStore()
        turn_id = _streaming_assistant(store)
        store.append_chunk(turn_id, "")
        store.append_chunk(turn_id, "x")
        assert store.get(turn_id).content == "x"


# ---------------------------------------------------------------------------
# TestObservers
# ---------------------------------------------------------------------------


class TestObservers:
    def test_event_per_mutation(self):
        store = ConversationStore()
        events: list[MutationEvent] = []
        store.subscribe(events.append)

        store.append_turn(Role.USER, "hi")
        turn_id = _streaming_assistant(store)
        store.append_chunk(turn_id, "yo")
        store.complete_turn(turn_id)

        assert [e.kind for e in events] == [
            MutationKind.APPENDED,
            MutationKind.APPENDED,
            MutationKind.STREAMING,
            MutationKind.CHUNK,
            MutationKind.COMPLETED,
        ]
        assert events[1].position == 1
        assert events[1].status == "pending"
        assert events[3].chunk == "yo"
        assert events[3].content_length == 2
        assert events[4].turn_id == turn_id

    def test_errored_event_carries_reason(self):
        store = ConversationStore()
        events: list[MutationEvent] = []
        store.subscribe(events.append)
        turn_id = _streaming_assistant(store)
        store.error_turn(turn_id, "timeout")
        assert events[-1].kind is MutationKind.ERRORED
        assert events[-1].error_reason == "timeout"

    def test_unsubscribe(self):
        store = ConversationStore()
        events: list[MutationEvent] = []
        unsubscribe = store.subscribe(events.append)
        store.append_turn(Role.USER, "one")
        unsubscribe()
        unsubscribe()  # idempotent
        store.append_turn(Role.USER, "two")
        assert len(events) == 1

    def test_failing_observer_is_isolated(self):
        store = ConversationStore()
        seen: list[MutationEvent] = []

        def broken(event: MutationEvent) -> None:
            raise RuntimeError("render failed")

        store.subscribe(broken)
        store.subscribe(seen.append)
        turn_id = store.append_turn(Role.USER, "hi")
        assert len(seen) == 1
        assert store.get(turn_id).content == "hi"

    def test_invalid_operation_emits_nothing(self):
        store = ConversationStore()
        turn_id = store.append_turn(Role.ASSISTANT)
        events: list[MutationEvent] = []
        store.subscribe(events.append)
        with pytest.raises(InvalidTransitionError):
            store.append_chunk(turn_id, "x")
        assert events == []


# ---------------------------------------------------------------------------
# TestRandomSequences
# ---------------------------------------------------------------------------


class TestRandomSequences:
    """Drive random operation sequences and check invariants after each step."""

    @pytest.mark.parametrize("seed", range(25))
    def test_invariants_hold(self, seed):
        rng = random.Random(seed)
        store = ConversationStore()
        expected: dict[str, str] = {}

        for _ in range(300):
            ids = [t.id for t in store.snapshot()]
            op = rng.choice(["append", "begin", "chunk", "complete", "error"])
            target = rng.choice(ids) if ids else "missing"
            try:
                if op == "append":
                    role = rng.choice(list(Role))
                    content = "" if role is Role.ASSISTANT else f"m{rng.randint(0, 9)}"
                    new_id = store.append_turn(role, content)
                    expected[new_id] = content
                elif op == "begin":
                    store.begin_streaming(target)
                elif op == "chunk":
                    text = rng.choice(["a", "bc", "", "def", " "])
                    store.append_chunk(target, text)
                    expected[target] += text
                elif op == "complete":
                    store.complete_turn(target)
                else:
                    store.error_turn(target, rng.choice(list(TransportErrorReason)))
            except InvalidTransitionError:
                pass

            snapshot = store.snapshot()
            streaming = [t for t in snapshot if t.status is TurnStatus.STREAMING]
            assert len(streaming) <= 1
            for turn in snapshot:
                assert turn.content == expected[turn.id]
                if turn.role is not Role.ASSISTANT:
                    assert turn.status is TurnStatus.COMPLETE
                if turn.status is TurnStatus.ERRORED:
                    assert turn.error_reason is not None
