"""Turn streaming controller -- drives one conversational turn end to end.

submit_turn() validates synchronously, appends the user turn and a pending
assistant turn, then hands the rest to a background asyncio task:

  1. open one streaming request (transcript + resolved model)
  2. first event      -> begin_streaming
  3. each text delta  -> append_chunk (arrival order, active-turn guard)
  4. done             -> complete_turn
  5. error / timeout / transport failure -> error_turn(reason)

Failures after submission are never raised to the caller; they show up as
an errored turn through the store's observers, with partial content kept.
The controller is the single writer for a turn while it is pending or
streaming, and all mutations happen on the event loop thread.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable

import httpx

from groqchat.catalog import ModeCatalog
from groqchat.errors import (
    InvalidRoleError,
    InvalidTransitionError,
    TransportError,
    TransportErrorReason,
    TurnInFlightError,
    ValidationError,
)
from groqchat.events import Observer
from groqchat.store import ConversationStore, Role, TurnStatus, TurnView
from groqchat.transport import InferenceTransport, StreamRequest
from groqchat.wire import WireFormatError

logger = logging.getLogger(__name__)

DEFAULT_INACTIVITY_TIMEOUT = 30.0


def classify_error(exc: BaseException) -> TransportErrorReason:
    """Map an exception raised while streaming to a TransportErrorReason."""
    if isinstance(exc, TransportError):
        return exc.reason
    if isinstance(exc, asyncio.CancelledError):
        return TransportErrorReason.CANCELLED
    if isinstance(exc, (TimeoutError, asyncio.TimeoutError, httpx.TimeoutException)):
        return TransportErrorReason.TIMEOUT
    if isinstance(exc, (httpx.HTTPStatusError, WireFormatError)):
        return TransportErrorReason.REMOTE_ERROR
    return TransportErrorReason.UNKNOWN


class TurnHandle:
    """Returned by submit_turn(). Lets the caller cancel or await the turn."""

    def __init__(
        self,
        controller: TurnStreamingController,
        user_turn_id: str,
        assistant_turn_id: str,
    ) -> None:
        self._controller = controller
        self.user_turn_id = user_turn_id
        self.assistant_turn_id = assistant_turn_id
        self._task: asyncio.Task | None = None
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def done(self) -> bool:
        return self._task is None or self._task.done()

    def cancel(self) -> None:
        """Close the transport and mark the turn errored(cancelled).

        No-op once the turn has completed.
        """
        self._controller._cancel(self)

    async def wait(self) -> TurnView:
        """Wait for the background task to finish; return the final assistant turn.

        Re-raises a store invariant violation hit by the task. Transport
        failures never surface here; they end as an errored turn.
        """
        if self._task is not None:
            await asyncio.wait({self._task})
            if not self._task.cancelled() and self._task.exception() is not None:
                raise self._task.exception()
        return self._controller.store.get(self.assistant_turn_id)


class TurnStreamingController:
    """Runs turns for one conversation, at most one at a time."""

    def __init__(
        self,
        store: ConversationStore,
        transport: InferenceTransport,
        catalog: ModeCatalog,
        inactivity_timeout: float = DEFAULT_INACTIVITY_TIMEOUT,
    ) -> None:
        if inactivity_timeout <= 0:
            raise ValueError("inactivity_timeout must be positive")
        self._store = store
        self._transport = transport
        self._catalog = catalog
        self._inactivity_timeout = inactivity_timeout
        self._active: TurnHandle | None = None

    @property
    def store(self) -> ConversationStore:
        return self._store

    @property
    def in_flight(self) -> bool:
        return self._active is not None

    # ------------------------------------------------------------------
    # submit_turn()
    # ------------------------------------------------------------------

    def submit_turn(self, user_text: str, mode_key: str) -> TurnHandle:
        """Start a turn. Must be called from a running event loop.

        Raises ValidationError for empty text or an unknown mode and
        TurnInFlightError while a previous turn is pending or streaming.
        Nothing is mutated when either is raised.
        """
        if not isinstance(user_text, str) or not user_text.strip():
            raise ValidationError("Message must not be empty")
        if mode_key not in self._catalog:
            raise ValidationError(
                f"Unknown mode {mode_key!r}. Valid: {', '.join(sorted(self._catalog.keys()))}"
            )
        model = self._catalog.resolve(mode_key)

        if self._active is not None:
            raise TurnInFlightError(self._active.assistant_turn_id)
        open_turn = self._store.open_turn()
        if open_turn is not None:
            raise TurnInFlightError(open_turn.id)

        loop = asyncio.get_running_loop()

        user_turn_id = self._store.append_turn(Role.USER, user_text)
        messages = self._store.transcript()
        assistant_turn_id = self._store.append_turn(Role.ASSISTANT)

        handle = TurnHandle(self, user_turn_id, assistant_turn_id)
        self._active = handle
        request = StreamRequest(messages=messages, model=model, mode=mode_key)
        handle._task = loop.create_task(
            self._run(handle, request), name=f"turn-{assistant_turn_id}"
        )
        logger.debug(
            "Submitted turn %s (mode=%s, model=%s, messages=%d)",
            assistant_turn_id, mode_key, model, len(messages),
        )
        return handle

    # ------------------------------------------------------------------
    # Streaming task
    # ------------------------------------------------------------------

    async def _run(self, handle: TurnHandle, request: StreamRequest) -> None:
        turn_id = handle.assistant_turn_id
        stream = None
        started = False
        try:
            stream = self._transport.stream(request)
            while True:
                try:
                    event = await asyncio.wait_for(anext(stream), timeout=self._inactivity_timeout)
                except StopAsyncIteration:
                    raise TransportError(
                        TransportErrorReason.REMOTE_ERROR,
                        "stream ended without a terminal event",
                    ) from None

                if not self._is_active(handle):
                    return

                if not started:
                    self._store.begin_streaming(turn_id)
                    started = True

                if event.type == "text_delta":
                    self._store.append_chunk(turn_id, event.text)
                elif event.type == "done":
                    self._store.complete_turn(turn_id)
                    self._release(handle)
                    logger.debug("Turn %s complete (%s)", turn_id, event.finish_reason or "stop")
                    return
                elif event.type == "error":
                    raise TransportError(TransportErrorReason.REMOTE_ERROR, event.text)
        except asyncio.CancelledError:
            self._fail(handle, TransportErrorReason.CANCELLED, "cancelled")
            raise
        except (InvalidTransitionError, InvalidRoleError) as e:
            logger.error("Store invariant violated while streaming turn %s: %s", turn_id, e)
            raise
        except Exception as e:
            self._fail(handle, classify_error(e), str(e) or type(e).__name__)
        finally:
            self._release(handle)
            if stream is not None:
                await self._close_stream(stream)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _is_active(self, handle: TurnHandle) -> bool:
        return self._active is handle and not handle._cancelled

    def _release(self, handle: TurnHandle) -> None:
        if self._active is handle:
            self._active = None

    def _fail(self, handle: TurnHandle, reason: TransportErrorReason, message: str) -> None:
        """Move the assistant turn to errored unless it is already terminal.

        A turn that never received a byte still passes through streaming
        so the store's state machine never skips a state.
        """
        turn_id = handle.assistant_turn_id
        turn = self._store.get(turn_id)
        if turn.is_terminal:
            return
        if turn.status is TurnStatus.PENDING:
            self._store.begin_streaming(turn_id)
        self._store.error_turn(turn_id, reason)
        self._release(handle)
        logger.warning(
            "Turn %s errored (%s) after %d chars: %s",
            turn_id, reason.value, len(self._store.get(turn_id).content), message,
        )

    def _cancel(self, handle: TurnHandle) -> None:
        if handle._cancelled or self._store.get(handle.assistant_turn_id).is_terminal:
            return
        handle._cancelled = True
        self._fail(handle, TransportErrorReason.CANCELLED, "cancelled by caller")
        if handle._task is not None:
            handle._task.cancel()

    @staticmethod
    async def _close_stream(stream) -> None:
        aclose = getattr(stream, "aclose", None)
        if aclose is None:
            return
        try:
            await aclose()
        except Exception:
            logger.debug("Error closing transport stream", exc_info=True)


class ChatSession:
    """One UI session: a store, its controller, and the session's observers.

    reset() is the only way to clear the transcript -- it cancels any
    in-flight turn and starts over with a fresh store. Observers stay
    subscribed across resets.
    """

    def __init__(
        self,
        transport: InferenceTransport,
        catalog: ModeCatalog,
        inactivity_timeout: float = DEFAULT_INACTIVITY_TIMEOUT,
    ) -> None:
        self._transport = transport
        self._catalog = catalog
        self._inactivity_timeout = inactivity_timeout
        # observer -> unsubscribe callable for the current store
        self._subscriptions: dict[Observer, Callable[[], None]] = {}
        self._handle: TurnHandle | None = None
        self.store = ConversationStore()
        self.controller = self._new_controller()

    @property
    def catalog(self) -> ModeCatalog:
        return self._catalog

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        self._subscriptions[observer] = self.store.subscribe(observer)

        def unsubscribe() -> None:
            store_unsubscribe = self._subscriptions.pop(observer, None)
            if store_unsubscribe is not None:
                store_unsubscribe()

        return unsubscribe

    def submit(self, user_text: str, mode_key: str) -> TurnHandle:
        self._handle = self.controller.submit_turn(user_text, mode_key)
        return self._handle

    def cancel(self) -> None:
        if self._handle is not None:
            self._handle.cancel()

    def reset(self) -> None:
        self.cancel()
        self._handle = None
        self.store = ConversationStore()
        for observer in list(self._subscriptions):
            self._subscriptions[observer] = self.store.subscribe(observer)
        self.controller = self._new_controller()
        logger.info("Session reset")

    def _new_controller(self) -> TurnStreamingController:
        return TurnStreamingController(
            self.store, self._transport, self._catalog, self._inactivity_timeout
        )
