"""Error taxonomy for groqchat.

Kept at module level with no internal imports so that the store,
controller, transports and REST layer can share one set of types
without circular imports.

  ValidationError         - bad caller input, raised before any side effect
  InvalidRoleError        - role outside the closed user/assistant/system set
  InvalidTransitionError  - turn state machine violation (caller bug)
  TurnInFlightError       - a turn is already pending/streaming
  TransportError          - network/protocol failure, classified by reason
"""

from __future__ import annotations

from enum import StrEnum


class TransportErrorReason(StrEnum):
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    REMOTE_ERROR = "remote_error"
    UNKNOWN = "unknown"


class ChatError(Exception):
    """Base class for all groqchat errors."""


class ValidationError(ChatError):
    """Raised when user input or a mode key is rejected."""


class InvalidRoleError(ChatError):
    """Raised when a turn is created with a role outside the closed set."""

    def __init__(self, role: object) -> None:
        self.role = role
        super().__init__(f"Invalid role: {role!r} (expected user, assistant or system)")


class InvalidTransitionError(ChatError):
    """Raised when a turn operation does not match its current status."""

    def __init__(self, turn_id: str, message: str) -> None:
        self.turn_id = turn_id
        super().__init__(f"Turn {turn_id}: {message}")


class TurnInFlightError(ChatError):
    """Raised when submitting while another turn is still pending or streaming."""

    def __init__(self, turn_id: str) -> None:
        self.turn_id = turn_id
        super().__init__(f"Turn {turn_id} is still in flight; retry once it finishes")


class TransportError(ChatError):
    """Network or protocol failure while talking to the inference provider."""

    def __init__(self, reason: TransportErrorReason, message: str = "") -> None:
        self.reason = reason
        self.message = message
        super().__init__(f"{reason.value}: {message}" if message else reason.value)
