"""groqchat -- streaming chat turns against a hosted LLM provider.

Public API:
    ConversationStore        - ordered in-memory transcript with observers
    TurnStreamingController  - drives one streaming turn against a transport
    ChatSession              - store + controller for one UI session
    ModeCatalog              - mode key -> backend model id lookup
    GroqTransport, RelayTransport - httpx-based inference transports
    Settings                 - configuration (pydantic-settings)
"""

from groqchat.catalog import DEFAULT_MODELS, ModeCatalog
from groqchat.config import Settings
from groqchat.controller import ChatSession, TurnHandle, TurnStreamingController
from groqchat.errors import (
    ChatError,
    InvalidRoleError,
    InvalidTransitionError,
    TransportError,
    TransportErrorReason,
    TurnInFlightError,
    ValidationError,
)
from groqchat.events import MutationEvent, MutationKind
from groqchat.store import ConversationStore, Role, TurnStatus, TurnView
from groqchat.transport import GroqTransport, RelayTransport, StreamRequest
from groqchat.wire import StreamEvent

__all__ = [
    "DEFAULT_MODELS",
    "ChatError",
    "ChatSession",
    "ConversationStore",
    "GroqTransport",
    "InvalidRoleError",
    "InvalidTransitionError",
    "ModeCatalog",
    "MutationEvent",
    "MutationKind",
    "RelayTransport",
    "Role",
    "Settings",
    "StreamEvent",
    "StreamRequest",
    "TransportError",
    "TransportErrorReason",
    "TurnHandle",
    "TurnInFlightError",
    "TurnStatus",
    "TurnStreamingController",
    "TurnView",
    "ValidationError",
]
