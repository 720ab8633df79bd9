"""Request models for the API layer."""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from groqchat.store import Role


class ChatMessage(BaseModel):
    """A single message in a /api/chat request transcript."""

    model_config = ConfigDict(extra="ignore")

    role: Role
    content: str

    def to_wire(self) -> dict[str, str]:
        return {"role": self.role.value, "content": self.content}


class ChatRequest(BaseModel):
    """Body of POST /api/chat."""

    model_config = ConfigDict(extra="ignore")

    messages: list[ChatMessage]
    mode: str
