"""Request models accepted by the relay."""

from __future__ import annotations

from typing import List, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictStr

USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
SYSTEM_ROLE = "system"


class ChatTurn(BaseModel):
    """One prior message. Only ``role`` and ``content`` are read."""

    model_config = ConfigDict(extra="ignore")

    role: Literal["user", "assistant"]
    content: StrictStr


class ChatRequest(BaseModel):
    messages: List[ChatTurn] = Field(..., min_length=1, description="Conversation so far, oldest first.")
