"""Message model held by the conversation session and mirrored to storage."""

import uuid
from typing import List, Literal, Optional

from pydantic import BaseModel, Field, TypeAdapter

USER_ROLE = "user"
ASSISTANT_ROLE = "assistant"
Role = Literal["user", "assistant"]


class Message(BaseModel):
    """A single message within a conversation."""

    role: Role
    content: str = ""
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    incomplete: bool = False
    error: Optional[str] = None

    def as_turn(self) -> dict:
        """The subset of fields the relay reads."""
        return {"role": self.role, "content": self.content}


MessageList = TypeAdapter(List[Message])


def dump_messages(messages: List[Message]) -> str:
    return MessageList.dump_json(messages).decode("utf-8")


def load_messages(raw: str) -> List[Message]:
    """Parse a stored snapshot. Raises ``ValueError`` when it is malformed."""
    return MessageList.validate_json(raw)
