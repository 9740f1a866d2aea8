"""Configuration objects for the conversation session."""

from __future__ import annotations

from dataclasses import dataclass

STORAGE_KEY = "chatMessages"


@dataclass
class SessionConfig:
    """Runtime controls for a conversation session."""

    relay_url: str = "http://127.0.0.1:8004/api/chat"
    request_timeout: int = 60
    storage_key: str = STORAGE_KEY
    # Persist after every delta so a crash mid-stream keeps the partial reply.
    persist_deltas: bool = True
    persist_retries: int = 1
