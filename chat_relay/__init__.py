"""Completion relay that streams chat-model replies to browser and terminal clients.

The relay accepts a conversation, prepends a fixed system instruction and
forwards it to an OpenAI-compatible chat-completions endpoint, re-emitting
the model's deltas in a small line-oriented framing of its own. The primary
entry points are ``chat_relay.api.create_app`` for running the HTTP service
and ``chat_relay.service.CompletionRelay`` for embedding the relay directly
into Python code.
"""

from .config import RelayConfig, RelayLLMConfig
from .errors import (
    ChatRelayError,
    MalformedRequest,
    PersistenceFailure,
    RelayTimeout,
    StreamCancelled,
    UpstreamFailure,
)
from .service import CompletionRelay

__all__ = [
    "ChatRelayError",
    "CompletionRelay",
    "MalformedRequest",
    "PersistenceFailure",
    "RelayConfig",
    "RelayLLMConfig",
    "RelayTimeout",
    "StreamCancelled",
    "UpstreamFailure",
]
