"""Client-side conversation session for the completion relay.

A :class:`~chat_session.session.ConversationSession` owns the message list,
the draft being typed and a snapshot of the conversation in a local
key-value store. It sends the whole history to the relay on submit and
appends the streamed reply delta by delta, notifying its listeners after
every change. ``chat_session.cli`` is a terminal front end built on it.
"""

from .config import SessionConfig
from .models import Message
from .session import ConversationSession
from .storage import FileStore, InMemoryStore, KeyValueStore
from .transport import HttpRelayTransport, InProcessTransport, RelayTransport

__all__ = [
    "ConversationSession",
    "FileStore",
    "HttpRelayTransport",
    "InMemoryStore",
    "InProcessTransport",
    "KeyValueStore",
    "Message",
    "RelayTransport",
    "SessionConfig",
]
