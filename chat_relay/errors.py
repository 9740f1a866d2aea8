"""Error taxonomy shared by the relay and the conversation session."""

from __future__ import annotations

from typing import Dict, Type


class ChatRelayError(Exception):
    """Base class for every failure the chat stack reports."""

    kind = "ChatRelayError"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind)
        self.message = message or self.kind


class MalformedRequest(ChatRelayError):
    """The caller sent something that is not a valid ordered message list."""

    kind = "MalformedRequest"


class UpstreamFailure(ChatRelayError):
    """The model call failed or the stream dropped before completing."""

    kind = "UpstreamFailure"


class RelayTimeout(UpstreamFailure):
    """The relay's wall-clock ceiling was exceeded."""

    kind = "Timeout"


class StreamCancelled(ChatRelayError):
    kind = "Cancelled"


class PersistenceFailure(ChatRelayError):
    """Reading or writing the local snapshot failed."""

    kind = "PersistenceFailure"


_ERRORS_BY_KIND: Dict[str, Type[ChatRelayError]] = {
    cls.kind: cls
    for cls in (MalformedRequest, UpstreamFailure, RelayTimeout, StreamCancelled, PersistenceFailure)
}


def error_from_kind(kind: str, message: str = "") -> ChatRelayError:
    """Rebuild an error received over the wire.

    Unknown kinds are reported as :class:`UpstreamFailure` so the caller
    always sees an abnormal end of stream.
    """
    cls = _ERRORS_BY_KIND.get(kind, UpstreamFailure)
    return cls(message)
