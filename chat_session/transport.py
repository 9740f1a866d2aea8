"""Ways for a session to reach the completion relay."""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterator, List

import requests

from chat_relay.errors import MalformedRequest, UpstreamFailure
from chat_relay.framing import iter_text_deltas
from chat_relay.service import CompletionRelay

logger = logging.getLogger(__name__)


class RelayTransport(ABC):
    """Interface for sending a conversation and receiving text deltas."""

    @abstractmethod
    def stream(self, messages: List[Dict[str, str]]) -> Iterator[str]:
        """Yield text deltas for the reply to ``messages``.

        Raises :class:`~chat_relay.errors.UpstreamFailure` (or its
        ``RelayTimeout`` subclass) when the stream ends abnormally. Closing
        the returned iterator cancels the request.
        """
        pass


class HttpRelayTransport(RelayTransport):
    """Talks to a relay over HTTP using a streaming POST."""

    def __init__(self, url: str, timeout: int = 60) -> None:
        self.url = url
        self.timeout = timeout

    def stream(self, messages: List[Dict[str, str]]) -> Iterator[str]:
        logger.debug("Posting %d message(s) to %s", len(messages), self.url)
        try:
            response = requests.post(
                self.url,
                json={"messages": messages},
                stream=True,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamFailure(f"relay unreachable: {exc.__class__.__name__}") from exc

        with response:
            if response.status_code == 400:
                detail = _error_detail(response)
                raise MalformedRequest(detail)
            if response.status_code >= 400:
                raise UpstreamFailure(f"relay returned HTTP {response.status_code}")
            try:
                yield from iter_text_deltas(response.iter_lines())
            except requests.RequestException as exc:
                raise UpstreamFailure(f"relay stream dropped: {exc.__class__.__name__}") from exc


class InProcessTransport(RelayTransport):
    """Runs a :class:`CompletionRelay` in the same process, framing included."""

    def __init__(self, relay: CompletionRelay) -> None:
        self.relay = relay

    def stream(self, messages: List[Dict[str, str]]) -> Iterator[str]:
        frames = self.relay.stream(messages)
        try:
            yield from iter_text_deltas(frames)
        finally:
            frames.close()


def _error_detail(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return "relay rejected the request"
    if not isinstance(body, dict):
        return "relay rejected the request"
    return str(body.get("detail") or "relay rejected the request")
