"""
Shared pytest fixtures for the relay and the conversation session.

The fakes here stand in for the two external collaborators: the model
endpoint (``FakeLLMClient``) and the relay as seen from the session
(``ScriptedTransport``).
"""

import threading
from typing import Dict, Iterator, List, Optional

import pytest
from chat_relay.config import RelayConfig
from chat_relay.errors import UpstreamFailure
from chat_relay.service import CompletionRelay
from chat_session.models import ASSISTANT_ROLE, USER_ROLE, Message
from chat_session.storage import InMemoryStore, KeyValueStore

# ===== FAKE COLLABORATORS =====


class FakeLLMClient:
    """Streams a fixed list of tokens, optionally failing part-way through."""

    def __init__(self, tokens: List[str], fail_after: Optional[int] = None, error: Exception = None):
        self.tokens = tokens
        self.fail_after = fail_after
        self.error = error or UpstreamFailure("connection reset")
        self.prompts: List[List[Dict[str, str]]] = []
        self.pulled = 0
        self.closed = False

    def stream_completion(self, messages, *, model_kwargs=None, timeout=None) -> Iterator[str]:
        self.prompts.append(messages)
        try:
            for index, token in enumerate(self.tokens):
                if self.fail_after is not None and index >= self.fail_after:
                    raise self.error
                self.pulled += 1
                yield token
            if self.fail_after is not None and self.fail_after >= len(self.tokens):
                raise self.error
        finally:
            self.closed = True


class StallingLLMClient:
    """Streams ``tokens``, then hangs until ``release`` is set or ``stall`` seconds pass."""

    def __init__(self, tokens: List[str], stall: float = 5.0):
        self.tokens = tokens
        self.stall = stall
        self.release = threading.Event()
        self.closed = threading.Event()
        self.timeouts: List[Optional[float]] = []
        self.pulled = 0

    def stream_completion(self, messages, *, model_kwargs=None, timeout=None) -> Iterator[str]:
        self.timeouts.append(timeout)
        try:
            for token in self.tokens:
                self.pulled += 1
                yield token
            self.release.wait(self.stall)
            yield "late"
        finally:
            self.closed.set()


class ScriptedTransport:
    """Session transport that replays deltas, then optionally raises."""

    def __init__(self, deltas: List[str], error: Exception = None, on_delta=None):
        self.deltas = deltas
        self.error = error
        self.on_delta = on_delta
        self.calls: List[List[Dict[str, str]]] = []
        self.closed = False

    def stream(self, messages):
        self.calls.append([dict(m) for m in messages])
        try:
            for delta in self.deltas:
                yield delta
                if self.on_delta is not None:
                    self.on_delta(delta)
            if self.error is not None:
                raise self.error
        finally:
            self.closed = True


class FlakyStore(KeyValueStore):
    """In-memory store whose writes fail a set number of times."""

    def __init__(self, failures: int = 0, fail_reads: bool = False):
        self.inner = InMemoryStore()
        self.failures = failures
        self.fail_reads = fail_reads
        self.set_calls = 0

    def get(self, key):
        if self.fail_reads:
            raise OSError("storage unavailable")
        return self.inner.get(key)

    def set(self, key, value):
        self.set_calls += 1
        if self.failures > 0:
            self.failures -= 1
            raise OSError("quota exceeded")
        self.inner.set(key, value)

    def remove(self, key):
        self.inner.remove(key)


# ===== TEST DATA FIXTURES =====


@pytest.fixture
def sample_messages() -> List[Message]:
    """A short, well-formed conversation."""
    return [
        Message(role=USER_ROLE, content="Hello, how are you?"),
        Message(role=ASSISTANT_ROLE, content="I'm doing well, thank you! How can I help you today?"),
        Message(role=USER_ROLE, content="What are your hours?"),
        Message(role=ASSISTANT_ROLE, content="We're open 9–5.", incomplete=True, error="Timeout"),
    ]


@pytest.fixture
def sample_turns(sample_messages) -> List[Dict[str, str]]:
    return [m.as_turn() for m in sample_messages]


# ===== STORE / RELAY FIXTURES =====


@pytest.fixture
def memory_store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture
def make_llm_client():
    return FakeLLMClient


@pytest.fixture
def make_stalling_client():
    """Build stalling model clients, releasing them all on teardown."""
    clients = []

    def _make(tokens, stall=5.0):
        client = StallingLLMClient(tokens, stall=stall)
        clients.append(client)
        return client

    yield _make
    for client in clients:
        client.release.set()


@pytest.fixture
def make_transport():
    return ScriptedTransport


@pytest.fixture
def make_flaky_store():
    return FlakyStore


@pytest.fixture
def make_relay():
    """Build a relay around a fake model client."""

    def _make(tokens, *, fail_after=None, error=None, max_duration_seconds=30.0):
        client = FakeLLMClient(tokens, fail_after=fail_after, error=error)
        relay = CompletionRelay(RelayConfig(max_duration_seconds=max_duration_seconds), client=client)
        return relay, client

    return _make


# ===== CONFIGURATION =====


def pytest_configure(config):
    config.addinivalue_line("markers", "integration: marks tests as integration tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on location."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)
