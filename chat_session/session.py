"""Client-side conversation state: messages, draft input and the stored snapshot."""

from __future__ import annotations

import logging
from typing import Callable, Iterator, List, Optional

from chat_relay.errors import ChatRelayError, PersistenceFailure, StreamCancelled, UpstreamFailure

from .config import SessionConfig
from .models import ASSISTANT_ROLE, USER_ROLE, Message, dump_messages, load_messages
from .storage import KeyValueStore
from .transport import RelayTransport

logger = logging.getLogger(__name__)

Listener = Callable[["ConversationSession"], None]


class ConversationSession:
    """Owns one conversation and keeps a local snapshot of it.

    The session is single-threaded: submitting blocks the caller until the
    reply stream ends, and listeners are notified synchronously after every
    mutation. Listeners may call back into the session (for example to
    edit the draft or cancel), but a second submit while a reply is still
    streaming is ignored.
    """

    def __init__(
        self,
        transport: RelayTransport,
        store: KeyValueStore,
        config: Optional[SessionConfig] = None,
    ) -> None:
        self.transport = transport
        self.store = store
        self.config = config or SessionConfig()
        self.persistence_error: Optional[PersistenceFailure] = None
        self._messages: List[Message] = []
        self._draft = ""
        self._listeners: List[Listener] = []
        self._streaming = False
        self._cancel_requested = False
        self._generation = 0

    # ----- read side -----
    @property
    def messages(self) -> List[Message]:
        return [message.model_copy() for message in self._messages]

    @property
    def is_streaming(self) -> bool:
        return self._streaming

    @property
    def draft(self) -> str:
        return self._draft

    @draft.setter
    def draft(self, value: str) -> None:
        self._draft = value
        self._notify()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register ``listener`` for change notifications; returns an unsubscribe function."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    # ----- operations -----
    def hydrate(self) -> List[Message]:
        """Seed the conversation from the stored snapshot. Never raises."""
        raw: Optional[str] = None
        try:
            raw = self.store.get(self.config.storage_key)
        except Exception as exc:
            self.persistence_error = PersistenceFailure(f"could not read stored conversation: {exc}")
            logger.warning("%s; starting empty", self.persistence_error.message)

        messages: List[Message] = []
        if raw is not None:
            try:
                messages = load_messages(raw)
            except ValueError:
                logger.warning("Stored conversation under %r is malformed; starting empty", self.config.storage_key)

        self._messages = messages
        logger.info("Hydrated conversation with %d message(s)", len(messages))
        self._notify()
        return self.messages

    def submit(self, text: Optional[str] = None) -> bool:
        """Send ``text`` (or the current draft) and stream the reply in.

        Returns ``False`` without touching the conversation when the text is
        blank or a reply is already streaming.
        """
        if self._streaming:
            logger.info("Ignoring submit while a reply is still streaming")
            return False
        text = self._draft if text is None else text
        if not text or not text.strip():
            return False

        # Claimed before any listener runs, so a re-entrant submit is refused.
        self._streaming = True
        self._cancel_requested = False
        generation = self._generation

        self._messages.append(Message(role=USER_ROLE, content=text))
        self._draft = ""
        self._persist()
        self._notify()
        if generation != self._generation:
            self._streaming = False
            self._cancel_requested = False
            return True

        turns = [message.as_turn() for message in self._messages]
        # Stays flagged until the stream finishes cleanly.
        assistant = Message(role=ASSISTANT_ROLE, incomplete=True)
        self._messages.append(assistant)
        self._persist()
        self._notify()

        try:
            error_kind = self._consume(turns, assistant, generation)
        except BaseException:
            if generation == self._generation:
                assistant.error = StreamCancelled.kind
                self._persist()
            raise

        if generation != self._generation:
            logger.info("Conversation was cleared while streaming; discarding the reply")
            return True
        if error_kind:
            assistant.error = error_kind
        else:
            assistant.incomplete = False
        self._persist()
        self._notify()
        return True

    def cancel(self) -> None:
        """Stop the reply in flight; the partial text is kept and flagged."""
        if self._streaming:
            self._cancel_requested = True

    def clear(self) -> None:
        """Empty the conversation and draft and erase the stored snapshot."""
        if self._streaming:
            self._generation += 1
            self._cancel_requested = True
        self._messages = []
        self._draft = ""
        self._with_retry("erase", self.store.remove, self.config.storage_key)
        self._notify()

    # ----- internals -----
    def _consume(self, turns: List[dict], assistant: Message, generation: int) -> Optional[str]:
        """Apply deltas to ``assistant`` in order; return an error kind or ``None``."""
        error_kind: Optional[str] = None
        stream: Optional[Iterator[str]] = None
        try:
            stream = iter(self.transport.stream(turns))
            for delta in stream:
                if self._cancel_requested or generation != self._generation:
                    error_kind = StreamCancelled.kind
                    break
                assistant.content += delta
                if self.config.persist_deltas:
                    self._persist()
                self._notify()
            else:
                if self._cancel_requested:
                    error_kind = StreamCancelled.kind
        except UpstreamFailure as exc:
            logger.warning("Reply ended abnormally (%s): %s", exc.kind, exc.message)
            error_kind = exc.kind
        except ChatRelayError as exc:
            logger.error("Relay refused the conversation (%s): %s", exc.kind, exc.message)
            error_kind = exc.kind
        except Exception:
            logger.exception("Unexpected error while reading the reply stream")
            error_kind = UpstreamFailure.kind
        finally:
            close = getattr(stream, "close", None) if stream is not None else None
            if close is not None:
                close()
            self._streaming = False
            self._cancel_requested = False
        return error_kind

    def _persist(self) -> None:
        self._with_retry("write", self.store.set, self.config.storage_key, dump_messages(self._messages))

    def _with_retry(self, action: str, func: Callable[..., None], *args: str) -> bool:
        attempts = 1 + max(0, self.config.persist_retries)
        last_error: Optional[Exception] = None
        for attempt in range(1, attempts + 1):
            try:
                func(*args)
                self.persistence_error = None
                return True
            except Exception as exc:
                last_error = exc
                logger.debug("Attempt %d/%d to %s stored conversation failed", attempt, attempts, action, exc_info=True)
        failure = PersistenceFailure(f"could not {action} stored conversation: {last_error}")
        logger.warning("%s; continuing in memory", failure.message)
        # Keep the first failure of an outage so listeners see one warning, not one per write.
        if self.persistence_error is None:
            self.persistence_error = failure
        return False

    def _notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener(self)
            except Exception:
                logger.exception("Session listener %r failed", listener)
