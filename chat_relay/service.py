"""Completion relay: forwards a conversation to the model and streams frames back."""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Tuple

from pydantic import ValidationError

from .config import RelayConfig
from .errors import MalformedRequest, RelayTimeout, UpstreamFailure
from .framing import encode_error, encode_finish, encode_text
from .llm_client import ChatLLMClient
from .models import SYSTEM_ROLE, ChatRequest

logger = logging.getLogger(__name__)


class CompletionRelay:
    """Stateless relay used by both the API and direct Python consumers.

    Each call to :meth:`stream` is independent; nothing about a
    conversation is kept between requests.
    """

    def __init__(self, config: Optional[RelayConfig] = None, *, client: Optional[Any] = None) -> None:
        self.config = config or RelayConfig()
        self.client = client or ChatLLMClient(self.config.llm)

    @staticmethod
    def parse_messages(payload: Any) -> List[Dict[str, str]]:
        """Validate an inbound body and return its ``role``/``content`` pairs."""
        try:
            request = ChatRequest.model_validate(payload)
        except ValidationError as exc:
            raise MalformedRequest(f"invalid message list: {exc.error_count()} error(s)") from exc
        return [{"role": turn.role, "content": turn.content} for turn in request.messages]

    def build_prompt(self, messages: List[Dict[str, str]]) -> List[Dict[str, str]]:
        prompt: List[Dict[str, str]] = [{"role": SYSTEM_ROLE, "content": self.config.system_prompt}]
        prompt.extend({"role": m["role"], "content": m["content"]} for m in messages)
        return prompt

    def stream(self, messages: List[Dict[str, str]]) -> Iterator[str]:
        """Yield encoded frames for the model's reply as it is produced.

        The generator always ends with exactly one terminal frame unless the
        caller closes it first, in which case the upstream stream is closed
        too. Tokens are pulled on a worker thread so a stalled model read
        cannot hold the stream open past ``max_duration_seconds``.
        """
        prompt = self.build_prompt(messages)
        max_duration = self.config.max_duration_seconds
        deadline = time.monotonic() + max_duration
        read_timeout = min(max_duration, self.config.llm.request_timeout)
        deltas = 0

        logger.info("Relaying completion for %d message(s)", len(messages))
        pump = _UpstreamPump(
            lambda: self.client.stream_completion(
                prompt,
                model_kwargs=self.config.model_kwargs,
                timeout=read_timeout,
            )
        )
        try:
            while True:
                remaining = deadline - time.monotonic()
                try:
                    if remaining <= 0:
                        raise queue.Empty
                    event, value = pump.pull(remaining)
                except queue.Empty:
                    logger.warning("Relay exceeded %.1fs after %d delta(s)", max_duration, deltas)
                    yield encode_error(RelayTimeout.kind, f"exceeded {max_duration:g}s")
                    return
                if event == _DONE:
                    break
                if event == _FAILED:
                    raise value
                deltas += 1
                yield encode_text(value)
        except UpstreamFailure as exc:
            logger.warning("Upstream failure after %d delta(s): %s", deltas, exc.message)
            yield encode_error(exc.kind, exc.message)
            return
        except Exception:
            logger.exception("Unexpected error while relaying after %d delta(s)", deltas)
            yield encode_error(UpstreamFailure.kind, "unexpected relay error")
            return
        finally:
            pump.stop()

        logger.info("Relay complete with %d delta(s)", deltas)
        yield encode_finish()


_TOKEN, _DONE, _FAILED = "token", "done", "failed"


class _UpstreamPump:
    """Reads a blocking model stream on a worker thread, one token per request.

    Nothing is read ahead of the consumer, so closing the relay after N
    frames means exactly N tokens were pulled from the model.
    """

    def __init__(self, open_stream: Callable[[], Iterable[str]]) -> None:
        self.events: "queue.Queue[Tuple[str, Any]]" = queue.Queue()
        self._demand = threading.Semaphore(0)
        self._stopped = threading.Event()
        self._pending = False
        self._thread = threading.Thread(target=self._run, args=(open_stream,), name="relay-upstream", daemon=True)
        self._thread.start()

    def pull(self, timeout: float) -> Tuple[str, Any]:
        """Return the next event, raising ``queue.Empty`` if none arrives within ``timeout``."""
        if not self._pending:
            self._pending = True
            self._demand.release()
        event = self.events.get(timeout=timeout)
        self._pending = False
        return event

    def stop(self) -> None:
        self._stopped.set()
        self._demand.release()
        if self._pending:
            # Worker is blocked in a model read; it closes the stream once the
            # read returns or hits its timeout.
            logger.debug("Leaving upstream read to finish in the background")
            return
        self._thread.join()

    def _run(self, open_stream: Callable[[], Iterable[str]]) -> None:
        upstream: Optional[Iterator[str]] = None
        try:
            while True:
                self._demand.acquire()
                if self._stopped.is_set():
                    return
                if upstream is None:
                    upstream = iter(open_stream())
                try:
                    token = next(upstream)
                except StopIteration:
                    self.events.put((_DONE, None))
                    return
                self.events.put((_TOKEN, token))
        except Exception as exc:
            self.events.put((_FAILED, exc))
        finally:
            close = getattr(upstream, "close", None) if upstream is not None else None
            if close is not None:
                close()
