"""Client wrappers for streaming chat-completions requests."""

from __future__ import annotations

import json
import logging
import time
from typing import Dict, Iterable, List, Optional

import requests

from .config import RelayLLMConfig
from .errors import UpstreamFailure

logger = logging.getLogger(__name__)


class ChatLLMClient:
    """Thin wrapper around a chat-completions endpoint with streaming support."""

    def __init__(self, config: RelayLLMConfig) -> None:
        self.config = config

    def _headers(self) -> Dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.config.api_key:
            headers["Authorization"] = f"Bearer {self.config.api_key}"
        return headers

    def stream_completion(
        self,
        messages: List[Dict[str, str]],
        *,
        model_kwargs: Optional[Dict[str, object]] = None,
        timeout: Optional[float] = None,
    ) -> Iterator[str]:
        """Yield tokens from the model as they arrive.

        The HTTP response is closed when the generator finishes or is
        closed by the caller, so abandoning the iterator stops the upstream
        read.
        """
        payload: Dict[str, object] = {
            "model": self.config.model,
            "messages": messages,
            "stream": True,
        }
        if model_kwargs:
            payload.update(model_kwargs)

        logger.info("Streaming chat completion to %s using model %s", self.config.endpoint, self.config.model)
        try:
            response = requests.post(
                self.config.endpoint,
                json=payload,
                headers=self._headers(),
                stream=True,
                timeout=timeout or self.config.request_timeout,
            )
        except requests.RequestException as exc:
            raise UpstreamFailure(f"model request failed: {exc.__class__.__name__}") from exc

        with response:
            if response.status_code >= 400:
                raise UpstreamFailure(f"model endpoint returned HTTP {response.status_code}")
            try:
                for raw_line in response.iter_lines():
                    if not raw_line:
                        continue
                    line = raw_line.decode("utf-8").strip()
                    if line.startswith("data:"):
                        line = line[5:].strip()
                    if not line:
                        continue
                    if line == "[DONE]":
                        return

                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError:
                        logger.debug("Skipping non-JSON stream line: %s", line)
                        continue

                    token = self._extract_delta(chunk)
                    if token:
                        yield token
            except requests.RequestException as exc:
                raise UpstreamFailure(f"model stream dropped: {exc.__class__.__name__}") from exc

    @staticmethod
    def _extract_delta(payload: Dict[str, object]) -> str:
        try:
            choices = payload.get("choices") or []
            if not choices:
                return ""
            delta = choices[0].get("delta") or {}  # type: ignore[index, union-attr]
            content = delta.get("content") or ""
            return str(content)
        except Exception:
            logger.debug("Failed to parse stream payload: %s", payload, exc_info=True)
            return ""


class EchoLLMClient:
    """Offline stand-in that streams the latest user message back word by word."""

    def __init__(self, delay: float = 0.05) -> None:
        self.delay = delay

    def stream_completion(
        self,
        messages: List[Dict[str, str]],
        *,
        model_kwargs: Optional[Dict[str, object]] = None,
        timeout: Optional[float] = None,
    ) -> Iterable[str]:
        prompt = next(
            (m.get("content", "") for m in reversed(messages) if m.get("role") == "user"),
            "No message provided",
        )
        words = f"Echo: {prompt}".split(" ")
        for index, word in enumerate(words):
            if self.delay:
                time.sleep(self.delay)
            yield word if index == 0 else f" {word}"
