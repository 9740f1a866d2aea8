"""Configuration objects for the completion relay."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, Optional

DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant."
API_KEY_ENV = "OPENAI_API_KEY"


@dataclass
class RelayLLMConfig:
    """Model connection details."""

    endpoint: str = "https://api.openai.com/v1/chat/completions"
    model: str = "gpt-4o-mini"
    request_timeout: int = 60
    api_key: Optional[str] = field(default=None, repr=False)

    @classmethod
    def from_env(cls, **overrides: object) -> "RelayLLMConfig":
        """Build a config whose credential is read from the environment."""
        config = cls(**overrides)  # type: ignore[arg-type]
        if config.api_key is None:
            config.api_key = os.environ.get(API_KEY_ENV) or None
        return config


@dataclass
class RelayConfig:
    """Runtime controls for the relay."""

    llm: RelayLLMConfig = field(default_factory=RelayLLMConfig)
    system_prompt: str = DEFAULT_SYSTEM_PROMPT
    max_duration_seconds: float = 30.0
    model_kwargs: Dict[str, object] = field(default_factory=dict)
