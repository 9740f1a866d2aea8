"""Concrete implementations for the session's local key-value store."""

from __future__ import annotations

import logging
import os
import tempfile
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Dict, Optional
from urllib.parse import quote

logger = logging.getLogger(__name__)


class KeyValueStore(ABC):
    """Interface for a durable string key-value store, like browser local storage.

    Implementations may raise ``OSError`` (or any other exception) from any
    method; the session treats every store call as fallible.
    """

    @abstractmethod
    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or ``None`` when the key is absent."""
        pass

    @abstractmethod
    def set(self, key: str, value: str) -> None:
        """Store ``value`` under ``key``, replacing any previous value."""
        pass

    @abstractmethod
    def remove(self, key: str) -> None:
        """Delete ``key``. Removing an absent key is not an error."""
        pass


class InMemoryStore(KeyValueStore):
    """Keeps values in a dictionary for the lifetime of the process."""

    def __init__(self) -> None:
        self._data: Dict[str, str] = {}

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)


class FileStore(KeyValueStore):
    """Stores each key as a UTF-8 file inside ``base_dir``."""

    def __init__(self, base_dir: str) -> None:
        self.base_dir = Path(base_dir)
        self.base_dir.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        return self.base_dir / f"{quote(key, safe='')}.json"

    def get(self, key: str) -> Optional[str]:
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set(self, key: str, value: str) -> None:
        path = self._path(key)
        # Write to a sibling temp file then swap, so readers never see half a value.
        fd, tmp_name = tempfile.mkstemp(dir=self.base_dir, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(value)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Wrote %d chars to %s", len(value), path)

    def remove(self, key: str) -> None:
        self._path(key).unlink(missing_ok=True)
