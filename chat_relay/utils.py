"""Logging helpers shared by the relay server and the terminal client."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
LOG_FILENAME = "chat_relay.log"


def setup_logging(log_dir: Optional[str] = None, level: int = logging.INFO) -> logging.Logger:
    """Configure console logging and, when ``log_dir`` is given, file logging.

    Safe to call more than once: handlers are only added the first time a
    given destination is configured.
    """
    root = logging.getLogger()
    root.setLevel(level)
    formatter = logging.Formatter(LOG_FORMAT)

    if not any(getattr(h, "_chat_relay_console", False) for h in root.handlers):
        console = logging.StreamHandler()
        console.setFormatter(formatter)
        console._chat_relay_console = True  # type: ignore[attr-defined]
        root.addHandler(console)

    if log_dir:
        path = Path(log_dir)
        path.mkdir(parents=True, exist_ok=True)
        log_file = (path / LOG_FILENAME).resolve()
        existing = {
            Path(h.baseFilename).resolve() for h in root.handlers if isinstance(h, logging.FileHandler)
        }
        if log_file not in existing:
            file_handler = logging.FileHandler(log_file, encoding="utf-8")
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

    # Keep third-party request logs from drowning out the relay's own.
    logging.getLogger("urllib3").setLevel(max(level, logging.WARNING))
    return root
