"""Line-oriented wire framing between the relay and its callers.

Every frame is a single line of the form ``<code>:<json>``:

``0:"text"``
    an incremental text delta (a JSON string, so embedded newlines are
    escaped and the frame stays on one line);
``d:{"finishReason": "stop"}``
    the clean terminal marker;
``3:{"kind": "...", "message": "..."}``
    the abnormal terminal marker, carrying an error kind.

A stream that ends without either terminal marker was truncated.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Optional, Union

from .errors import UpstreamFailure, error_from_kind

logger = logging.getLogger(__name__)

TEXT_CODE = "0"
ERROR_CODE = "3"
FINISH_CODE = "d"
MEDIA_TYPE = "text/plain; charset=utf-8"
STREAM_HEADER = ("X-Chat-Stream", "v1")


@dataclass(frozen=True)
class Frame:
    code: str
    value: Any


def encode_text(delta: str) -> str:
    return f"{TEXT_CODE}:{json.dumps(delta)}\n"


def encode_finish(reason: str = "stop") -> str:
    return f"{FINISH_CODE}:{json.dumps({'finishReason': reason})}\n"


def encode_error(kind: str, message: str) -> str:
    return f"{ERROR_CODE}:{json.dumps({'kind': kind, 'message': message})}\n"


def decode_frame(line: Union[str, bytes]) -> Optional[Frame]:
    """Parse one line. Returns ``None`` for blank or unparseable lines."""
    if isinstance(line, bytes):
        line = line.decode("utf-8")
    line = line.strip()
    if not line:
        return None

    code, sep, body = line.partition(":")
    if not sep:
        logger.debug("Skipping line without a frame code: %s", line)
        return None
    try:
        value = json.loads(body)
    except json.JSONDecodeError:
        logger.debug("Skipping frame with a non-JSON body: %s", line)
        return None
    return Frame(code=code, value=value)


def iter_text_deltas(lines: Iterable[Union[str, bytes]]) -> Iterator[str]:
    """Yield text deltas until a terminal marker is reached.

    Raises the error carried by an error frame, or :class:`UpstreamFailure`
    when the lines run out before any terminal marker.
    """
    for line in lines:
        frame = decode_frame(line)
        if frame is None:
            continue
        if frame.code == TEXT_CODE:
            if isinstance(frame.value, str) and frame.value:
                yield frame.value
        elif frame.code == FINISH_CODE:
            return
        elif frame.code == ERROR_CODE:
            payload = frame.value if isinstance(frame.value, dict) else {}
            raise error_from_kind(str(payload.get("kind", "")), str(payload.get("message", "")))
        else:
            logger.debug("Ignoring frame with unknown code %r", frame.code)

    raise UpstreamFailure("stream ended without a terminal marker")
