"""
Server-Sent Events decoding for the run stream.

Feeds raw lines in, yields (event, data) pairs out. Data lines of one frame
are joined with newlines and parsed as JSON; payloads that are not JSON are
passed through as strings.
"""

import json
import logging
from typing import Any, List, Optional, Tuple

logger = logging.getLogger(__name__)

DEFAULT_EVENT_NAME = "message"


class SSEDecoder:
    """Incremental decoder; call decode() per line, it returns a frame on blank lines."""

    def __init__(self):
        self._event: Optional[str] = None
        self._data: List[str] = []

    def decode(self, line: str) -> Optional[Tuple[str, Any]]:
        line = line.rstrip("\r\n")

        if not line:
            return self._flush()

        if line.startswith(":"):
            # comment / keepalive
            return None

        name, _, value = line.partition(":")
        if value.startswith(" "):
            value = value[1:]

        if name == "event":
            self._event = value
        elif name == "data":
            self._data.append(value)
        # id / retry are not used by the run stream
        return None

    def _flush(self) -> Optional[Tuple[str, Any]]:
        if self._event is None and not self._data:
            return None

        event = self._event or DEFAULT_EVENT_NAME
        raw = "\n".join(self._data)
        self._event = None
        self._data = []

        if not raw:
            return event, None
        try:
            return event, json.loads(raw)
        except json.JSONDecodeError:
            logger.debug(f"Non-JSON data in SSE frame '{event}', passing through as text")
            return event, raw

    def flush(self) -> Optional[Tuple[str, Any]]:
        """Emit a trailing frame that was not terminated by a blank line."""
        return self._flush()
