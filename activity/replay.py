"""
Replay of recorded stream events.

A recording is a JSONL file, one part per line:

    {"event": "events", "data": {"event": "on_chat_model_stream", "data": {...}}}
    {"event": "values", "data": {"messages": [...]}}

Replaying a recording through a session reproduces the reconciled
conversation exactly, which is how stream captures are debugged offline.
"""

import asyncio
import json
import logging
from pathlib import Path
from typing import Any, AsyncIterator, Iterable, List, Union

from session.events import StreamPart

logger = logging.getLogger(__name__)


def load_recording(path: Union[str, Path]) -> List[StreamPart]:
    """
    Read a JSONL recording. Blank lines are skipped; malformed lines are
    logged and skipped.
    """
    parts: List[StreamPart] = []
    with open(path, "r", encoding="utf-8") as f:
        for line_number, line in enumerate(f, 1):
            line = line.strip()
            if not line:
                continue
            try:
                record = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning(f"Skipping malformed line {line_number} in {path}: {e}")
                continue
            if not isinstance(record, dict) or not isinstance(record.get("event"), str):
                logger.warning(f"Skipping line {line_number} in {path}: expected an object with an 'event' name")
                continue
            parts.append(StreamPart(record["event"], record.get("data")))
    logger.info(f"Loaded {len(parts)} recorded stream parts from {path}")
    return parts


def save_recording(path: Union[str, Path], parts: Iterable[Any]) -> int:
    """Write parts as JSONL. Returns the number of lines written."""
    count = 0
    with open(path, "w", encoding="utf-8") as f:
        for part in parts:
            event, data = part
            f.write(json.dumps({"event": event, "data": data}) + "\n")
            count += 1
    return count


class ReplayEventSource:
    """Async subscription over recorded parts, optionally paced."""

    def __init__(self, parts: Iterable[Any], delay: float = 0.0):
        self._parts = [StreamPart(*part) for part in parts]
        self.delay = delay

    @classmethod
    def from_file(cls, path: Union[str, Path], delay: float = 0.0) -> "ReplayEventSource":
        return cls(load_recording(path), delay=delay)

    def __len__(self) -> int:
        return len(self._parts)

    async def __aiter__(self) -> AsyncIterator[StreamPart]:
        for part in self._parts:
            if self.delay:
                await asyncio.sleep(self.delay)
            yield part
