"""
Conversation Store

Maintains the single ordered, id-deduplicated list of conversation messages a
session renders. Three writers feed it:

- the token accumulator (streamed content deltas keyed by message id),
- the snapshot merger (complete message lists emitted at phase boundaries),
- the authoritative sync merger (the server-side state's message list).

Ordering is by first observation. A message first seen as a token fragment
keeps its slot even when later snapshots introduce siblings, and whichever
writer introduces an id first owns that id's content for the rest of the
session. Messages are never removed except by clear().
"""

import logging
from collections.abc import Hashable
from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, Iterator, List, Optional, Set, Tuple

from session.content import Content, TextContent, content_from_value

logger = logging.getLogger(__name__)

# Servers usually send string ids, but any non-empty hashable value is accepted
MessageId = Hashable


def is_message_id(value: Any) -> bool:
    """True for a value usable as a message key: hashable and not empty."""
    return isinstance(value, Hashable) and not isinstance(value, bool) and bool(value)


@dataclass(frozen=True)
class Message:
    """
    One conversation turn or chunk.

    Only `id` and `content` are interpreted; every other field of the incoming
    payload (type, name, tool_calls, response_metadata, ...) rides along in
    `fields` untouched.
    """
    id: MessageId
    content: Content = field(default_factory=TextContent)
    fields: Dict[str, Any] = field(default_factory=dict)

    @property
    def type(self) -> Optional[str]:
        return self.fields.get("type")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Optional["Message"]:
        """Build a Message from a wire payload; None if it carries no usable id."""
        if not isinstance(data, dict):
            return None
        message_id = data.get("id")
        if not is_message_id(message_id):
            return None
        extra = {k: v for k, v in data.items() if k not in ("id", "content")}
        return cls(id=message_id, content=content_from_value(data.get("content")), fields=extra)

    def to_dict(self) -> Dict[str, Any]:
        data = dict(self.fields)
        data["id"] = self.id
        data["content"] = self.content.to_value()
        return data


class ConversationStore:
    """
    Ordered message collection keyed by id.

    `_messages` holds the render order, `_message_map` maps id -> index so
    existence checks and in-place content updates are O(1).
    """

    def __init__(self):
        self._messages: List[Message] = []
        self._message_map: Dict[str, int] = {}

    # --- Read access ---

    def __len__(self) -> int:
        return len(self._messages)

    def __iter__(self) -> Iterator[Message]:
        return iter(tuple(self._messages))

    def __contains__(self, message_id: object) -> bool:
        return message_id in self._message_map

    def get(self, message_id: MessageId) -> Optional[Message]:
        index = self._message_map.get(message_id)
        return self._messages[index] if index is not None else None

    def get_messages(self) -> Tuple[Message, ...]:
        """Read-only snapshot of the store in render order."""
        return tuple(self._messages)

    def message_ids(self) -> List[MessageId]:
        return [message.id for message in self._messages]

    def to_dicts(self) -> List[Dict[str, Any]]:
        return [message.to_dict() for message in self._messages]

    # --- Writers ---

    def _append(self, message: Message) -> None:
        self._message_map[message.id] = len(self._messages)
        self._messages.append(message)

    def accumulate_delta(self, message_id: MessageId, fragment: Optional[Content],
                         chunk_fields: Optional[Dict[str, Any]] = None) -> bool:
        """
        Fold one streamed fragment into the message with the given id.

        Unknown ids start a new message at the tail, seeded with the fragment
        and the chunk's other fields. Known ids get the fragment merged onto
        their current content. Re-delivered fragments are applied again; there
        is no per-fragment deduplication.

        Args:
            message_id: Id of the message being streamed
            fragment: Decoded content fragment, or None
            chunk_fields: Non-content fields of the delta chunk, used only when
                the message is new

        Returns:
            True if the store changed, False for an empty fragment or missing id
        """
        if not is_message_id(message_id) or fragment is None or fragment.is_empty():
            return False

        index = self._message_map.get(message_id)
        if index is None:
            extra = {k: v for k, v in (chunk_fields or {}).items() if k not in ("id", "content")}
            self._append(Message(id=message_id, content=fragment, fields=extra))
            logger.debug(f"Started streamed message '{message_id}' at position {len(self._messages) - 1}")
            return True

        existing = self._messages[index]
        self._messages[index] = replace(existing, content=existing.content.merge(fragment))
        return True

    def _merge_missing(self, incoming: Iterable[Any], source: str) -> int:
        # Filter to ids not yet present (including repeats within `incoming`),
        # keep their relative order, append at the tail.
        seen: Set[str] = set(self._message_map)
        added: List[Message] = []
        for raw in incoming or ():
            message = raw if isinstance(raw, Message) else Message.from_dict(raw)
            if message is None:
                logger.debug(f"Skipping {source} entry without a message id")
                continue
            if message.id in seen:
                continue
            seen.add(message.id)
            added.append(message)

        for message in added:
            self._append(message)
        if added:
            logger.debug(f"Merged {len(added)} new message(s) from {source}: {[m.id for m in added]}")
        return len(added)

    def merge_snapshot(self, messages: Iterable[Any]) -> int:
        """
        Merge a phase-boundary snapshot. Existing entries are never overwritten.

        Returns:
            Number of messages appended
        """
        return self._merge_missing(messages, "snapshot")

    def merge_authoritative(self, messages: Iterable[Any]) -> int:
        """
        Merge the server-side authoritative message list. Same policy as
        merge_snapshot: append what is missing, never remove or reorder.

        Returns:
            Number of messages appended
        """
        return self._merge_missing(messages, "authoritative list")

    def clear(self) -> None:
        self._messages = []
        self._message_map = {}
