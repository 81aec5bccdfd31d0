"""
Message Content

Two-variant content model for conversation messages. A message body is either
plain text or an ordered list of structured content blocks (text, tool-call,
attachment blocks ...). Both variants support incremental append, which is how
streamed token deltas are folded into a message.

Merge table (existing content on the left, incoming fragment on top):

    existing \\ fragment | text                 | blocks
    --------------------+----------------------+---------------------------
    text                | concatenated text    | [existing] + fragment
    blocks              | blocks + [fragment]  | concatenated blocks
"""

import logging
from dataclasses import dataclass
from typing import Any, List, Optional, Tuple, Union

logger = logging.getLogger(__name__)

# A content block as it appears on the wire: usually a dict with a "type" key,
# but a bare string is also a valid element of a content list.
Block = Any


@dataclass(frozen=True)
class TextContent:
    """Plain string content."""
    text: str = ""

    def merge(self, fragment: "Content") -> "Content":
        if isinstance(fragment, TextContent):
            return TextContent(self.text + fragment.text)
        # Box the existing text as the first block; an empty string carries nothing.
        boxed: Tuple[Block, ...] = (self.text,) if self.text else ()
        return BlockContent(boxed + fragment.blocks)

    def is_empty(self) -> bool:
        return not self.text

    def to_value(self) -> str:
        return self.text


@dataclass(frozen=True)
class BlockContent:
    """Ordered sequence of structured content blocks."""
    blocks: Tuple[Block, ...] = ()

    def merge(self, fragment: "Content") -> "Content":
        if isinstance(fragment, BlockContent):
            return BlockContent(self.blocks + fragment.blocks)
        return BlockContent(self.blocks + (fragment.text,))

    def is_empty(self) -> bool:
        return not self.blocks

    def to_value(self) -> List[Block]:
        return list(self.blocks)


Content = Union[TextContent, BlockContent]


def content_from_value(value: Any) -> Content:
    """
    Decode a raw content value from a complete message payload.

    Unlike fragments, a complete message always gets some content: missing
    content becomes empty text and an unexpected scalar is boxed as a block.
    """
    if value is None:
        return TextContent("")
    if isinstance(value, str):
        return TextContent(value)
    if isinstance(value, (list, tuple)):
        return BlockContent(tuple(value))
    logger.debug(f"Boxing non-sequence content of type {type(value).__name__} as a single block")
    return BlockContent((value,))


def fragment_from_value(value: Any) -> Optional[Content]:
    """
    Decode a streamed content fragment.

    Returns None for absent or empty fragments and for values that are neither
    text nor blocks; callers treat None as "nothing to append".
    """
    if isinstance(value, str):
        return TextContent(value) if value else None
    if isinstance(value, (list, tuple)):
        return BlockContent(tuple(value)) if value else None
    if isinstance(value, dict):
        # A single block delivered on its own
        return BlockContent((value,))
    return None
