"""
UI Attachment State

Ephemeral, id-keyed rendering aids (tool-render widgets and the like) that the
agent pushes over the custom-event channel. They live beside the conversation,
not in it: an attachment may reference a message that has not arrived yet, and
nothing here ever touches the conversation store.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Union

logger = logging.getLogger(__name__)

UI_MESSAGE_TYPE = "ui"
REMOVE_UI_MESSAGE_TYPE = "remove-ui"


@dataclass(frozen=True)
class UIMessage:
    """Create-or-replace event for one attachment."""
    id: str
    name: Optional[str] = None
    props: Dict[str, Any] = field(default_factory=dict)
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def message_id(self) -> Optional[str]:
        """Id of the conversation message this attachment renders next to, if any."""
        return self.metadata.get("message_id")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": UI_MESSAGE_TYPE,
            "id": self.id,
            "name": self.name,
            "props": dict(self.props),
            "metadata": dict(self.metadata),
        }


@dataclass(frozen=True)
class RemoveUIMessage:
    """Delete event for one attachment."""
    id: str

    def to_dict(self) -> Dict[str, Any]:
        return {"type": REMOVE_UI_MESSAGE_TYPE, "id": self.id}


UIEvent = Union[UIMessage, RemoveUIMessage]


def _has_id(value: Any) -> bool:
    return isinstance(value, dict) and isinstance(value.get("id"), str) and bool(value["id"])


def is_ui_message(value: Any) -> bool:
    return _has_id(value) and value.get("type") == UI_MESSAGE_TYPE


def is_remove_ui_message(value: Any) -> bool:
    return _has_id(value) and value.get("type") == REMOVE_UI_MESSAGE_TYPE


def decode_ui_event(value: Any) -> Optional[UIEvent]:
    """
    Turn a raw custom-event payload into a typed UI event.

    Args:
        value: Payload delivered on the custom-event channel

    Returns:
        UIMessage or RemoveUIMessage, or None if the payload is neither
    """
    if is_ui_message(value):
        props = value.get("props")
        metadata = value.get("metadata")
        return UIMessage(
            id=value["id"],
            name=value.get("name"),
            props=dict(props) if isinstance(props, dict) else {},
            metadata=dict(metadata) if isinstance(metadata, dict) else {},
        )
    if is_remove_ui_message(value):
        return RemoveUIMessage(id=value["id"])
    return None


def ui_message_reducer(state: Mapping[str, UIMessage], event: UIEvent) -> Dict[str, UIMessage]:
    """
    Apply one UI event to the attachment map.

    Pure: the prior mapping is left untouched and a new dict is returned.
    Upserts are last-write-wins per id (a replaced entry keeps its position);
    removing an unknown id is a no-op.
    """
    new_state = dict(state)
    if isinstance(event, UIMessage):
        new_state[event.id] = event
    elif isinstance(event, RemoveUIMessage):
        if new_state.pop(event.id, None) is None:
            logger.debug(f"Remove for unknown UI attachment '{event.id}' ignored")
    else:
        logger.debug(f"Ignoring non-UI event {type(event).__name__} in ui_message_reducer")
    return new_state
