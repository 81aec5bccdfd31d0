"""
Stream Event Classification

Decodes untyped stream parts into a closed set of typed variants before they
reach any merger. Two levels:

1. decode_stream_part() looks at the transport part name (events, custom,
   updates, values, thread_id, metadata, end, error).
2. classify_langchain_event() tags the LangChain lifecycle payload carried by
   an "events" part as a token delta, a phase boundary, or unknown.

Both are pure and never raise. Anything malformed decodes to Unknown.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, NamedTuple, Optional, Union

from session.content import Content, fragment_from_value
from session.message_store import MessageId, is_message_id
from session.ui_state import UIEvent, decode_ui_event

logger = logging.getLogger(__name__)

# LangChain lifecycle event names
STREAM_DELTA_EVENTS = ("on_chain_stream", "on_chat_model_stream")
PHASE_END_EVENTS = ("on_chain_end", "on_tool_end", "on_chat_model_end")
PHASE_START_EVENTS = ("on_chain_start", "on_tool_start", "on_chat_model_start")

# Transport part names
EVENTS_PART = "events"
CUSTOM_PART = "custom"
UPDATES_PART = "updates"
VALUES_PART = "values"
THREAD_ID_PART = "thread_id"
METADATA_PART = "metadata"
END_PART = "end"
ERROR_PART = "error"


class StreamPart(NamedTuple):
    """Raw part as yielded by a subscription: a name and an arbitrary payload."""
    event: str
    data: Any = None


@dataclass(frozen=True)
class TokenDelta:
    message_id: MessageId
    fragment: Optional[Content]
    chunk_fields: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class PhaseBoundary:
    """Start or end of a chain/tool/model invocation. Only ends carry messages."""
    event_name: str
    is_end: bool
    messages: List[Any] = field(default_factory=list)


@dataclass(frozen=True)
class CustomUIEvent:
    ui_event: UIEvent


@dataclass(frozen=True)
class StateUpdate:
    data: Any = None


@dataclass(frozen=True)
class AuthoritativeSync:
    messages: List[Any] = field(default_factory=list)


@dataclass(frozen=True)
class ThreadIdChanged:
    thread_id: str


@dataclass(frozen=True)
class RunMetadata:
    run_id: Optional[str] = None
    data: Any = None


@dataclass(frozen=True)
class StreamEnd:
    pass


@dataclass(frozen=True)
class StreamError:
    message: str
    data: Any = None


@dataclass(frozen=True)
class Unknown:
    event_name: Optional[str] = None
    data: Any = None


StreamEvent = Union[
    TokenDelta, PhaseBoundary, CustomUIEvent, StateUpdate, AuthoritativeSync,
    ThreadIdChanged, RunMetadata, StreamEnd, StreamError, Unknown,
]


def _get(data: Any, key: str) -> Any:
    return data.get(key) if isinstance(data, dict) else None


def classify_langchain_event(payload: Any) -> StreamEvent:
    """
    Classify a LangChain lifecycle payload of the form {"event": str, "data": {...}}.

    Returns:
        TokenDelta for stream-delta events whose chunk has an id,
        PhaseBoundary for start/end events, Unknown otherwise
    """
    event_name = _get(payload, "event")
    data = _get(payload, "data")
    if not isinstance(event_name, str):
        return Unknown(None, payload)

    if event_name in STREAM_DELTA_EVENTS:
        chunk = _get(data, "chunk")
        chunk_id = _get(chunk, "id")
        if not is_message_id(chunk_id):
            # on_chain_stream frequently carries state dicts rather than message chunks
            return Unknown(event_name, data)
        fields = {k: v for k, v in chunk.items() if k not in ("id", "content")}
        return TokenDelta(chunk_id, fragment_from_value(chunk.get("content")), fields)

    if event_name in PHASE_END_EVENTS:
        messages = _get(_get(data, "output"), "messages")
        return PhaseBoundary(event_name, True, list(messages) if isinstance(messages, list) else [])

    if event_name in PHASE_START_EVENTS:
        return PhaseBoundary(event_name, False)

    return Unknown(event_name, data)


def decode_stream_part(event: Any, data: Any = None) -> StreamEvent:
    """
    Decode one transport part into a typed stream event.

    Args:
        event: Part name; a "|namespace" suffix from subgraph streaming is ignored
        data: Part payload

    Returns:
        The typed variant; Unknown for unrecognized or malformed parts
    """
    if not isinstance(event, str):
        return Unknown(None, data)
    part_name = event.split("|", 1)[0]

    if part_name == EVENTS_PART:
        return classify_langchain_event(data)
    if part_name == CUSTOM_PART:
        ui_event = decode_ui_event(data)
        return CustomUIEvent(ui_event) if ui_event is not None else Unknown(event, data)
    if part_name == UPDATES_PART:
        return StateUpdate(data)
    if part_name == VALUES_PART:
        messages = _get(data, "messages")
        return AuthoritativeSync(list(messages)) if isinstance(messages, list) else Unknown(event, data)
    if part_name == THREAD_ID_PART:
        thread_id = data if isinstance(data, str) else _get(data, "thread_id")
        return ThreadIdChanged(thread_id) if isinstance(thread_id, str) and thread_id else Unknown(event, data)
    if part_name == METADATA_PART:
        run_id = _get(data, "run_id")
        return RunMetadata(run_id if isinstance(run_id, str) else None, data)
    if part_name == END_PART:
        return StreamEnd()
    if part_name == ERROR_PART:
        message = _get(data, "message") or _get(data, "error") or (data if isinstance(data, str) else None)
        return StreamError(str(message) if message else "Unknown stream error", data)

    return Unknown(event, data)


def decode(raw: Any) -> StreamEvent:
    """Accept a StreamPart, an (event, data) pair, or an already-typed event."""
    if isinstance(raw, (TokenDelta, PhaseBoundary, CustomUIEvent, StateUpdate, AuthoritativeSync,
                        ThreadIdChanged, RunMetadata, StreamEnd, StreamError, Unknown)):
        return raw
    if isinstance(raw, tuple) and len(raw) == 2:
        return decode_stream_part(raw[0], raw[1])
    if isinstance(raw, dict) and "event" in raw:
        return decode_stream_part(raw.get("event"), raw.get("data"))
    return Unknown(None, raw)
