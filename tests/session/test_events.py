"""
Tests for stream event classification.
"""

import pytest

from session.content import BlockContent, TextContent
from session.events import (
    AuthoritativeSync, CustomUIEvent, PhaseBoundary, RunMetadata, StateUpdate, StreamEnd,
    StreamError, StreamPart, ThreadIdChanged, TokenDelta, Unknown,
    classify_langchain_event, decode, decode_stream_part,
)
from session.ui_state import RemoveUIMessage, UIMessage


class TestClassifyLangchainEvent:

    @pytest.mark.parametrize("event_name", ["on_chain_stream", "on_chat_model_stream"])
    def test_stream_events_become_token_deltas(self, event_name):
        payload = {"event": event_name, "data": {"chunk": {"id": "m1", "content": "tok", "type": "AIMessageChunk"}}}
        event = classify_langchain_event(payload)
        assert event == TokenDelta("m1", TextContent("tok"), {"type": "AIMessageChunk"})

    def test_block_chunk(self):
        payload = {"event": "on_chat_model_stream", "data": {"chunk": {"id": "m1", "content": [{"type": "text", "text": "a"}]}}}
        event = classify_langchain_event(payload)
        assert event.fragment == BlockContent(({"type": "text", "text": "a"},))

    def test_empty_chunk_content_has_no_fragment(self):
        payload = {"event": "on_chat_model_stream", "data": {"chunk": {"id": "m1", "content": ""}}}
        assert classify_langchain_event(payload).fragment is None

    def test_chunk_without_id_is_unknown(self):
        payload = {"event": "on_chain_stream", "data": {"chunk": {"messages": []}}}
        assert isinstance(classify_langchain_event(payload), Unknown)

    @pytest.mark.parametrize("event_name", ["on_chain_end", "on_tool_end", "on_chat_model_end"])
    def test_end_events_carry_snapshot(self, event_name):
        messages = [{"id": "m1", "content": "x"}]
        event = classify_langchain_event({"event": event_name, "data": {"output": {"messages": messages}}})
        assert event == PhaseBoundary(event_name, True, messages)

    def test_end_event_without_messages_has_empty_snapshot(self):
        event = classify_langchain_event({"event": "on_tool_end", "data": {"output": "plain tool output"}})
        assert event == PhaseBoundary("on_tool_end", True, [])

    @pytest.mark.parametrize("event_name", ["on_chain_start", "on_tool_start", "on_chat_model_start"])
    def test_start_events(self, event_name):
        event = classify_langchain_event({"event": event_name, "data": {}})
        assert event == PhaseBoundary(event_name, False)

    @pytest.mark.parametrize("payload", [
        {"event": "on_retriever_end", "data": {}},
        {"data": {}},
        "on_chain_end",
        None,
    ])
    def test_unrecognized_payloads(self, payload):
        assert isinstance(classify_langchain_event(payload), Unknown)


class TestDecodeStreamPart:

    def test_custom_ui_message(self):
        event = decode_stream_part("custom", {"type": "ui", "id": "u1", "name": "card", "props": {"a": 1}})
        assert isinstance(event, CustomUIEvent)
        assert event.ui_event == UIMessage(id="u1", name="card", props={"a": 1})

    def test_custom_remove_ui_message(self):
        event = decode_stream_part("custom", {"type": "remove-ui", "id": "u1"})
        assert event == CustomUIEvent(RemoveUIMessage("u1"))

    def test_other_custom_payloads_are_unknown(self):
        assert isinstance(decode_stream_part("custom", {"progress": 0.5}), Unknown)

    def test_values_with_messages(self):
        assert decode_stream_part("values", {"messages": [{"id": "a"}]}) == AuthoritativeSync([{"id": "a"}])

    def test_values_without_messages_is_unknown(self):
        assert isinstance(decode_stream_part("values", {"other": 1}), Unknown)

    def test_updates(self):
        assert decode_stream_part("updates", {"agent": {}}) == StateUpdate({"agent": {}})

    def test_thread_id_as_string_or_object(self):
        assert decode_stream_part("thread_id", "t-1") == ThreadIdChanged("t-1")
        assert decode_stream_part("thread_id", {"thread_id": "t-2"}) == ThreadIdChanged("t-2")
        assert isinstance(decode_stream_part("thread_id", ""), Unknown)

    def test_metadata(self):
        assert decode_stream_part("metadata", {"run_id": "r1"}).run_id == "r1"
        assert decode_stream_part("metadata", None) == RunMetadata(None, None)

    def test_end_and_error(self):
        assert decode_stream_part("end") == StreamEnd()
        assert decode_stream_part("error", {"message": "boom"}).message == "boom"
        assert decode_stream_part("error", "raw failure").message == "raw failure"
        assert decode_stream_part("error", None) == StreamError("Unknown stream error", None)

    def test_namespace_suffix_is_ignored(self):
        event = decode_stream_part("events|subgraph:1", {"event": "on_chain_start", "data": {}})
        assert event == PhaseBoundary("on_chain_start", False)

    def test_unknown_part_name(self):
        assert decode_stream_part("feedback", {}) == Unknown("feedback", {})
        assert isinstance(decode_stream_part(None, {}), Unknown)


class TestDecode:

    def test_typed_events_pass_through(self):
        event = StreamEnd()
        assert decode(event) is event

    def test_stream_part_and_plain_tuple(self):
        assert decode(StreamPart("end")) == StreamEnd()
        assert decode(("thread_id", "t")) == ThreadIdChanged("t")

    def test_dict_form(self):
        assert decode({"event": "end"}) == StreamEnd()

    @pytest.mark.parametrize("raw", [None, 3, "end", ("a", "b", "c"), {"data": {}}])
    def test_garbage_is_unknown(self, raw):
        assert isinstance(decode(raw), Unknown)
