"""
Tests for StreamListener: subscription pumping, loading signal and failure
handling, plus a full turn against the mock graph server.
"""

import asyncio

import pytest
from aiohttp.test_utils import TestServer
from unittest.mock import AsyncMock

from activity.client import GraphServerClient
from activity.listener import StreamListener, build_human_input
from activity.replay import ReplayEventSource
from host.event_loop import SessionEventLoop
from session.content import TextContent
from session.events import StreamPart
from session.lifecycle import SessionState
from session.stream_session import StreamSession
from testing.mock_graph_server import create_app


@pytest.fixture
def session(session_config, mock_graph_client):
    return StreamSession.create(session_config, client=mock_graph_client)


@pytest.fixture
def listener(session):
    return StreamListener(SessionEventLoop(session))


def test_requires_event_loop(session):
    with pytest.raises(TypeError):
        StreamListener(session)


def test_build_human_input():
    run_input = build_human_input("hello")
    message = run_input["messages"][0]
    assert message["type"] == "human"
    assert message["content"] == "hello"
    assert message["id"]


class TestConsume:

    @pytest.mark.asyncio
    async def test_consume_applies_parts_and_ends_stream(self, listener, session, make_delta, make_phase_end):
        source = ReplayEventSource([
            make_delta("m1", "Hi"),
            make_delta("m1", " there"),
            make_phase_end([{"id": "m1", "content": "Hi there"}, {"id": "m2", "content": "done"}]),
        ])
        assert await listener.consume(source) is True
        assert session.message_dicts() == [
            {"id": "m1", "content": "Hi there"},
            {"id": "m2", "content": "done"},
        ]
        assert session.state == SessionState.IDLE
        assert session.is_loading is False

    @pytest.mark.asyncio
    async def test_loading_is_set_while_streaming(self, listener, session, make_delta):
        observed = []

        async def subscription():
            observed.append(session.is_loading)
            yield make_delta("m", "a")
            observed.append(session.is_loading)

        await listener.consume(subscription())
        assert observed == [True, True]
        assert session.is_loading is False

    @pytest.mark.asyncio
    async def test_parts_are_applied_as_they_arrive(self, listener, session, make_delta):
        seen = []

        async def subscription():
            yield make_delta("m", "a")
            seen.append(len(session.messages))
            yield make_delta("m", "b")

        await listener.consume(subscription())
        assert seen == [1]
        assert session.messages[0].content == TextContent("ab")

    @pytest.mark.asyncio
    async def test_transport_failure_becomes_stream_error(self, listener, session, make_delta):
        async def subscription():
            yield make_delta("m", "partial")
            raise ConnectionResetError("connection dropped")

        assert await listener.consume(subscription()) is False
        assert session.state == SessionState.ERROR
        assert session.messages[0].content == TextContent("partial")
        assert session.is_loading is False

    @pytest.mark.asyncio
    async def test_consume_with_background_event_loop(self, session, make_delta):
        event_loop = SessionEventLoop(session)
        listener = StreamListener(event_loop)
        task = asyncio.create_task(event_loop.run())
        await asyncio.sleep(0)

        assert await listener.consume(ReplayEventSource([make_delta("m", "x")])) is True
        assert [m.id for m in session.messages] == ["m"]
        assert session.state == SessionState.IDLE

        event_loop.stop()
        await asyncio.wait_for(task, timeout=1.0)

    @pytest.mark.asyncio
    async def test_error_part_then_end_reports_failure(self, listener, session):
        assert await listener.consume(ReplayEventSource([("error", {"message": "boom"})])) is False
        assert session.state == SessionState.ERROR
        assert session.is_loading is False

    @pytest.mark.asyncio
    async def test_background_event_loop_is_drained_not_bypassed(self, session, make_delta, mocker):
        event_loop = SessionEventLoop(session)
        listener = StreamListener(event_loop)
        task = asyncio.create_task(event_loop.run())
        await asyncio.sleep(0)
        process_pending = mocker.spy(event_loop, "process_pending")
        drain = mocker.spy(event_loop, "drain")

        parts = [make_delta("m", "x"), ("error", {"message": "boom"})]
        assert await listener.consume(ReplayEventSource(parts)) is False
        assert session.state == SessionState.ERROR
        assert session.is_loading is False
        process_pending.assert_not_called()
        drain.assert_called()

        event_loop.stop()
        await asyncio.wait_for(task, timeout=1.0)


class TestRunTurn:

    @pytest.mark.asyncio
    async def test_full_turn_against_mock_server(self, session_config):
        async with TestServer(create_app()) as server:
            config = session_config.model_copy(update={"api_url": str(server.make_url("/")).rstrip("/")})
            session = StreamSession.create(config)
            listener = StreamListener(SessionEventLoop(session))
            try:
                assert await session.check_connection() is True
                assert await listener.run_turn("What's the weather?") is True

                messages = session.message_dicts()
                assert [m["type"] for m in messages] == ["AIMessageChunk", "human"]
                assert messages[0]["id"] == "ai-1"
                assert messages[0]["content"] == "Hello there"
                assert messages[1]["content"] == "What's the weather?"
                assert session.ui_messages["ui-1"].props == {"city": "Paris"}
                assert session.run_id == "run-1"
                assert session.thread_id is not None
                assert session.state == SessionState.IDLE

                await asyncio.sleep(config.thread_refresh_delay + 0.1)
                assert [t["thread_id"] for t in session.threads] == [session.thread_id]
            finally:
                await session.close()

    @pytest.mark.asyncio
    async def test_existing_thread_is_reused(self, listener, session, mock_graph_client):
        session.dispatch(StreamPart("thread_id", "t-existing"))
        mock_graph_client.stream_run = lambda thread_id, assistant_id, run_input: ReplayEventSource(
            [StreamPart("metadata", {"run_id": f"{thread_id}:{assistant_id}"})])

        assert await listener.run_turn("again") is True
        mock_graph_client.create_thread.assert_not_called()
        assert session.run_id == "t-existing:agent"
        await session.close()

    @pytest.mark.asyncio
    async def test_thread_creation_failure(self, listener, session, mock_graph_client):
        mock_graph_client.create_thread = AsyncMock(side_effect=OSError("no route to host"))
        assert await listener.run_turn("hello") is False
        assert session.state == SessionState.ERROR
        assert session.thread_id is None

    @pytest.mark.asyncio
    async def test_run_turn_requires_a_client(self, session_config):
        session = StreamSession(session_config)
        listener = StreamListener(SessionEventLoop(session))
        with pytest.raises(RuntimeError):
            await listener.run_turn("hello")
