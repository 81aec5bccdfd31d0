"""
Shared fixtures for the session, host and activity test suites.
"""

import pytest
from unittest.mock import AsyncMock, MagicMock

from host.config import SessionConfig
from session.events import StreamPart


@pytest.fixture
def session_config():
    """A resolved config pointing at a local server, with a short refresh delay."""
    return SessionConfig(
        api_url="http://localhost:2024",
        assistant_id="agent",
        thread_refresh_delay=0.01,
        health_check_timeout=1.0,
    )


@pytest.fixture
def mock_graph_client():
    """
    Fixture that provides a mock GraphServerClient instance.
    """
    client = MagicMock()
    client.check_graph_status = AsyncMock(return_value=True)
    client.search_threads = AsyncMock(return_value=[{"thread_id": "t-1"}])
    client.create_thread = AsyncMock(return_value={"thread_id": "t-new"})
    client.close = AsyncMock()
    return client


def delta(message_id, content, event_name="on_chat_model_stream", **chunk_fields):
    """Build an events part carrying one streamed chunk."""
    chunk = {"id": message_id, "content": content}
    chunk.update(chunk_fields)
    return StreamPart("events", {"event": event_name, "data": {"chunk": chunk}})


def phase_end(messages, event_name="on_chain_end"):
    """Build an events part for a phase-boundary end carrying a snapshot."""
    return StreamPart("events", {"event": event_name, "data": {"output": {"messages": messages}}})


@pytest.fixture
def make_delta():
    return delta


@pytest.fixture
def make_phase_end():
    return phase_end
