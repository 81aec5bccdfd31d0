"""
Tests for the command-line entry point.
"""

import json

import pytest
from aiohttp.test_utils import TestServer

from activity.replay import save_recording
from host.main import amain, create_cli_parser
from testing.mock_graph_server import create_app


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path, mocker):
    """Keep the run away from local .env files and the root logger."""
    monkeypatch.chdir(tmp_path)
    for name in ("API_URL", "ASSISTANT_ID", "API_KEY", "TRACING_ENABLED"):
        monkeypatch.delenv(f"AGENT_CHAT_{name}", raising=False)
    return mocker.patch("host.main.configure_logging")


def test_parser_requires_a_source():
    parser = create_cli_parser()
    with pytest.raises(SystemExit):
        parser.parse_args([])
    with pytest.raises(SystemExit):
        parser.parse_args(["--replay", "x.jsonl", "--message", "hi"])


@pytest.mark.asyncio
async def test_replay_prints_reconciled_conversation(tmp_path, capsys, isolated):
    recording = tmp_path / "capture.jsonl"
    save_recording(recording, [
        ("events", {"event": "on_chat_model_stream", "data": {"chunk": {"id": "m1", "content": "Hi"}}}),
        ("events", {"event": "on_chat_model_stream", "data": {"chunk": {"id": "m1", "content": " there"}}}),
        ("events", {"event": "on_chain_end", "data": {"output": {"messages": [
            {"id": "m1", "content": "Hi there"}, {"id": "m2", "content": "done"}]}}}),
    ])
    args = create_cli_parser().parse_args(["--replay", str(recording), "--log-level", "DEBUG"])

    assert await amain(args) == 0

    output = json.loads(capsys.readouterr().out)
    assert output == [{"id": "m1", "content": "Hi there"}, {"id": "m2", "content": "done"}]
    assert isolated.call_args.kwargs["log_level"] == "DEBUG"


@pytest.mark.asyncio
async def test_replay_ending_in_error_exits_nonzero(tmp_path, capsys, isolated):
    recording = tmp_path / "failed.jsonl"
    save_recording(recording, [
        ("events", {"event": "on_chat_model_stream", "data": {"chunk": {"id": "m1", "content": "Hi"}}}),
        ("error", {"message": "boom"}),
    ])
    args = create_cli_parser().parse_args(["--replay", str(recording)])

    assert await amain(args) == 1

    output = json.loads(capsys.readouterr().out)
    assert output == [{"id": "m1", "content": "Hi"}]


@pytest.mark.asyncio
async def test_message_turn_against_server(capsys):
    async with TestServer(create_app()) as server:
        args = create_cli_parser().parse_args(["--api-url", str(server.make_url("/")), "--message", "hello"])
        assert await amain(args) == 0

    output = json.loads(capsys.readouterr().out)
    assert [m["id"] for m in output][0] == "ai-1"
    assert output[-1]["content"] == "hello"


@pytest.mark.asyncio
async def test_unreachable_server_exits_nonzero(capsys):
    args = create_cli_parser().parse_args(["--api-url", "http://127.0.0.1:1", "--message", "hello"])
    assert await amain(args) == 1
    assert capsys.readouterr().out == ""