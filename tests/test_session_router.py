"""Tests for session routing of connection events."""

import asyncio
import io
import json

import pytest
from unittest.mock import AsyncMock, MagicMock
from rich.console import Console
from acp_client.codec import WireCodec
from acp_client.display import ConsoleDisplay
from acp_client.events import EventChannel
from acp_client.models.messages import (
    TextMessage,
    ToolCallMessage,
    ToolResultMessage,
    UnknownMessage,
)
from acp_client.prompt_queue import PromptQueue
from acp_client.session_router import SessionRouter
from acp_client.stream_accumulator import StreamAccumulator
from acp_client.tool_dispatcher import ToolDispatcher
from acp_client.transcript import SessionTranscript
from acp_client.types import StreamChunk


class FakeConnection:
    """Connection double exposing the listener API and recording sends."""

    def __init__(self):
        self.codec = WireCodec()
        self.messages = EventChannel("message")
        self.stream_chunks = EventChannel("stream_chunk")
        self.errors = EventChannel("error")
        self.closes = EventChannel("close")
        self.sent = []

    def on_message(self, listener):
        return self.messages.subscribe(listener)

    def on_stream_chunk(self, listener):
        return self.stream_chunks.subscribe(listener)

    def on_error(self, listener):
        return self.errors.subscribe(listener)

    def on_close(self, listener):
        return self.closes.subscribe(listener)

    async def send(self, message):
        self.sent.append(message)
        return True


def tool_result(call_id="c1"):
    return ToolResultMessage(tool_call_id=call_id, success=True, stdout="ok")


@pytest.fixture
def output():
    return io.StringIO()


@pytest.fixture
def display(output):
    return ConsoleDisplay(Console(file=output, force_terminal=False, width=120))


@pytest.fixture
def connection():
    return FakeConnection()


@pytest.fixture
def dispatcher():
    mock = MagicMock(spec=ToolDispatcher)
    mock.handle_tool_call = AsyncMock(side_effect=lambda call: tool_result(call.id))
    return mock


@pytest.fixture
def transcript():
    return SessionTranscript()


@pytest.fixture
def make_router(connection, dispatcher, display, transcript):
    def factory(model=None):
        return SessionRouter(
            connection=connection,
            accumulator=StreamAccumulator(),
            dispatcher=dispatcher,
            prompts=PromptQueue(show=display.show_prompt),
            display=display,
            transcript=transcript,
            model=model,
        )
    return factory


def incoming(transcript):
    return [entry.incoming for entry in transcript.entries if entry.incoming is not None]


@pytest.mark.asyncio
async def test_text_stream_becomes_one_transcript_message(make_router, connection, transcript, output):
    router = make_router()
    router.attach()

    connection.stream_chunks.emit(StreamChunk("s1", "Hello, ", False))
    connection.stream_chunks.emit(StreamChunk("s1", "world", False))
    connection.stream_chunks.emit(StreamChunk("s1", "!", True))
    await router.detach()

    assert incoming(transcript) == [{"type": "text", "content": "Hello, world!"}]
    assert "Hello, world!" in output.getvalue()
    assert router.display.is_streaming is False
    assert router.accumulator.has_stream("s1") is False


@pytest.mark.asyncio
async def test_tool_call_interrupts_stream_and_is_dispatched(
    make_router, connection, dispatcher, transcript, output
):
    router = make_router()
    router.attach()
    call = ToolCallMessage(id="c1", tool="read_file", args={"path": "a.txt"})

    connection.stream_chunks.emit(StreamChunk("s1", "partial", False))
    connection.messages.emit(call)
    await router.detach()

    dispatcher.handle_tool_call.assert_awaited_once_with(call)
    assert router.display.is_streaming is False
    assert "[stream interrupted]" in output.getvalue()
    # Accumulated text survives the interruption
    assert router.accumulator.get_content("s1") == "partial"

    entries = transcript.entries
    assert entries[0].incoming["type"] == "tool_call"
    assert entries[1].outgoing == {
        "type": "tool_result",
        "tool_call_id": "c1",
        "success": True,
        "stdout": "ok",
    }


@pytest.mark.asyncio
async def test_events_wait_for_tool_call_to_finish(make_router, connection, dispatcher, transcript):
    router = make_router()
    release = asyncio.Event()

    async def slow_dispatch(call):
        await release.wait()
        return tool_result(call.id)

    dispatcher.handle_tool_call.side_effect = slow_dispatch
    router.attach()

    connection.messages.emit(ToolCallMessage(id="c1", tool="run_shell", args={"cmd": "true"}))
    connection.messages.emit(TextMessage(content="after the tool"))
    await asyncio.sleep(0.05)

    assert [m["type"] for m in incoming(transcript)] == ["tool_call"]

    release.set()
    await router.detach()

    assert [m["type"] for m in incoming(transcript)] == ["tool_call", "text"]


@pytest.mark.asyncio
async def test_streamed_tool_call_is_decoded_and_dispatched(make_router, connection, dispatcher):
    router = make_router()
    router.attach()
    payload = json.dumps({"type": "tool_call", "id": "t9", "tool": "read_file", "args": {"path": "x"}})

    connection.stream_chunks.emit(StreamChunk("tc", payload[:10], False, "tool_call"))
    connection.stream_chunks.emit(StreamChunk("tc", payload[10:], True, "tool_call"))
    await router.detach()

    dispatched = dispatcher.handle_tool_call.await_args.args[0]
    assert isinstance(dispatched, ToolCallMessage)
    assert dispatched.id == "t9"
    assert router.display.is_streaming is False


@pytest.mark.asyncio
async def test_streamed_tool_call_without_call_is_ignored(make_router, connection, dispatcher):
    router = make_router()
    router.attach()

    connection.stream_chunks.emit(StreamChunk("tc", "not json", True, "tool_call"))
    await router.detach()

    dispatcher.handle_tool_call.assert_not_awaited()


@pytest.mark.asyncio
async def test_text_message_displayed_and_recorded(make_router, connection, transcript, output):
    router = make_router()
    router.attach()

    connection.messages.emit(TextMessage(content="a full reply"))
    await router.detach()

    assert "a full reply" in output.getvalue()
    assert incoming(transcript) == [{"type": "text", "content": "a full reply"}]


@pytest.mark.asyncio
async def test_unknown_message_shown_as_other(make_router, connection, transcript, output):
    router = make_router()
    router.attach()

    connection.messages.emit(UnknownMessage(type="status", state="busy"))
    await router.detach()

    assert "Received message" in output.getvalue()
    assert incoming(transcript) == [{"type": "status", "state": "busy"}]


@pytest.mark.asyncio
async def test_handler_error_does_not_stop_worker(make_router, connection, dispatcher, transcript):
    router = make_router()
    dispatcher.handle_tool_call.side_effect = [RuntimeError("boom"), tool_result("c2")]
    router.attach()

    connection.messages.emit(ToolCallMessage(id="c1", tool="read_file", args={}))
    connection.messages.emit(ToolCallMessage(id="c2", tool="read_file", args={}))
    await router.detach()

    assert dispatcher.handle_tool_call.await_count == 2


@pytest.mark.asyncio
async def test_send_user_message_with_model(make_router, connection, transcript):
    router = make_router(model="claude-x")

    message = await router.send_user_message("hi")

    assert connection.sent == [message]
    assert message.model == "claude-x"
    assert transcript.entries[0].outgoing == {
        "type": "client_message",
        "role": "user",
        "content": "hi",
        "model": "claude-x",
    }


@pytest.mark.asyncio
async def test_send_user_message_without_model(make_router, connection):
    router = make_router()

    message = await router.send_user_message("hi")

    assert "model" not in message.model_fields_set
    assert connection.sent == [message]


@pytest.mark.asyncio
async def test_close_ends_pending_ask(make_router, connection, output):
    router = make_router()
    router.attach()

    ask = asyncio.create_task(router.ask("> "))
    await asyncio.sleep(0.01)
    connection.closes.emit(1000, None)

    assert await asyncio.wait_for(ask, 1) is None
    assert router.closed.is_set()
    assert "Connection closed" in output.getvalue()
    assert await router.ask("> ") is None
    await router.detach()


@pytest.mark.asyncio
async def test_ask_returns_submitted_line(make_router):
    router = make_router()

    ask = asyncio.create_task(router.ask("> "))
    await asyncio.sleep(0.01)
    router.prompts.submit("hello")

    assert await ask == "hello"


@pytest.mark.asyncio
async def test_ask_after_input_closed(make_router):
    router = make_router()
    router.prompts.close()

    assert await router.ask("> ") is None


@pytest.mark.asyncio
async def test_error_reported(make_router, connection, output):
    router = make_router()
    router.attach()

    connection.errors.emit(RuntimeError("socket broke"))
    await router.detach()

    assert "Connection error: socket broke" in output.getvalue()


@pytest.mark.asyncio
async def test_malformed_tool_calls_are_still_answered(make_router, connection):
    """Numeric ids and null tool names reach a real dispatcher and get one result each."""
    router = make_router()
    router.dispatcher = ToolDispatcher(
        sender=connection, approve=AsyncMock(return_value=True), workspace_root="."
    )
    router.attach()

    for frame in (
        '{"type":"tool_call","id":7,"tool":"read_file","args":"oops"}',
        '{"type":"tool_call","id":"c1","tool":null,"args":{}}',
    ):
        for message in connection.codec.decode(frame):
            connection.messages.emit(message)
    await router.detach()

    assert [(r.tool_call_id, r.success, r.error) for r in connection.sent] == [
        ("7", False, "Invalid read_file args: args must be an object"),
        ("c1", False, "Unknown tool: None"),
    ]


@pytest.mark.asyncio
async def test_tool_call_without_id_is_logged(make_router, connection, dispatcher, caplog):
    router = make_router()
    router.attach()

    for message in connection.codec.decode('{"type":"tool_call","tool":"read_file"}'):
        connection.messages.emit(message)
    with caplog.at_level("WARNING", logger="acp_client.session_router"):
        await router.detach()

    dispatcher.handle_tool_call.assert_not_awaited()
    assert connection.sent == []
    assert "cannot be answered" in caplog.text
