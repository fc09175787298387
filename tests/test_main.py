"""Tests for chat session assembly."""

import io
import json
import logging

import pytest
from rich.console import Console
from websockets.asyncio.server import serve
from acp_client.config import load_settings
from acp_client.display import ConsoleDisplay
from acp_client.logging_config import setup_logging
from acp_client.main import ChatApp, apply_session_metadata, check_connection, list_sessions, run_chat
from acp_client.models.messages import ClientMessage
from acp_client.models.session import SessionMetadata


@pytest.fixture
def settings(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    return load_settings(
        WORKSPACE_DIR=tmp_path / "workspace",
        SESSIONS_DIR=tmp_path / "sessions",
        MODEL="test-model",
    )


@pytest.fixture
def display():
    return ConsoleDisplay(Console(file=io.StringIO(), width=120))


@pytest.mark.asyncio
async def test_save_new_session_generates_name(settings, display):
    app = ChatApp(settings, display=display)
    app.transcript.record_outgoing(ClientMessage(role="user", content="hi"))

    name = await app.save()

    assert name.startswith("session-")
    summaries = await list_sessions(settings)
    assert [(s.name, s.message_count, s.metadata.model) for s in summaries] == [
        (name, 1, "test-model")
    ]


@pytest.mark.asyncio
async def test_save_existing_session_keeps_name(settings, display):
    first = ChatApp(settings, display=display)
    first.transcript.record_outgoing(ClientMessage(role="user", content="one"))
    name = await first.save()

    entries, _ = await first.store.load(name)
    resumed = ChatApp(settings, session_name=name, history=entries, display=display)
    resumed.transcript.record_outgoing(ClientMessage(role="user", content="two"))

    assert await resumed.save() == name
    saved, _ = await resumed.store.load(name)
    assert [e.message["content"] for e in saved] == ["one", "two"]


@pytest.mark.asyncio
async def test_chat_app_wires_dispatcher_to_connection(settings, display):
    app = ChatApp(settings, display=display)

    assert app.dispatcher.sender is app.connection
    assert app.dispatcher.workspace_root == settings.WORKSPACE_DIR
    assert app.router.model == "test-model"


@pytest.mark.asyncio
async def test_check_connection_collects_replies(settings):
    received = []

    async def handler(connection):
        async for frame in connection:
            received.append(json.loads(frame))
            await connection.send('{"type":"text","content":"pong"}')

    async with serve(handler, "127.0.0.1", 0) as server:
        port = server.sockets[0].getsockname()[1]
        settings.ACP_WS_URL = f"ws://127.0.0.1:{port}"

        replies = await check_connection(settings, greeting="ping", wait_seconds=0.2)

    assert received == [
        {"type": "client_message", "role": "user", "content": "ping", "model": "test-model"}
    ]
    assert replies == [{"type": "text", "content": "pong"}]


def test_setup_logging_levels():
    setup_logging("WARNING")
    assert logging.getLogger().level == logging.WARNING
    assert logging.getLogger("websockets").level == logging.WARNING

    setup_logging("INFO", debug=True)
    assert logging.getLogger().level == logging.DEBUG
    assert logging.getLogger("websockets").level == logging.DEBUG


async def save_session(settings, display, name):
    app = ChatApp(settings, session_name=name, display=display)
    app.transcript.record_outgoing(ClientMessage(role="user", content="earlier"))
    await app.save()


@pytest.fixture
def captured_apps(monkeypatch):
    """Replace ChatApp in run_chat with a recorder that never connects."""
    apps = []

    class RecordingApp:
        def __init__(self, settings, session_name=None, history=None):
            self.settings = settings
            self.session_name = session_name
            self.history = history
            apps.append(self)

        async def run(self):
            return None

    monkeypatch.setattr("acp_client.main.ChatApp", RecordingApp)
    return apps


@pytest.mark.asyncio
async def test_resume_restores_saved_model_and_workspace(tmp_path, monkeypatch, display, captured_apps):
    monkeypatch.chdir(tmp_path)
    saved_workspace = tmp_path / "saved-workspace"
    original = load_settings(
        WORKSPACE_DIR=saved_workspace, SESSIONS_DIR=tmp_path / "sessions", MODEL="saved-model"
    )
    await save_session(original, display, "resume-me")

    overrides = {"SESSIONS_DIR": tmp_path / "sessions", "MODEL": None, "WORKSPACE_DIR": None}
    await run_chat(load_settings(**overrides), session_name="resume-me", overrides=overrides)

    app = captured_apps[0]
    assert app.settings.MODEL == "saved-model"
    assert app.settings.WORKSPACE_DIR == saved_workspace.resolve()
    assert [e.message["content"] for e in app.history] == ["earlier"]


@pytest.mark.asyncio
async def test_resume_keeps_explicit_overrides(tmp_path, monkeypatch, display, captured_apps):
    monkeypatch.chdir(tmp_path)
    original = load_settings(
        WORKSPACE_DIR=tmp_path / "saved-workspace", SESSIONS_DIR=tmp_path / "sessions", MODEL="saved-model"
    )
    await save_session(original, display, "resume-me")

    overrides = {
        "SESSIONS_DIR": tmp_path / "sessions",
        "MODEL": "cli-model",
        "WORKSPACE_DIR": tmp_path / "cli-workspace",
    }
    await run_chat(load_settings(**overrides), session_name="resume-me", overrides=overrides)

    app = captured_apps[0]
    assert app.settings.MODEL == "cli-model"
    assert app.settings.WORKSPACE_DIR == (tmp_path / "cli-workspace").resolve()


def test_apply_session_metadata_without_saved_values(settings):
    result = apply_session_metadata(settings, SessionMetadata(), {})

    assert result is settings
