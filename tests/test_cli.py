"""Tests for the command line interface."""

import pytest
from typer.testing import CliRunner
from acp_client.cli import app

runner = CliRunner()


@pytest.fixture(autouse=True)
def isolated(monkeypatch, tmp_path):
    for name in ("ACP_WS_URL", "CLAUDE_API_KEY", "MODEL", "SESSIONS_DIR", "WORKSPACE_DIR"):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


def test_sessions_empty(tmp_path):
    result = runner.invoke(app, ["sessions", "--sessions-dir", str(tmp_path / "s")])

    assert result.exit_code == 0
    assert "No saved sessions" in result.output


def test_chat_rejects_invalid_url():
    result = runner.invoke(app, ["chat", "--url", "http://localhost:9000"])

    assert result.exit_code == 1
    assert "ACP_WS_URL" in result.output


def test_check_reports_connection_failure():
    result = runner.invoke(app, ["check", "--url", "ws://127.0.0.1:1", "--wait", "0"])

    assert result.exit_code == 1
    assert "127.0.0.1:1" in result.output
