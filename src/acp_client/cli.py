"""Typer CLI interface for the ACP client."""

import asyncio
import json
from datetime import datetime
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from .config import load_settings
from .exceptions import ConfigError, ConnectionError, SessionNotFoundError
from .logging_config import setup_logging

app = typer.Typer(
    name="acp-client",
    help="ACP Client - interactive terminal client for an ACP agent server",
    add_completion=False,
)
console = Console()


def _format_ms(value: Optional[int]) -> str:
    if not value:
        return "-"
    return datetime.fromtimestamp(value / 1000).strftime("%Y-%m-%d %H:%M:%S")


@app.command()
def chat(
    model: Optional[str] = typer.Option(None, "--model", "-m", help="Model to request"),
    workspace: Optional[Path] = typer.Option(
        None, "--workspace", "-w", help="Directory the agent may write to"
    ),
    url: Optional[str] = typer.Option(None, "--url", "-u", help="ACP server WebSocket URL"),
    api_key: Optional[str] = typer.Option(
        None, "--api-key", help="API key sent in the Authorization header"
    ),
    session: Optional[str] = typer.Option(
        None, "--session", "-s", help="Resume a saved session by name"
    ),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """Start an interactive chat session."""
    from .main import run_chat

    try:
        overrides = dict(
            ACP_WS_URL=url,
            CLAUDE_API_KEY=api_key,
            MODEL=model,
            WORKSPACE_DIR=workspace,
            DEBUG=debug or None,
        )
        settings = load_settings(**overrides)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)

    setup_logging(settings.LOG_LEVEL, debug=settings.DEBUG)

    console.print(
        Panel.fit(
            f"[bold]ACP Client[/bold]\n\n"
            f"📡 Server: {settings.ACP_WS_URL}\n"
            f"🤖 Model: {settings.MODEL or 'server default'}\n"
            f"📁 Workspace: {settings.WORKSPACE_DIR}\n"
            f"🔍 Debug: {'enabled' if settings.DEBUG else 'disabled'}\n\n"
            f"Type [bold]exit[/bold] or [bold]quit[/bold] to leave",
            border_style="green",
        )
    )

    try:
        asyncio.run(run_chat(settings, session_name=session, overrides=overrides))
    except (SessionNotFoundError, ConfigError) as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)
    except ConnectionError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Interrupted[/yellow]")


@app.command()
def sessions(
    sessions_dir: Optional[Path] = typer.Option(
        None, "--sessions-dir", help="Directory holding the session database"
    ),
):
    """List saved chat sessions."""
    from .main import list_sessions

    try:
        settings = load_settings(SESSIONS_DIR=sessions_dir)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)

    summaries = asyncio.run(list_sessions(settings))
    if not summaries:
        console.print("[dim]No saved sessions[/dim]")
        return

    table = Table(title="Saved sessions")
    table.add_column("Name", style="bold")
    table.add_column("Model")
    table.add_column("Messages", justify="right")
    table.add_column("Created")
    table.add_column("Last updated")
    for summary in summaries:
        table.add_row(
            summary.name,
            summary.metadata.model or "-",
            str(summary.message_count),
            _format_ms(summary.metadata.created_at),
            _format_ms(summary.metadata.last_updated),
        )
    console.print(table)


@app.command()
def check(
    url: Optional[str] = typer.Option(None, "--url", "-u", help="ACP server WebSocket URL"),
    api_key: Optional[str] = typer.Option(None, "--api-key", help="API key"),
    wait: float = typer.Option(3.0, "--wait", help="Seconds to wait for a reply"),
    debug: bool = typer.Option(False, "--debug", help="Enable debug logging"),
):
    """Connect to the server, send a greeting and print what comes back."""
    from .main import check_connection

    try:
        settings = load_settings(ACP_WS_URL=url, CLAUDE_API_KEY=api_key, DEBUG=debug or None)
    except ConfigError as e:
        console.print(f"[red]Error:[/red] {e.message}")
        raise typer.Exit(1)

    setup_logging(settings.LOG_LEVEL, debug=settings.DEBUG)

    console.print(f"Checking {settings.ACP_WS_URL} ...")
    try:
        received = asyncio.run(check_connection(settings, wait_seconds=wait))
    except ConnectionError as e:
        console.print(f"[red]✗[/red] {e.message}")
        raise typer.Exit(1)

    console.print(f"[green]✓[/green] Connected; received {len(received)} message(s)")
    for message in received:
        console.print(json.dumps(message, ensure_ascii=False))


if __name__ == "__main__":
    app()
