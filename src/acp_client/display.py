"""Console rendering for the interactive client."""

import difflib
import json
from typing import Any, Dict, Optional

from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.text import Text

from .models.messages import ToolResultMessage


class ConsoleDisplay:
    """
    Renders the conversation on a rich console.

    Features:
    - User, model and system messages with consistent prefixes
    - Incremental display of a streamed reply
    - Before/after preview for file writes
    - Tool call and tool result summaries
    """

    def __init__(self, console: Optional[Console] = None):
        self.console = console or Console(highlight=False)
        self._stream_id: Optional[str] = None
        self._stream_shown = ""

    # Messages

    def section(self, title: str) -> None:
        self.console.rule(f"[bold]{escape(title)}[/bold]")

    def info(self, message: str) -> None:
        self.console.print(f"[cyan]ℹ[/cyan] {escape(message)}")

    def success(self, message: str) -> None:
        self.console.print(f"[green]✓[/green] {escape(message)}")

    def warning(self, message: str) -> None:
        self.console.print(f"[yellow]⚠[/yellow] {escape(message)}")

    def error(self, message: str) -> None:
        self.console.print(f"[red]✗[/red] {escape(message)}")

    def user_message(self, content: str) -> None:
        self.console.print(f"[green bold]You:[/green bold] {escape(content)}")

    def model_message(self, content: str) -> None:
        self.console.print()
        self.console.print("[blue bold]🤖 Model:[/blue bold]")
        self.console.print(Text(content))

    def other_message(self, message: Dict[str, Any]) -> None:
        self.info(f"Received message: {json.dumps(message, ensure_ascii=False)}")

    # Connection state

    def connecting(self, url: str) -> None:
        self.info(f"Connecting to {url} ...")

    def connected(self) -> None:
        self.success("Connected to ACP server")

    def connection_failed(self, reason: str) -> None:
        self.error(f"Connection failed: {reason}")

    def connection_closed(self, code: Optional[int], reason: Optional[str]) -> None:
        self.warning(f"Connection closed (code: {code}, reason: {reason or 'none'})")

    # Tools

    def tool_call(self, tool: Any, call_id: str) -> None:
        name = str(tool) if tool not in (None, "") else "?"
        self.console.print()
        self.console.print(
            f"[magenta bold]🔧 Tool call:[/magenta bold] {escape(name)} [dim]({escape(call_id)})[/dim]"
        )

    def tool_result(self, result: ToolResultMessage) -> None:
        if result.success:
            self.success(f"Tool {result.tool_call_id} completed")
        elif result.error == "user_rejected":
            self.warning(f"Tool {result.tool_call_id} rejected")
        else:
            detail = result.error or result.stderr or f"exit code {result.code}"
            self.error(f"Tool {result.tool_call_id} failed: {detail.strip()}")

    def write_preview(self, path: str, old_content: Optional[str], new_content: str) -> None:
        """Show what a write_file call would change."""
        if old_content is None:
            body = Text("[new file]\n", style="green")
            body.append(new_content)
        else:
            body = Text()
            diff = difflib.unified_diff(
                old_content.splitlines(),
                new_content.splitlines(),
                lineterm="",
                n=3,
            )
            for line in list(diff)[2:]:
                if line.startswith("+"):
                    body.append(line + "\n", style="green")
                elif line.startswith("-"):
                    body.append(line + "\n", style="red")
                elif line.startswith("@@"):
                    body.append(line + "\n", style="cyan")
                else:
                    body.append(line + "\n")
            if not body.plain:
                body.append("(no changes)", style="dim")
        self.console.print(Panel(body, title=f"File write preview: {escape(path)}", border_style="bold"))

    # Prompts

    def show_prompt(self, question: str) -> None:
        self.console.print(Text(question), end="")

    # Streaming

    @property
    def is_streaming(self) -> bool:
        return self._stream_id is not None

    @property
    def stream_id(self) -> Optional[str]:
        return self._stream_id

    def start_stream(self, stream_id: str) -> None:
        self._stream_id = stream_id
        self._stream_shown = ""
        self.console.print()
        self.console.print("[blue bold]🤖 Model:[/blue bold]")

    def update_stream(self, content: str) -> None:
        """Print whatever part of the accumulated content is not on screen yet."""
        if not self.is_streaming:
            return
        new_text = content[len(self._stream_shown):]
        if new_text:
            self.console.print(Text(new_text), end="")
            self._stream_shown = content

    def complete_stream(self, final_content: str = "") -> None:
        if not self.is_streaming:
            return
        self.update_stream(final_content)
        if not self._stream_shown.endswith("\n"):
            self.console.print()
        self._stream_id = None
        self._stream_shown = ""

    def cancel_stream(self) -> None:
        if not self.is_streaming:
            return
        self.console.print()
        self.console.print(Text("[stream interrupted]", style="dim"))
        self._stream_id = None
        self._stream_shown = ""
