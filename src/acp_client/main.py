"""Assembly of a chat session and the interactive loop."""

import asyncio
import logging
import sys
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional

from .config import Settings, load_settings
from .display import ConsoleDisplay
from .exceptions import ConnectionError
from .models.messages import ClientMessage
from .models.session import SessionEntry, SessionMetadata, SessionSummary, now_ms
from .prompt_queue import PromptQueue
from .session_router import SessionRouter
from .session_store import SessionStore
from .stream_accumulator import StreamAccumulator
from .tool_dispatcher import ToolDispatcher
from .transcript import SessionTranscript
from .websocket import ACPConnection

logger = logging.getLogger(__name__)

EXIT_COMMANDS = frozenset({"exit", "quit"})
# How often abandoned incomplete streams are swept
STREAM_SWEEP_INTERVAL = 5.0


class ChatApp:
    """
    One interactive chat session against an ACP server.

    Builds the connection, dispatcher, prompt queue and router from the
    settings, runs the prompt loop and saves the transcript on exit.
    """

    def __init__(
        self,
        settings: Settings,
        session_name: Optional[str] = None,
        history: Optional[List[SessionEntry]] = None,
        display: Optional[ConsoleDisplay] = None,
        store: Optional[SessionStore] = None,
    ):
        self.settings = settings
        self.session_name = session_name
        self.display = display or ConsoleDisplay()
        self.store = store or SessionStore(settings.SESSIONS_DIR)
        self.transcript = SessionTranscript(history)
        self._created_at = None if session_name else now_ms()

        self.connection = ACPConnection(
            url=settings.ACP_WS_URL,
            api_key=settings.CLAUDE_API_KEY,
            logger=logging.getLogger("acp_client.websocket"),
        )
        self.accumulator = StreamAccumulator(
            grace_seconds=settings.STREAM_GRACE_SECONDS,
            stale_seconds=settings.STREAM_STALE_SECONDS,
        )
        self.prompts = PromptQueue(show=self.display.show_prompt)
        self.dispatcher = ToolDispatcher(
            sender=self.connection,
            approve=self.prompts.confirm,
            workspace_root=settings.WORKSPACE_DIR,
            preview=self.display.write_preview,
        )
        self.router = SessionRouter(
            connection=self.connection,
            accumulator=self.accumulator,
            dispatcher=self.dispatcher,
            prompts=self.prompts,
            display=self.display,
            transcript=self.transcript,
            model=settings.MODEL,
        )

    async def run(self) -> None:
        """Connect, chat until the user exits or the server goes away, then save."""
        self.display.section("Agent Starting")
        self.display.info(f"Model: {self.settings.MODEL or 'server default'}")
        self.display.info(f"Workspace: {self.settings.WORKSPACE_DIR}")
        if self.session_name:
            self.display.info(f"Resuming session: {self.session_name}")
            if len(self.transcript):
                self.display.info(f"   Loaded {len(self.transcript)} previous message(s)")

        self.settings.WORKSPACE_DIR.mkdir(parents=True, exist_ok=True)

        self.display.connecting(self.settings.ACP_WS_URL)
        try:
            with self.display.console.status("Connecting to ACP server..."):
                await self.connection.connect(timeout=self.settings.CONNECT_TIMEOUT)
        except ConnectionError as e:
            self.display.connection_failed(e.detail or e.message)
            raise
        self.display.connected()

        self.router.attach()
        self._start_stdin_reader()
        sweeper = asyncio.create_task(self._sweep_streams())
        try:
            await self._prompt_loop()
        finally:
            sweeper.cancel()
            self.prompts.close()
            await self.router.detach()
            await self.connection.close()
            await self.save()

    async def _prompt_loop(self) -> None:
        while True:
            line = await self.router.ask("\n> ")
            if line is None:
                break
            text = line.strip()
            if not text:
                continue
            if text in EXIT_COMMANDS:
                break
            await self.router.send_user_message(text)

    def _start_stdin_reader(self) -> None:
        """Feed stdin lines to whichever prompt is live, from a daemon thread."""
        loop = asyncio.get_running_loop()

        def read_lines() -> None:
            try:
                while True:
                    line = sys.stdin.readline()
                    if not line:
                        loop.call_soon_threadsafe(self.prompts.close)
                        return
                    loop.call_soon_threadsafe(self.prompts.submit, line.rstrip("\r\n"))
            except RuntimeError:
                # Event loop already closed on shutdown
                return

        threading.Thread(target=read_lines, name="stdin-reader", daemon=True).start()

    async def _sweep_streams(self) -> None:
        while True:
            await asyncio.sleep(STREAM_SWEEP_INTERVAL)
            self.accumulator.cleanup()

    async def save(self) -> str:
        """Save the transcript and return the session name used."""
        name = self.session_name or f"session-{now_ms()}"
        metadata = SessionMetadata(
            model=self.settings.MODEL,
            workspace=str(self.settings.WORKSPACE_DIR),
            created_at=self._created_at,
        )
        with self.display.console.status("Saving session..."):
            path = await self.store.save(name, self.transcript.entries, metadata)
        self.display.success(f"Session {name} saved to {path}")
        return name


def apply_session_metadata(
    settings: Settings,
    metadata: SessionMetadata,
    overrides: Dict[str, Any],
) -> Settings:
    """Fill model and workspace from a saved session where no override was given."""
    restored: Dict[str, Any] = {}
    if overrides.get("MODEL") is None and metadata.model:
        restored["MODEL"] = metadata.model
    if overrides.get("WORKSPACE_DIR") is None and metadata.workspace:
        restored["WORKSPACE_DIR"] = Path(metadata.workspace)
    if not restored:
        return settings

    logger.info(f"Restoring session settings: {', '.join(sorted(restored))}")
    return load_settings(**{**overrides, **restored})


async def run_chat(
    settings: Settings,
    session_name: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Run a chat, resuming a saved session when a name is given.

    A resumed session keeps the model and workspace it was saved with,
    unless the caller overrides them explicitly.

    Args:
        settings: Settings built from the environment and ``overrides``
        session_name: Saved session to resume
        overrides: Explicit values the settings were built with (None = not given)

    Raises:
        SessionNotFoundError: If the named session does not exist
        ConfigError: If the saved metadata does not validate
    """
    history: Optional[List[SessionEntry]] = None
    if session_name:
        store = SessionStore(settings.SESSIONS_DIR)
        history, metadata = await store.load(session_name)
        settings = apply_session_metadata(settings, metadata, overrides or {})

    app = ChatApp(settings, session_name=session_name, history=history)
    await app.run()


async def check_connection(
    settings: Settings,
    greeting: str = "Hello",
    wait_seconds: float = 3.0,
) -> List[dict]:
    """
    Connect, send a greeting and collect whatever arrives for a short while.

    Returns:
        Every decoded message received, as JSON dicts

    Raises:
        ConnectionError: If the connection cannot be opened
    """
    connection = ACPConnection(url=settings.ACP_WS_URL, api_key=settings.CLAUDE_API_KEY)
    received: List[dict] = []
    connection.on_message(lambda message: received.append(message.model_dump(mode="json")))
    connection.on_stream_chunk(
        lambda chunk: received.append(
            {
                "type": "stream",
                "stream_id": chunk.stream_id,
                "content": chunk.content,
                "done": chunk.done,
            }
        )
    )

    await connection.connect(timeout=settings.CONNECT_TIMEOUT)
    try:
        if settings.MODEL:
            greeting_message = ClientMessage(role="user", content=greeting, model=settings.MODEL)
        else:
            greeting_message = ClientMessage(role="user", content=greeting)
        await connection.send(greeting_message)
        await asyncio.sleep(wait_seconds)
    finally:
        await connection.close()

    logger.info(f"Connection check received {len(received)} message(s)")
    return received


async def list_sessions(settings: Settings) -> List[SessionSummary]:
    return await SessionStore(settings.SESSIONS_DIR).list_sessions()
