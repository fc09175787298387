"""Routing of connection events to the session's consumers."""

import asyncio
import logging
from typing import Callable, List, Optional, Tuple, Union

from .codec import WireCodec
from .display import ConsoleDisplay
from .models.messages import (
    ClientMessage,
    ProtocolMessage,
    TextMessage,
    ToolCallMessage,
)
from .prompt_queue import PromptQueue
from .stream_accumulator import StreamAccumulator
from .tool_dispatcher import ToolDispatcher
from .types import StreamChunk, TranscriptSink
from .websocket import ACPConnection

InboundEvent = Union[ProtocolMessage, StreamChunk]

_STOP = object()


class SessionRouter:
    """
    Composition root for one chat session.

    Responsibilities:
    - Stream chunks go to the accumulator and the streaming display
    - A completed text stream becomes one TextMessage for the transcript
    - Tool calls cancel the streaming display, then are dispatched
    - Inbound events are handled one at a time, in arrival order; a tool
      call is fully handled before the next event is looked at
    """

    def __init__(
        self,
        connection: ACPConnection,
        accumulator: StreamAccumulator,
        dispatcher: ToolDispatcher,
        prompts: PromptQueue,
        display: ConsoleDisplay,
        transcript: Optional[TranscriptSink] = None,
        model: Optional[str] = None,
        codec: Optional[WireCodec] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.connection = connection
        self.accumulator = accumulator
        self.dispatcher = dispatcher
        self.prompts = prompts
        self.display = display
        self.transcript = transcript
        self.model = model
        self.codec = codec or connection.codec
        self.logger = logger or logging.getLogger(__name__)

        self.closed = asyncio.Event()
        self._inbox: "asyncio.Queue[object]" = asyncio.Queue()
        self._worker: Optional[asyncio.Task[None]] = None
        self._unsubscribers: List[Callable[[], None]] = []
        self._current_stream_id: Optional[str] = None

    # Wiring

    def attach(self) -> None:
        """Subscribe to the connection and start processing events."""
        if self._worker is not None:
            return
        self._unsubscribers = [
            self.connection.on_message(self._enqueue),
            self.connection.on_stream_chunk(self._enqueue),
            self.connection.on_error(self._on_error),
            self.connection.on_close(self._on_close),
        ]
        self._worker = asyncio.create_task(self._run())

    async def detach(self) -> None:
        """Unsubscribe and stop the worker once queued events are handled."""
        for unsubscribe in self._unsubscribers:
            unsubscribe()
        self._unsubscribers = []

        worker = self._worker
        self._worker = None
        if worker is not None and not worker.done():
            self._inbox.put_nowait(_STOP)
            await worker

    def _enqueue(self, event: InboundEvent) -> None:
        self._inbox.put_nowait(event)

    async def _run(self) -> None:
        while True:
            event = await self._inbox.get()
            if event is _STOP:
                break
            try:
                if isinstance(event, StreamChunk):
                    await self.handle_stream_chunk(event)
                else:
                    await self.handle_message(event)  # type: ignore[arg-type]
            except Exception as e:
                self.logger.error(f"Failed to handle inbound event: {e}", exc_info=True)

    # Inbound

    async def handle_stream_chunk(self, chunk: StreamChunk) -> None:
        if chunk.stream_type == "text" and (
            not self.display.is_streaming or self._current_stream_id != chunk.stream_id
        ):
            if self.display.is_streaming:
                self.display.complete_stream()
            self._current_stream_id = chunk.stream_id
            self.display.start_stream(chunk.stream_id)

        accumulated = self.accumulator.accumulate(chunk.stream_id, chunk.content, chunk.done)
        if chunk.stream_type == "text" and self._current_stream_id == chunk.stream_id:
            self.display.update_stream(accumulated)

        if not chunk.done:
            return

        final_content = self.accumulator.get_content(chunk.stream_id)
        self.accumulator.reset(chunk.stream_id)

        if chunk.stream_type == "tool_call":
            await self._handle_streamed_tool_call(chunk.stream_id, final_content)
            return

        if self._current_stream_id == chunk.stream_id:
            self.display.complete_stream(final_content)
            self._current_stream_id = None

        completed = TextMessage(content=final_content)
        if self.transcript is not None:
            self.transcript.record_incoming(completed)

    async def _handle_streamed_tool_call(self, stream_id: str, content: str) -> None:
        calls = [
            message for message in self.codec.decode(content)
            if isinstance(message, ToolCallMessage)
        ]
        if not calls:
            self.logger.warning(f"Tool call stream {stream_id} did not contain a tool call")
            return
        for call in calls:
            await self.handle_message(call)

    async def handle_message(self, message: ProtocolMessage) -> None:
        if self.transcript is not None:
            self.transcript.record_incoming(message)

        if isinstance(message, TextMessage):
            if not self.display.is_streaming:
                self.display.model_message(message.content)
        elif isinstance(message, ToolCallMessage):
            self._interrupt_stream()
            self.display.tool_call(message.tool, message.id)
            result = await self.dispatcher.handle_tool_call(message)
            if self.transcript is not None:
                self.transcript.record_outgoing(result)
            self.display.tool_result(result)
        else:
            if message.type == "tool_call":
                self.logger.warning(
                    f"Tool call without a usable id cannot be answered: {message.model_dump(mode='json')}"
                )
            self.display.other_message(message.model_dump(mode="json"))

    def _interrupt_stream(self) -> None:
        # Only the display is cancelled; accumulated content is kept
        if self.display.is_streaming:
            self.display.cancel_stream()
        self._current_stream_id = None

    def _on_error(self, error: BaseException) -> None:
        self._interrupt_stream()
        self.display.error(f"Connection error: {error}")

    def _on_close(self, code: Optional[int], reason: Optional[str]) -> None:
        self._interrupt_stream()
        self.display.connection_closed(code, reason)
        self.closed.set()
        self._inbox.put_nowait(_STOP)

    # Outbound

    async def send_user_message(self, content: str) -> ClientMessage:
        """Send a prompt typed by the user."""
        if self.model:
            message = ClientMessage(role="user", content=content, model=self.model)
        else:
            message = ClientMessage(role="user", content=content)

        self.display.user_message(content)
        if self.transcript is not None:
            self.transcript.record_outgoing(message)
        await self.connection.send(message)
        return message

    async def ask(self, question: str) -> Optional[str]:
        """
        Wait for the next line of user input.

        Returns:
            The line, or None if the connection closed or input ended first
        """
        if self.closed.is_set():
            return None
        answer = asyncio.ensure_future(self.prompts.ask(question))
        closed = asyncio.ensure_future(self.closed.wait())
        done, _ = await asyncio.wait({answer, closed}, return_when=asyncio.FIRST_COMPLETED)
        if answer in done:
            closed.cancel()
            try:
                return answer.result()
            except EOFError:
                return None

        answer.cancel()
        return None
