"""WebSocket connection management."""

import asyncio
import logging
from collections import deque
from enum import Enum
from typing import Callable, Deque, Dict, FrozenSet, Optional

import websockets
from websockets import ClientConnection
from websockets.exceptions import ConnectionClosed

from .codec import WireCodec
from .events import EventChannel
from .exceptions import ConnectError, ConnectionClosedError, ConnectTimeoutError
from .models.messages import ProtocolMessage, StreamingMessage, StreamMessage
from .stream_accumulator import StreamAccumulator
from .types import (
    CloseListener,
    ErrorListener,
    MessageListener,
    OutboundMessage,
    RawListener,
    StreamChunk,
    StreamChunkListener,
)

DEFAULT_URL = "ws://127.0.0.1:9000"
# Close codes that end a session without error (normal closure, going away)
NORMAL_CLOSE_CODES = frozenset({1000, 1001})


class ConnectionState(str, Enum):
    """Connection lifecycle states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    OPEN = "open"
    CLOSED = "closed"


_TRANSITIONS: Dict[ConnectionState, FrozenSet[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({ConnectionState.CONNECTING, ConnectionState.CLOSED}),
    ConnectionState.CONNECTING: frozenset({ConnectionState.OPEN, ConnectionState.CLOSED}),
    ConnectionState.OPEN: frozenset({ConnectionState.CLOSED}),
    ConnectionState.CLOSED: frozenset(),
}


class ACPConnection:
    """
    Owns the socket to an ACP server for the lifetime of one session.

    Features:
    - Explicit state machine (disconnected, connecting, open, closed)
    - Bounded connect handshake with optional bearer token
    - FIFO queue for messages sent before the socket opens
    - Tolerant frame decoding and per-event listener channels
    - No reconnection: a closed connection stays closed
    """

    def __init__(
        self,
        url: str = DEFAULT_URL,
        api_key: Optional[str] = None,
        codec: Optional[WireCodec] = None,
        logger: Optional[logging.Logger] = None,
    ):
        self.url = url
        self.api_key = api_key
        self.logger = logger or logging.getLogger(__name__)
        self.codec = codec or WireCodec(logger=self.logger)

        self._state = ConnectionState.DISCONNECTED
        self._ws: Optional[ClientConnection] = None
        self._send_queue: Deque[OutboundMessage] = deque()
        self._connect_task: Optional[asyncio.Task[None]] = None
        self._receiver_task: Optional[asyncio.Task[None]] = None
        self._implicit_stream_id: Optional[str] = None
        self._close_delivered = False

        self.messages: EventChannel[MessageListener] = EventChannel("message", self.logger)
        self.stream_chunks: EventChannel[StreamChunkListener] = EventChannel("stream_chunk", self.logger)
        self.errors: EventChannel[ErrorListener] = EventChannel("error", self.logger)
        self.closes: EventChannel[CloseListener] = EventChannel("close", self.logger)
        self.raw: EventChannel[RawListener] = EventChannel("raw", self.logger)

    # State

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_open(self) -> bool:
        return self._state is ConnectionState.OPEN

    @property
    def queued_count(self) -> int:
        """Messages waiting for the socket to open."""
        return len(self._send_queue)

    def _transition(self, new_state: ConnectionState) -> None:
        if new_state is self._state:
            return
        if new_state not in _TRANSITIONS[self._state]:
            raise RuntimeError(
                f"Illegal connection transition {self._state.value} -> {new_state.value}"
            )
        self.logger.debug(f"Connection {self._state.value} -> {new_state.value}")
        self._state = new_state

    # Listener registration

    def on_message(self, listener: MessageListener) -> Callable[[], None]:
        return self.messages.subscribe(listener)

    def on_stream_chunk(self, listener: StreamChunkListener) -> Callable[[], None]:
        return self.stream_chunks.subscribe(listener)

    def on_error(self, listener: ErrorListener) -> Callable[[], None]:
        return self.errors.subscribe(listener)

    def on_close(self, listener: CloseListener) -> Callable[[], None]:
        return self.closes.subscribe(listener)

    def on_raw(self, listener: RawListener) -> Callable[[], None]:
        return self.raw.subscribe(listener)

    # Lifecycle

    async def connect(self, timeout: float = 5.0) -> None:
        """
        Open the socket and wait for the handshake.

        Args:
            timeout: Seconds to wait for the connection to open

        Raises:
            ConnectTimeoutError: If the socket did not open in time
            ConnectError: If the socket failed before opening
            ConnectionClosedError: If this connection was already closed
        """
        if self._state is ConnectionState.OPEN:
            return
        if self._state is ConnectionState.CLOSED:
            raise ConnectionClosedError()
        if self._state is ConnectionState.CONNECTING and self._connect_task is not None:
            await asyncio.shield(self._connect_task)
            return

        self._transition(ConnectionState.CONNECTING)
        self._connect_task = asyncio.create_task(self._open(timeout))
        await asyncio.shield(self._connect_task)

    async def _open(self, timeout: float) -> None:
        headers = {"Authorization": f"Bearer {self.api_key}"} if self.api_key else None
        self.logger.info(f"Connecting to {self.url}")

        # Single settlement point: wait_for cancels the handshake on timeout
        try:
            ws = await asyncio.wait_for(self._handshake(headers), timeout=timeout)
        except asyncio.TimeoutError:
            self._transition(ConnectionState.CLOSED)
            self.logger.warning(f"Connect to {self.url} timed out after {timeout:g}s")
            raise ConnectTimeoutError(self.url, timeout)
        except asyncio.CancelledError:
            self._transition(ConnectionState.CLOSED)
            raise
        except Exception as e:
            self._transition(ConnectionState.CLOSED)
            self.logger.warning(f"Connect to {self.url} failed: {e}")
            raise ConnectError(self.url, detail=str(e)) from e

        if self._state is not ConnectionState.CONNECTING:
            # close() ran while the handshake was in flight
            await ws.close()
            raise ConnectionClosedError()

        self._ws = ws
        self._transition(ConnectionState.OPEN)
        self.logger.info(f"Connected to {self.url}")

        await self._flush_queue()
        self._receiver_task = asyncio.create_task(self._receiver_loop(ws))

    async def _handshake(self, headers: Optional[Dict[str, str]]) -> ClientConnection:
        return await websockets.connect(
            self.url, additional_headers=headers, open_timeout=None
        )

    async def _flush_queue(self) -> None:
        if self._send_queue:
            self.logger.debug(f"Flushing {len(self._send_queue)} queued message(s)")
        while self._send_queue and self.is_open:
            message = self._send_queue.popleft()
            await self._transmit(message)

    async def close(self) -> None:
        """Close the socket. Safe to call repeatedly and from any state."""
        if self._state is ConnectionState.CLOSED:
            return
        self._transition(ConnectionState.CLOSED)

        receiver = self._receiver_task
        self._receiver_task = None
        if receiver and receiver is not asyncio.current_task():
            receiver.cancel()

        ws = self._ws
        self._ws = None
        if ws is not None:
            try:
                await ws.close()
            except Exception as e:
                self.logger.debug(f"Error while closing socket: {e}")
            self._deliver_close(ws.close_code, ws.close_reason)
        self.logger.info(f"Connection to {self.url} closed")

    # Sending

    async def send(self, message: OutboundMessage) -> bool:
        """
        Send a message, or queue it until the connection opens.

        Args:
            message: Message model or plain dict

        Returns:
            True if the message was transmitted now, False if it was queued
            or could not be sent
        """
        # While a flush is in progress new messages go behind the queued ones
        if not self.is_open or self._send_queue:
            if self._state is ConnectionState.CLOSED:
                self.logger.warning("Dropping message: connection is closed")
                return False
            self._send_queue.append(message)
            self.logger.debug(f"Queued message until connected ({len(self._send_queue)} pending)")
            return False
        return await self._transmit(message)

    async def _transmit(self, message: OutboundMessage) -> bool:
        ws = self._ws
        if ws is None:
            return False
        payload = self.codec.encode(message)
        try:
            self.logger.debug(f"[WS OUT] {payload[:200]}")
            await ws.send(payload)
            return True
        except Exception as e:
            self.logger.error(f"Error sending message to {self.url}: {e}")
            self.errors.emit(e)
            return False

    # Receiving

    async def _receiver_loop(self, ws: ClientConnection) -> None:
        """Read frames until the socket closes and fan them out to listeners."""
        try:
            async for frame in ws:
                raw = frame if isinstance(frame, str) else frame.decode("utf-8", errors="replace")
                self.logger.debug(f"[WS IN] {raw[:200]}")
                self.raw.emit(raw)
                for message in self.codec.decode(raw):
                    self._dispatch(message)
        except asyncio.CancelledError:
            self.logger.debug("Receiver task cancelled")
            raise
        except ConnectionClosed as e:
            # Iteration ends quietly on 1000/1001; anything else reaches here
            if ws.close_code not in NORMAL_CLOSE_CODES:
                self.logger.warning(f"Connection to {self.url} closed abnormally: {e}")
                self.errors.emit(e)
        except Exception as e:
            self.logger.error(f"Receiver error for {self.url}: {e}")
            self.errors.emit(e)

        # Socket is done, either closed by the peer or after a receive error
        if self._state is ConnectionState.OPEN:
            self._transition(ConnectionState.CLOSED)
            self._ws = None
            self._receiver_task = None
            try:
                await ws.close()
            except Exception as e:
                self.logger.debug(f"Error while closing socket: {e}")
            self.logger.info(
                f"Connection closed by peer (code: {ws.close_code}, reason: {ws.close_reason or 'none'})"
            )
            self._deliver_close(ws.close_code, ws.close_reason)

    def _dispatch(self, message: ProtocolMessage) -> None:
        if isinstance(message, StreamingMessage):
            self.stream_chunks.emit(self._to_chunk(message))
        else:
            self.messages.emit(message)

    def _to_chunk(self, message: StreamingMessage) -> StreamChunk:
        stream_id = message.stream_id
        if stream_id is None:
            # Fragments without an id belong to the current implicit stream
            if self._implicit_stream_id is None:
                self._implicit_stream_id = StreamAccumulator.generate_stream_id()
            stream_id = self._implicit_stream_id
            if message.done:
                self._implicit_stream_id = None

        stream_type = message.stream_type if isinstance(message, StreamMessage) else "text"
        return StreamChunk(
            stream_id=stream_id,
            content=message.chunk,
            done=message.done,
            stream_type=stream_type,
        )

    def _deliver_close(self, code: Optional[int], reason: Optional[str]) -> None:
        if self._close_delivered:
            return
        self._close_delivered = True
        self.closes.emit(code, reason or None)
