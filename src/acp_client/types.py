"""Common type definitions for the ACP client.

This module provides the small value types and callback signatures shared
between the connection, the dispatcher and the session router.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Literal, Optional, Protocol, Union

from .models.messages import ACPMessage, ProtocolMessage

StreamType = Literal["text", "tool_call"]


@dataclass(frozen=True)
class StreamChunk:
    """One fragment of a streamed reply, already attributed to a stream."""

    stream_id: str
    content: str
    done: bool
    stream_type: StreamType = "text"


# Anything the connection can serialise onto the wire
OutboundMessage = Union[ACPMessage, Dict[str, Any]]

# Listener signatures for connection events
MessageListener = Callable[[ProtocolMessage], None]
StreamChunkListener = Callable[[StreamChunk], None]
ErrorListener = Callable[[BaseException], None]
CloseListener = Callable[[Optional[int], Optional[str]], None]
RawListener = Callable[[str], None]

# (prompt text, default answer) -> approved?
ApprovalCallback = Callable[[str, bool], Awaitable[bool]]

# (resolved path, existing content or None, new content)
PreviewCallback = Callable[[str, Optional[str], str], None]


class MessageSender(Protocol):
    """Anything that can put a message on the wire."""

    async def send(self, message: OutboundMessage) -> bool: ...


class TranscriptSink(Protocol):
    """Append-only log of every inbound and outbound message."""

    def record_incoming(self, message: OutboundMessage) -> None: ...

    def record_outgoing(self, message: OutboundMessage) -> None: ...
