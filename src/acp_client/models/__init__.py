"""Data models for the ACP client."""

from .messages import (
    ACPMessage,
    ClientMessage,
    ProtocolMessage,
    StreamMessage,
    StreamingMessage,
    TextChunkMessage,
    TextDeltaMessage,
    TextMessage,
    ToolCallMessage,
    ToolResult,
    ToolResultMessage,
    UnknownMessage,
    parse_message,
)
from .session import SessionEntry, SessionMetadata, SessionSummary
from .tool_args import ReadFileArgs, RunShellArgs, WriteFileArgs

__all__ = [
    "ACPMessage",
    "ClientMessage",
    "ProtocolMessage",
    "StreamMessage",
    "StreamingMessage",
    "TextChunkMessage",
    "TextDeltaMessage",
    "TextMessage",
    "ToolCallMessage",
    "ToolResult",
    "ToolResultMessage",
    "UnknownMessage",
    "parse_message",
    "SessionEntry",
    "SessionMetadata",
    "SessionSummary",
    "ReadFileArgs",
    "RunShellArgs",
    "WriteFileArgs",
]
