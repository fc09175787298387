"""ACP protocol message models."""

import logging
from typing import Any, Dict, Literal, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

logger = logging.getLogger(__name__)


class ACPMessage(BaseModel):
    """Base message type. Extra keys are kept so forward-compatible fields survive."""

    model_config = ConfigDict(extra="allow")

    type: str


# Complete messages

class TextMessage(ACPMessage):
    """A complete (non-streamed) model reply."""

    type: Literal["text"] = "text"
    content: str = Field(..., description="Reply text")


class ClientMessage(ACPMessage):
    """A prompt sent by the user."""

    type: Literal["client_message"] = "client_message"
    role: Literal["user", "assistant"] = Field(..., description="Author role")
    content: str = Field(..., description="Message text")
    model: Optional[str] = Field(None, description="Model requested for the reply")


class ToolCallMessage(ACPMessage):
    """Server-initiated request to run a local tool."""

    type: Literal["tool_call"] = "tool_call"
    id: str = Field(..., description="Correlation id echoed in the tool_result")
    # Name and args are checked by the dispatcher so a malformed call still gets a result
    tool: Any = Field(None, description="Tool name (write_file, read_file, run_shell)")
    args: Any = Field(default_factory=dict, description="Tool arguments")

    @field_validator("id", mode="before")
    @classmethod
    def _numeric_id_to_str(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return str(value)
        return value


class ToolResult(BaseModel):
    """Outcome of one tool call."""

    success: bool
    stdout: Optional[str] = None
    stderr: Optional[str] = None
    error: Optional[str] = None
    code: Optional[int] = None

    @model_validator(mode="after")
    def _check_outcome(self) -> "ToolResult":
        if self.success and self.error:
            raise ValueError("a successful result cannot carry an error")
        if not self.success and not self.error and self.code == 0:
            raise ValueError("a failed result needs an error or a non-zero code")
        if not self.success and not self.error and "code" not in self.model_fields_set:
            raise ValueError("a failed result needs an error or an exit code")
        return self


class ToolResultMessage(ACPMessage):
    """Result of a tool call, correlated by tool_call_id."""

    type: Literal["tool_result"] = "tool_result"
    tool_call_id: str = Field(..., description="Id of the originating tool_call")
    success: bool
    stdout: Optional[str] = None
    stderr: Optional[str] = None
    error: Optional[str] = None
    code: Optional[int] = None

    @classmethod
    def from_result(cls, tool_call_id: str, result: ToolResult) -> "ToolResultMessage":
        """Build the wire message, carrying over only the fields the result set."""
        return cls(
            tool_call_id=tool_call_id,
            **result.model_dump(exclude_unset=True),
        )

    def to_result(self) -> ToolResult:
        return ToolResult(
            **self.model_dump(
                include={"success", "stdout", "stderr", "error", "code"},
                exclude_unset=True,
            )
        )


# Streaming messages

class StreamingMessage(ACPMessage):
    """Common shape of incremental reply fragments."""

    content: str = ""
    delta: Optional[str] = None
    done: bool = False
    stream_id: Optional[str] = None

    @property
    def chunk(self) -> str:
        """Text carried by this fragment: the delta when present, else content."""
        return self.delta if self.delta is not None else self.content


class TextChunkMessage(StreamingMessage):
    type: Literal["text_chunk"] = "text_chunk"


class TextDeltaMessage(StreamingMessage):
    type: Literal["text_delta"] = "text_delta"


class StreamMessage(StreamingMessage):
    """Generic stream fragment carrying either reply text or a tool call."""

    type: Literal["stream"] = "stream"
    stream_type: Literal["text", "tool_call"] = "text"


class UnknownMessage(ACPMessage):
    """Any frame whose type is not recognised; the full field map is preserved."""

    pass


ProtocolMessage = Union[
    TextMessage,
    ClientMessage,
    ToolCallMessage,
    ToolResultMessage,
    TextChunkMessage,
    TextDeltaMessage,
    StreamMessage,
    UnknownMessage,
]

MESSAGE_TYPES: Dict[str, Type[ACPMessage]] = {
    "text": TextMessage,
    "client_message": ClientMessage,
    "tool_call": ToolCallMessage,
    "tool_result": ToolResultMessage,
    "text_chunk": TextChunkMessage,
    "text_delta": TextDeltaMessage,
    "stream": StreamMessage,
}

STREAMING_TYPES = frozenset({"text_chunk", "text_delta", "stream"})


def parse_message(data: Dict[str, Any]) -> ProtocolMessage:
    """
    Classify a decoded JSON object by its ``type`` field.

    Args:
        data: Decoded frame; must contain a string ``type``

    Returns:
        The matching variant, or UnknownMessage when the type is unknown or
        the payload does not fit the known variant
    """
    model = MESSAGE_TYPES.get(data["type"])
    if model is None:
        return UnknownMessage.model_validate(data)

    try:
        return model.model_validate(data)  # type: ignore[return-value]
    except ValidationError as e:
        logger.debug(f"Message of type {data['type']!r} did not validate, passing through: {e}")
        return UnknownMessage.model_validate(data)
