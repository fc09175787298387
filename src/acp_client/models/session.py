"""Session transcript models."""

import time
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field


def now_ms() -> int:
    """Current wall-clock time in milliseconds since the epoch."""
    return int(time.time() * 1000)


class SessionEntry(BaseModel):
    """One transcript line: an inbound or an outbound message with its timestamp."""

    incoming: Optional[Dict[str, Any]] = Field(None, description="Message received from the server")
    outgoing: Optional[Dict[str, Any]] = Field(None, description="Message sent to the server")
    ts: int = Field(default_factory=now_ms, description="Milliseconds since the epoch")

    @property
    def direction(self) -> str:
        return "incoming" if self.incoming is not None else "outgoing"

    @property
    def message(self) -> Dict[str, Any]:
        return self.incoming if self.incoming is not None else (self.outgoing or {})


class SessionMetadata(BaseModel):
    """Metadata stored alongside a saved transcript."""

    model: Optional[str] = None
    workspace: Optional[str] = None
    created_at: Optional[int] = None
    last_updated: Optional[int] = None


class SessionSummary(BaseModel):
    """Row returned when listing saved sessions."""

    name: str
    metadata: SessionMetadata
    message_count: int = 0
