"""In-memory transcript of a chat session."""

from typing import Any, Dict, Iterable, List, Optional

from .models.messages import ACPMessage
from .models.session import SessionEntry
from .types import OutboundMessage


def _as_dict(message: OutboundMessage) -> Dict[str, Any]:
    if isinstance(message, ACPMessage):
        return {"type": message.type, **message.model_dump(mode="json", exclude_unset=True)}
    return dict(message)


class SessionTranscript:
    """Append-only list of every message exchanged, each with a timestamp."""

    def __init__(self, entries: Optional[Iterable[SessionEntry]] = None):
        self._entries: List[SessionEntry] = list(entries or [])

    def record_incoming(self, message: OutboundMessage) -> None:
        self._entries.append(SessionEntry(incoming=_as_dict(message)))

    def record_outgoing(self, message: OutboundMessage) -> None:
        self._entries.append(SessionEntry(outgoing=_as_dict(message)))

    @property
    def entries(self) -> List[SessionEntry]:
        return list(self._entries)

    def __len__(self) -> int:
        return len(self._entries)
