"""Tolerant decoding of ACP wire frames."""

import json
import logging
from typing import Any, Dict, List, Optional, Union

from .models.messages import (
    STREAMING_TYPES,
    ACPMessage,
    ProtocolMessage,
    parse_message,
)
from .types import OutboundMessage

SSE_PREFIX = "data: "


class WireCodec:
    """
    Turns raw socket frames into typed protocol messages.

    Accepted framings, tried in order:
    - a single JSON object with a string ``type``
    - a Server-Sent-Events line (``data: {...}``)
    - newline-delimited JSON, one object per non-blank line

    Decoding never raises; frames that fit none of these are logged and
    dropped.
    """

    def __init__(self, logger: Optional[logging.Logger] = None):
        self.logger = logger or logging.getLogger(__name__)

    def decode(self, raw: Union[str, bytes]) -> List[ProtocolMessage]:
        """
        Decode one frame into zero or more messages.

        Args:
            raw: Frame as received; bytes are decoded as UTF-8

        Returns:
            Messages in frame order; empty if nothing could be parsed
        """
        if isinstance(raw, bytes):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError:
                self.logger.debug(f"Dropping non-UTF-8 frame ({len(raw)} bytes)")
                return []

        message = self._decode_object(raw)
        if message is not None:
            return [message]

        if raw.startswith(SSE_PREFIX):
            message = self._decode_object(raw[len(SSE_PREFIX):])
            if message is not None:
                return [message]

        if "\n" in raw:
            messages: List[ProtocolMessage] = []
            for line in raw.split("\n"):
                line = line.strip()
                if not line:
                    continue
                decoded = self._decode_object(line)
                if decoded is None and line.startswith(SSE_PREFIX):
                    decoded = self._decode_object(line[len(SSE_PREFIX):])
                if decoded is not None:
                    messages.append(decoded)
            if messages:
                return messages

        self.logger.debug(f"Dropping unparseable frame: {raw[:200]!r}")
        return []

    def encode(self, message: OutboundMessage) -> str:
        """Serialise a message model or plain dict to a compact JSON frame."""
        if isinstance(message, ACPMessage):
            data = message.model_dump(mode="json", exclude_unset=True)
            data = {"type": message.type, **data}
        else:
            data = dict(message)
        return json.dumps(data, separators=(",", ":"), ensure_ascii=False)

    @staticmethod
    def is_streaming(message: Union[ACPMessage, Dict[str, Any]]) -> bool:
        """True for text_chunk, text_delta and stream fragments."""
        msg_type = message.type if isinstance(message, ACPMessage) else message.get("type")
        return msg_type in STREAMING_TYPES

    def _decode_object(self, text: str) -> Optional[ProtocolMessage]:
        try:
            data = json.loads(text)
        except ValueError:
            return None
        if not isinstance(data, dict) or not isinstance(data.get("type"), str):
            return None
        return parse_message(data)
