"""Reassembly of streamed reply fragments."""

import asyncio
import logging
import random
import string
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional


@dataclass
class StreamState:
    """Accumulated content for one stream."""

    content: str = ""
    is_complete: bool = False
    last_update: float = 0.0


class StreamAccumulator:
    """
    Accumulates streaming chunks per stream identifier.

    Each stream has:
    - Append-only content, the exact concatenation of its chunks
    - A completion flag that never reverts once set
    - A last-update timestamp for stale-stream detection

    Completed streams are kept for a short grace window so a consumer that
    reacts to completion asynchronously can still read them, then purged.
    Incomplete streams are only removed by an explicit ``cleanup()`` sweep.
    """

    def __init__(
        self,
        grace_seconds: float = 1.0,
        stale_seconds: float = 5.0,
        clock: Callable[[], float] = time.monotonic,
        logger: Optional[logging.Logger] = None,
    ):
        self.grace_seconds = grace_seconds
        self.stale_seconds = stale_seconds
        self._clock = clock
        self._streams: Dict[str, StreamState] = {}
        self._purge_handles: Dict[str, asyncio.TimerHandle] = {}
        self.logger = logger or logging.getLogger(__name__)

    def accumulate(self, stream_id: str, chunk: str, done: bool = False) -> str:
        """
        Append a chunk to a stream.

        Args:
            stream_id: Stream the chunk belongs to; state is created on first use
            chunk: Text to append
            done: Whether this is the final chunk

        Returns:
            Content accumulated so far for the stream
        """
        state = self._streams.get(stream_id)
        if state is None:
            state = StreamState()
            self._streams[stream_id] = state
            self.logger.debug(f"Started stream {stream_id}")

        self._cancel_purge(stream_id)
        state.content += chunk
        state.last_update = self._clock()
        if done:
            state.is_complete = True

        if state.is_complete:
            self._schedule_purge(stream_id)

        return state.content

    def get_content(self, stream_id: str) -> str:
        """Current accumulated content, or an empty string for unknown streams."""
        state = self._streams.get(stream_id)
        return state.content if state else ""

    def is_complete(self, stream_id: str) -> bool:
        """Whether the final chunk has been seen; False for unknown streams."""
        state = self._streams.get(stream_id)
        return state.is_complete if state else False

    def has_stream(self, stream_id: str) -> bool:
        return stream_id in self._streams

    def reset(self, stream_id: str) -> None:
        """Discard one stream immediately."""
        self._cancel_purge(stream_id)
        self._streams.pop(stream_id, None)

    def clear(self) -> None:
        """Discard all streams immediately."""
        for handle in self._purge_handles.values():
            handle.cancel()
        self._purge_handles.clear()
        self._streams.clear()

    def cleanup(self) -> int:
        """
        Remove incomplete streams that have not been updated recently.

        Returns:
            Number of streams removed
        """
        now = self._clock()
        stale = [
            stream_id
            for stream_id, state in self._streams.items()
            if not state.is_complete and now - state.last_update > self.stale_seconds
        ]
        for stream_id in stale:
            self._streams.pop(stream_id, None)

        if stale:
            self.logger.info(f"Removed {len(stale)} stale stream(s)")
        return len(stale)

    @property
    def active_count(self) -> int:
        return len(self._streams)

    @staticmethod
    def generate_stream_id() -> str:
        """Generate a unique id for a stream that arrived without one."""
        suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=7))
        return f"stream-{int(time.time() * 1000)}-{suffix}"

    def _schedule_purge(self, stream_id: str) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # No loop: nothing to schedule on, state stays until reset/clear
            return
        self._purge_handles[stream_id] = loop.call_later(
            self.grace_seconds, self._purge, stream_id
        )

    def _cancel_purge(self, stream_id: str) -> None:
        handle = self._purge_handles.pop(stream_id, None)
        if handle:
            handle.cancel()

    def _purge(self, stream_id: str) -> None:
        self._purge_handles.pop(stream_id, None)
        state = self._streams.get(stream_id)
        if state is not None and state.is_complete:
            del self._streams[stream_id]
            self.logger.debug(f"Purged completed stream {stream_id}")
