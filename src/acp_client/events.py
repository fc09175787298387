"""Publish/subscribe channels for connection events."""

import logging
from typing import Callable, Generic, List, Optional, TypeVar

ListenerT = TypeVar("ListenerT", bound=Callable[..., None])


class EventChannel(Generic[ListenerT]):
    """
    Ordered fan-out of one kind of event to its listeners.

    Listeners are called synchronously in registration order. A listener
    that raises is logged and skipped; the remaining listeners still run.
    """

    def __init__(self, name: str, logger: Optional[logging.Logger] = None):
        self.name = name
        self._listeners: List[ListenerT] = []
        self.logger = logger or logging.getLogger(__name__)

    def subscribe(self, listener: ListenerT) -> Callable[[], None]:
        """
        Register a listener.

        Returns:
            Callable that removes this registration
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return unsubscribe

    def emit(self, *args: object) -> int:
        """
        Deliver an event to every listener.

        Returns:
            Number of listeners that completed without raising
        """
        delivered = 0
        # Copy so listeners may unsubscribe while being notified
        for listener in list(self._listeners):
            try:
                listener(*args)
                delivered += 1
            except Exception as e:
                self.logger.error(
                    f"Listener {listener!r} on '{self.name}' failed: {e}", exc_info=True
                )
        return delivered

    def clear(self) -> None:
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)
