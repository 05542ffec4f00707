"""
In-process message bus for monitor events and alerts.

Handlers run synchronously on the publishing thread in registration order.
A handler that raises is logged and skipped; it never affects the publisher
or the remaining handlers.
"""

import logging
import threading
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

Handler = Callable[[Any], None]


class Channel(str, Enum):
    """Bus channels."""

    EVENT = "event"
    ALERT = "alert"


class MessageBus:
    """Two-channel publish/subscribe bus."""

    def __init__(self):
        self._handlers: dict[Channel, list[Handler]] = {channel: [] for channel in Channel}
        self._lock = threading.Lock()

    def subscribe(self, channel: Channel, handler: Handler) -> None:
        with self._lock:
            self._handlers[Channel(channel)].append(handler)

    def unsubscribe(self, channel: Channel, handler: Handler) -> bool:
        """Remove a handler. Returns False if it was not subscribed."""
        with self._lock:
            handlers = self._handlers[Channel(channel)]
            if handler in handlers:
                handlers.remove(handler)
                return True
            return False

    def publish(self, channel: Channel, message: Any) -> int:
        """
        Deliver message to every handler on channel.

        Returns:
            Number of handlers that completed without raising
        """
        with self._lock:
            handlers = list(self._handlers[Channel(channel)])

        delivered = 0
        for handler in handlers:
            try:
                handler(message)
                delivered += 1
            except Exception:
                logger.exception(
                    "Subscriber failed on %s channel",
                    Channel(channel).value,
                    extra={"channel": Channel(channel).value},
                )
        return delivered

    def subscriber_count(self, channel: Channel) -> int:
        with self._lock:
            return len(self._handlers[Channel(channel)])

    def clear(self) -> None:
        with self._lock:
            for handlers in self._handlers.values():
                handlers.clear()
