"""
Server-Sent Events broadcast gateway.

Keeps a registry of connected push subscribers and writes each broadcast
to all of them. A subscriber whose write fails is dropped without
affecting the others.
"""

import json
import logging
import threading
import uuid
from typing import Any, Callable, Protocol

from pydantic import BaseModel

from audit_pipeline.events.models import ActivityEvent, SecurityAlert

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}

CONNECTED_COMMENT = ": connected\n\n"

ACTIVITY_EVENT = "activity"
ALERT_EVENT = "alert"


class ResponseSink(Protocol):
    """Writable long-lived response of one push subscriber."""

    def set_headers(self, headers: dict[str, str]) -> None: ...

    def write(self, data: str) -> None: ...

    def end(self) -> None: ...

    def on_close(self, callback: Callable[[], None]) -> None: ...


def format_sse(event_name: str, payload: Any) -> str:
    """Frame a payload as one SSE message."""
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json")
    return f"event: {event_name}\ndata: {json.dumps(payload, default=str)}\n\n"


class BroadcastGateway:
    """Registry of SSE clients with fan-out broadcast."""

    def __init__(self):
        self._clients: dict[str, ResponseSink] = {}
        self._lock = threading.Lock()
        self._attached: list[tuple[Any, Callable, Callable]] = []

    def add_client(self, sink: ResponseSink) -> str:
        """
        Register a subscriber.

        Sets the SSE headers, writes the initial comment and arranges for the
        client to be removed when its connection closes.

        Returns:
            Generated client id
        """
        client_id = uuid.uuid4().hex
        sink.set_headers(dict(SSE_HEADERS))
        sink.write(CONNECTED_COMMENT)

        with self._lock:
            self._clients[client_id] = sink
        sink.on_close(lambda: self.remove_client(client_id))

        logger.info("SSE client connected", extra={"client_id": client_id})
        return client_id

    def remove_client(self, client_id: str) -> None:
        """Unregister and end a subscriber. Unknown ids are ignored."""
        with self._lock:
            sink = self._clients.pop(client_id, None)
        if sink is None:
            return

        try:
            sink.end()
        except Exception as e:
            logger.debug(f"Error ending SSE client {client_id}: {e}")
        logger.info("SSE client disconnected", extra={"client_id": client_id})

    def broadcast(self, event_name: str, payload: Any) -> int:
        """
        Send one event to every connected client.

        Returns:
            Number of clients the message was written to
        """
        message = format_sse(event_name, payload)

        with self._lock:
            clients = list(self._clients.items())

        delivered = 0
        for client_id, sink in clients:
            try:
                sink.write(message)
                delivered += 1
            except Exception as e:
                logger.warning(
                    f"Dropping SSE client after write failure: {e}",
                    extra={"client_id": client_id, "event": event_name},
                )
                self.remove_client(client_id)
        return delivered

    def get_client_count(self) -> int:
        with self._lock:
            return len(self._clients)

    def attach(self, monitor) -> None:
        """Forward a monitor's events and alerts to all clients."""

        def on_event(event: ActivityEvent) -> None:
            self.broadcast(ACTIVITY_EVENT, event)

        def on_alert(alert: SecurityAlert) -> None:
            self.broadcast(ALERT_EVENT, alert)

        monitor.on_event(on_event)
        monitor.on_alert(on_alert)
        self._attached.append((monitor, on_event, on_alert))

    def detach(self) -> None:
        """Undo every ``attach`` call."""
        for monitor, on_event, on_alert in self._attached:
            monitor.off_event(on_event)
            monitor.off_alert(on_alert)
        self._attached.clear()

    def close_all(self) -> None:
        """End every client connection."""
        with self._lock:
            client_ids = list(self._clients)
        for client_id in client_ids:
            self.remove_client(client_id)
