"""
Real-time activity monitor.

Keeps the most recent events in a bounded ring buffer, fans each event out
on the message bus, and raises security alerts for activity bursts and
repeated failures. The monitor never raises to its caller.
"""

import logging
import threading
from collections import deque
from datetime import datetime, timedelta

from audit_pipeline.config import AuditSettings
from audit_pipeline.core.clock import Clock, SystemClock
from audit_pipeline.events.models import ActivityEvent, SecurityAlert
from audit_pipeline.monitoring.bus import Channel, Handler, MessageBus

logger = logging.getLogger(__name__)

HIGH_VOLUME_REASON = "High activity volume"


def repeated_failures_reason(action: str) -> str:
    return f"Repeated failures for {action}"


class ActivityMonitor:
    """
    Process-local monitor of live activity.

    Failure counters decay rather than slide: the first failure for an
    action opens a window, and once that window is older than the configured
    duration the whole counter is cleared by ``sweep()``. Every failure at
    or above the threshold within one window raises an alert.
    """

    def __init__(
        self,
        settings: AuditSettings | None = None,
        clock: Clock | None = None,
        bus: MessageBus | None = None,
    ):
        """
        Initialize the monitor.

        Args:
            settings: Buffer size, thresholds and windows
            clock: Time source for stamping and windows
            bus: Message bus for event/alert fan-out
        """
        self._settings = settings or AuditSettings()
        self._clock = clock or SystemClock()
        self._bus = bus or MessageBus()
        self._buffer: deque[ActivityEvent] = deque(maxlen=self._settings.buffer_size)
        # action -> (count, window start)
        self._failures: dict[str, tuple[int, datetime]] = {}
        self._lock = threading.Lock()

    @property
    def bus(self) -> MessageBus:
        return self._bus

    @property
    def capacity(self) -> int:
        return self._settings.buffer_size

    @property
    def buffer_size(self) -> int:
        with self._lock:
            return len(self._buffer)

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def on_event(self, handler: Handler) -> None:
        self._bus.subscribe(Channel.EVENT, handler)

    def off_event(self, handler: Handler) -> bool:
        return self._bus.unsubscribe(Channel.EVENT, handler)

    def on_alert(self, handler: Handler) -> None:
        self._bus.subscribe(Channel.ALERT, handler)

    def off_alert(self, handler: Handler) -> bool:
        return self._bus.unsubscribe(Channel.ALERT, handler)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record(self, event: ActivityEvent) -> None:
        """
        Record an event in real time.

        Stamps the event if needed, appends it to the ring buffer (evicting
        the oldest entry at capacity), publishes it to event subscribers and
        updates the failure counter for its action.
        """
        try:
            stamped = event.with_timestamp(self._clock.now())

            with self._lock:
                self._buffer.append(stamped)

            self._bus.publish(Channel.EVENT, stamped)

            if stamped.status.is_failure:
                self._track_failure(stamped.action)
        except Exception:
            logger.exception("Failed to record activity in monitor", extra={"action": event.action})

    def _track_failure(self, action: str) -> None:
        self.sweep()

        alert_events: list[ActivityEvent] | None = None
        with self._lock:
            count, started_at = self._failures.get(action, (0, self._clock.now()))
            count += 1
            self._failures[action] = (count, started_at)

            if count >= self._settings.failure_alert_threshold:
                alert_events = [e for e in self._buffer if e.action == action]

        if alert_events is not None:
            self.trigger_alert(repeated_failures_reason(action), alert_events)

    def sweep(self) -> int:
        """Clear failure counters whose window has elapsed. Returns how many were cleared."""
        window = timedelta(seconds=self._settings.failure_window_seconds)
        now = self._clock.now()
        with self._lock:
            expired = [action for action, (_, started) in self._failures.items() if now - started >= window]
            for action in expired:
                del self._failures[action]
        return len(expired)

    def failure_count(self, action: str) -> int:
        with self._lock:
            entry = self._failures.get(action)
            return entry[0] if entry else 0

    # ------------------------------------------------------------------
    # Detection
    # ------------------------------------------------------------------

    def detect_suspicious_activity(
        self,
        window_seconds: int | None = None,
        threshold: int | None = None,
    ) -> bool:
        """
        Check the buffer for a burst of activity.

        Args:
            window_seconds: Look-back window (default from settings)
            threshold: Inclusive event count that counts as suspicious

        Returns:
            True if the burst threshold was reached and an alert was raised
        """
        try:
            window = window_seconds if window_seconds is not None else self._settings.suspicious_window_seconds
            limit = threshold if threshold is not None else self._settings.suspicious_threshold
            cutoff = self._clock.now() - timedelta(seconds=window)

            with self._lock:
                recent = [e for e in self._buffer if e.created_at is not None and e.created_at >= cutoff]

            if len(recent) >= limit:
                self.trigger_alert(HIGH_VOLUME_REASON, recent)
                return True
            return False
        except Exception:
            logger.exception("Suspicious activity detection failed")
            return False

    def trigger_alert(self, reason: str, events: list[ActivityEvent]) -> None:
        """Publish a security alert and log it."""
        try:
            alert = SecurityAlert(reason=reason, events=list(events), triggered_at=self._clock.now())
            logger.warning(
                f"Security alert: {reason}",
                extra={"reason": reason, "count": alert.count},
            )
            self._bus.publish(Channel.ALERT, alert)
        except Exception:
            logger.exception("Failed to trigger security alert", extra={"reason": reason})

    # ------------------------------------------------------------------
    # Inspection
    # ------------------------------------------------------------------

    def recent(self, limit: int | None = None) -> list[ActivityEvent]:
        """Snapshot of buffered events, oldest first; ``limit`` keeps the newest N."""
        with self._lock:
            snapshot = list(self._buffer)
        if limit is not None:
            return snapshot[-limit:] if limit > 0 else []
        return snapshot

    def reset(self) -> None:
        """Drop buffered events and failure counters. Subscriptions are kept."""
        with self._lock:
            self._buffer.clear()
            self._failures.clear()
