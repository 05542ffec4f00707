"""
Event ingestion.

The recorder is the entry point producers use to log activity: it validates
and categorizes the event, redacts its metadata, persists it and then hands
the stored event to the real-time monitor.
"""

import logging
from typing import Any, Iterable

from pydantic import ValidationError

from audit_pipeline.core.clock import Clock, SystemClock
from audit_pipeline.core.exceptions import EventValidationError
from audit_pipeline.events.categorization import detect_category, severity_for_action, status_for_action
from audit_pipeline.events.metadata import redact_metadata, validate_metadata
from audit_pipeline.events.models import ActivityCategory, ActivityEvent, ActivitySeverity, ActivityStatus
from audit_pipeline.monitoring.monitor import ActivityMonitor
from audit_pipeline.store.base import EventStore

logger = logging.getLogger(__name__)


class ActivityRecorder:
    """Validates, stores and publishes audit events."""

    def __init__(
        self,
        store: EventStore,
        monitor: ActivityMonitor | None = None,
        clock: Clock | None = None,
    ):
        self._store = store
        self._clock = clock or SystemClock()
        self._monitor = monitor

    def log(
        self,
        action: str,
        *,
        user_id: int | None = None,
        category: ActivityCategory | str | None = None,
        severity: ActivitySeverity | str | None = None,
        status: ActivityStatus | str | None = None,
        resource_type: str | None = None,
        resource_id: int | None = None,
        description: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        session_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ActivityEvent:
        """
        Build and record an event.

        Category, severity and status default to the values derived from
        the action name when omitted.

        Raises:
            EventValidationError: If the event fails validation
            EventStoreError: If the store rejects the insert
        """
        event = self.build_event(
            action,
            user_id=user_id,
            category=category,
            severity=severity,
            status=status,
            resource_type=resource_type,
            resource_id=resource_id,
            description=description,
            ip_address=ip_address,
            user_agent=user_agent,
            session_id=session_id,
            metadata=metadata,
        )
        return self.record(event)

    def log_security_event(
        self,
        action: str,
        description: str,
        *,
        severity: ActivitySeverity | str = ActivitySeverity.HIGH,
        **fields: Any,
    ) -> ActivityEvent:
        """Record a security event. Extra fields override the security defaults."""
        fields.setdefault("resource_type", "security")
        fields.setdefault("category", ActivityCategory.SECURITY)
        return self.log(action, description=description, severity=severity, **fields)

    def log_authentication_event(
        self,
        user_id: int | None,
        action: str,
        description: str,
        *,
        session_id: str | None = None,
        **fields: Any,
    ) -> ActivityEvent:
        """Record a sign-in, sign-out or similar event for a user session."""
        fields.setdefault("resource_type", "authentication")
        fields.setdefault("category", ActivityCategory.AUTHENTICATION)
        return self.log(action, user_id=user_id, description=description, session_id=session_id, **fields)

    def log_bulk(self, entries: Iterable[dict[str, Any]]) -> list[ActivityEvent]:
        """
        Record several events in one store transaction.

        Each entry holds the keyword arguments of :meth:`log`. Every entry is
        validated before anything is written, so a bad entry stores nothing.

        Returns:
            The stored events in input order

        Raises:
            EventValidationError: If any entry fails validation
            EventStoreError: If the store rejects the batch
        """
        prepared = []
        for index, entry in enumerate(entries):
            entry = dict(entry)
            action = entry.pop("action", None)
            if not action:
                raise EventValidationError(f"Bulk entry {index} has no action", field="action")
            try:
                event = self.build_event(action, **entry)
            except TypeError as e:
                raise EventValidationError(f"Bulk entry {index} is invalid: {e}") from e
            prepared.append(self._prepare(event))

        if not prepared:
            return []

        ids = self._store.insert_many(prepared)
        stored = [event.model_copy(update={"id": event_id}) for event, event_id in zip(prepared, ids)]

        logger.info("Recorded activity batch", extra={"count": len(stored)})

        if self._monitor is not None:
            for event in stored:
                self._monitor.record(event)
        return stored

    def build_event(
        self,
        action: str,
        *,
        user_id: int | None = None,
        category: ActivityCategory | str | None = None,
        severity: ActivitySeverity | str | None = None,
        status: ActivityStatus | str | None = None,
        resource_type: str | None = None,
        resource_id: int | None = None,
        description: str | None = None,
        ip_address: str | None = None,
        user_agent: str | None = None,
        session_id: str | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> ActivityEvent:
        """Validate and categorize an event without storing it."""
        metadata = metadata or {}
        validate_metadata(metadata)

        try:
            return ActivityEvent(
                user_id=user_id,
                action=action,
                category=category or detect_category(action),
                severity=severity or severity_for_action(action),
                status=status or status_for_action(action),
                resource_type=resource_type,
                resource_id=resource_id,
                description=description,
                ip_address=ip_address,
                user_agent=user_agent,
                session_id=session_id,
                metadata=metadata,
            )
        except ValidationError as e:
            first = e.errors()[0]
            field = str(first["loc"][0]) if first.get("loc") else None
            raise EventValidationError(f"Invalid activity event: {first['msg']}", field=field) from e

    def record(self, event: ActivityEvent) -> ActivityEvent:
        """
        Persist a prepared event and publish it.

        Returns:
            The stored event with its id and timestamp assigned
        """
        stamped = self._prepare(event)

        event_id = self._store.insert(stamped)
        stored = stamped.model_copy(update={"id": event_id})

        logger.debug(
            f"Recorded activity {stored.action}",
            extra={"id": event_id, "action": stored.action, "user_id": stored.user_id},
        )

        if self._monitor is not None:
            self._monitor.record(stored)
        return stored

    def _prepare(self, event: ActivityEvent) -> ActivityEvent:
        validate_metadata(event.metadata)
        stamped = event.with_timestamp(self._clock.now())
        return stamped.model_copy(update={"metadata": redact_metadata(stamped.metadata), "id": None})
