"""
Event store capability.

The pipeline depends on this protocol rather than on a concrete database so
that retention, analytics and export can run against any append-only store
with cursor-ordered retrieval.
"""

from datetime import datetime
from typing import Iterable, Iterator, Protocol

from audit_pipeline.events.models import ActivityEvent, EventFilter, StatisticsPeriod


class EventStore(Protocol):
    """Append-only store of ActivityEvent rows ordered by id."""

    def insert(self, event: ActivityEvent) -> int:
        """Persist an event and return its assigned id."""
        ...

    def insert_many(self, events: Iterable[ActivityEvent]) -> list[int]:
        """Persist several events atomically, returning their ids in order."""
        ...

    def get(self, event_id: int) -> ActivityEvent | None: ...

    def count(self, filters: EventFilter | None = None) -> int: ...

    def fetch_batch(
        self,
        filters: EventFilter | None = None,
        *,
        after_id: int = 0,
        limit: int = 1000,
    ) -> list[ActivityEvent]:
        """Return up to ``limit`` events with id > after_id, ascending by id."""
        ...

    def iter_range(self, filters: EventFilter | None = None) -> Iterator[ActivityEvent]:
        """Iterate every matching event in ascending id order."""
        ...

    def query(
        self,
        filters: EventFilter | None = None,
        *,
        sort_by: str = "created_at",
        descending: bool = True,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ActivityEvent]:
        """Return one page of matching events ordered by ``sort_by``."""
        ...

    def delete(self, filters: EventFilter) -> int: ...

    def mark_compressed(self, before: datetime) -> int: ...

    def count_by(self, column: str, filters: EventFilter | None = None) -> dict[str, int]: ...

    def count_by_period(
        self,
        period: StatisticsPeriod,
        filters: EventFilter | None = None,
    ) -> list[tuple[str, int]]: ...
