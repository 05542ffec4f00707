"""Tests for the SQLite event store."""

from datetime import datetime, timedelta, timezone

import pytest

from audit_pipeline.core.exceptions import EventStoreError
from audit_pipeline.events.metadata import REDACTED
from audit_pipeline.events.models import (
    ActivityCategory,
    ActivityEvent,
    ActivitySeverity,
    ActivityStatus,
    EventFilter,
    StatisticsPeriod,
)
from audit_pipeline.store.sqlite import SQLiteEventStore, format_timestamp, parse_timestamp

START = datetime(2025, 1, 1, tzinfo=timezone.utc)


class TestTimestamps:
    """Tests for timestamp encoding."""

    def test_round_trip_preserves_microseconds(self) -> None:
        """Encoded timestamps decode to the same instant."""
        value = datetime(2025, 3, 4, 5, 6, 7, 890123, tzinfo=timezone.utc)
        assert parse_timestamp(format_timestamp(value)) == value

    def test_lexical_order_matches_time_order(self) -> None:
        """Encoded strings sort chronologically."""
        earlier = format_timestamp(datetime(2025, 1, 9, tzinfo=timezone.utc))
        later = format_timestamp(datetime(2025, 1, 10, tzinfo=timezone.utc))
        assert earlier < later

    def test_parse_none(self) -> None:
        assert parse_timestamp(None) is None


class TestInsert:
    """Tests for event insertion."""

    def test_insert_assigns_increasing_ids(self, store: SQLiteEventStore) -> None:
        """Each insert returns a larger id."""
        first = store.insert(ActivityEvent(action="login_success"))
        second = store.insert(ActivityEvent(action="logout"))
        assert second > first

    def test_insert_stamps_from_clock(self, store: SQLiteEventStore, clock) -> None:
        """Events without created_at get the clock's time."""
        clock.advance(seconds=42)
        event_id = store.insert(ActivityEvent(action="login_success"))
        assert store.get(event_id).created_at == clock.now()

    def test_insert_keeps_existing_timestamp(self, store: SQLiteEventStore) -> None:
        when = datetime(2024, 6, 1, 12, tzinfo=timezone.utc)
        event_id = store.insert(ActivityEvent(action="login_success", created_at=when))
        assert store.get(event_id).created_at == when

    def test_insert_redacts_metadata(self, store: SQLiteEventStore) -> None:
        """Sensitive metadata keys never reach the database."""
        event_id = store.insert(
            ActivityEvent(action="login_success", metadata={"password": "hunter2", "browser": "firefox"})
        )
        stored = store.get(event_id)
        assert stored.metadata == {"password": REDACTED, "browser": "firefox"}

    def test_insert_round_trips_fields(self, store: SQLiteEventStore) -> None:
        event = ActivityEvent(
            action="record_updated",
            user_id=7,
            category=ActivityCategory.DATA_MODIFICATION,
            severity=ActivitySeverity.HIGH,
            status=ActivityStatus.FAILURE,
            resource_type="job_posting",
            resource_id=99,
            description="Updated posting",
            ip_address="10.0.0.1",
        )
        stored = store.get(store.insert(event))
        assert stored.user_id == 7
        assert stored.category == ActivityCategory.DATA_MODIFICATION
        assert stored.severity == ActivitySeverity.HIGH
        assert stored.status == ActivityStatus.FAILURE
        assert stored.resource_type == "job_posting"
        assert stored.resource_id == 99
        assert stored.compressed is False

    def test_get_missing(self, store: SQLiteEventStore) -> None:
        assert store.get(12345) is None

    def test_in_memory_store(self) -> None:
        """":memory:" databases work for throwaway stores."""
        with SQLiteEventStore(":memory:") as memory_store:
            memory_store.insert(ActivityEvent(action="logout"))
            assert memory_store.count() == 1


class TestQueries:
    """Tests for filtered reads."""

    def test_count_with_filters(self, store: SQLiteEventStore, seed_events) -> None:
        seed_events(3, user_id=1)
        seed_events(2, user_id=2)
        assert store.count() == 5
        assert store.count(EventFilter(user_id=2)) == 2

    def test_date_bounds_are_inclusive(self, store: SQLiteEventStore, seed_events) -> None:
        """date_from and date_to both include the boundary instant."""
        seed_events(5, step=timedelta(minutes=1))
        filters = EventFilter(date_from=START + timedelta(minutes=1), date_to=START + timedelta(minutes=3))
        assert store.count(filters) == 3

    def test_created_before_is_exclusive(self, store: SQLiteEventStore, seed_events) -> None:
        seed_events(5, step=timedelta(minutes=1))
        assert store.count(EventFilter(created_before=START + timedelta(minutes=2))) == 2

    def test_fetch_batch_cursor(self, store: SQLiteEventStore, seed_events) -> None:
        """Batches follow the id cursor and end with an empty page."""
        ids = seed_events(7)
        first = store.fetch_batch(limit=3)
        assert [e.id for e in first] == ids[:3]

        second = store.fetch_batch(after_id=first[-1].id, limit=3)
        assert [e.id for e in second] == ids[3:6]

        third = store.fetch_batch(after_id=second[-1].id, limit=3)
        assert [e.id for e in third] == ids[6:]
        assert store.fetch_batch(after_id=ids[-1], limit=3) == []

    def test_iter_range_spans_pages(self, store: SQLiteEventStore, seed_events, monkeypatch) -> None:
        monkeypatch.setattr(SQLiteEventStore, "ITER_PAGE_SIZE", 4)
        ids = seed_events(10)
        assert [e.id for e in store.iter_range()] == ids

    def test_count_by(self, store: SQLiteEventStore) -> None:
        store.insert(ActivityEvent(action="a", category=ActivityCategory.SECURITY))
        store.insert(ActivityEvent(action="b", category=ActivityCategory.SECURITY))
        store.insert(ActivityEvent(action="c", category=ActivityCategory.SYSTEM))
        assert store.count_by("category") == {"security": 2, "system": 1}

    def test_count_by_rejects_unknown_column(self, store: SQLiteEventStore) -> None:
        with pytest.raises(EventStoreError):
            store.count_by("metadata; DROP TABLE activity_logs")

    def test_count_by_period(self, store: SQLiteEventStore, seed_events) -> None:
        """Day and month buckets are ascending."""
        seed_events(3, start=datetime(2025, 1, 30, tzinfo=timezone.utc), step=timedelta(days=1))

        days = store.count_by_period(StatisticsPeriod.DAY)
        assert days == [("2025-01-30", 1), ("2025-01-31", 1), ("2025-02-01", 1)]

        months = store.count_by_period(StatisticsPeriod.MONTH)
        assert months == [("2025-01", 2), ("2025-02", 1)]

        years = store.count_by_period(StatisticsPeriod.YEAR)
        assert years == [("2025", 3)]

    def test_query_sorts_and_offsets(self, store: SQLiteEventStore, seed_events) -> None:
        ids = seed_events(5)

        assert [e.id for e in store.query(limit=2)] == [ids[4], ids[3]]
        assert [e.id for e in store.query(limit=2, offset=2)] == [ids[2], ids[1]]
        assert [e.id for e in store.query(sort_by="id", descending=False, limit=3)] == ids[:3]

    def test_query_ties_broken_by_id(self, store: SQLiteEventStore) -> None:
        first = store.insert(ActivityEvent(action="b", created_at=START))
        second = store.insert(ActivityEvent(action="a", created_at=START))
        assert [e.id for e in store.query(sort_by="created_at")] == [second, first]
        assert [e.id for e in store.query(sort_by="action", descending=False)] == [second, first]

    def test_query_rejects_unknown_sort(self, store: SQLiteEventStore) -> None:
        with pytest.raises(EventStoreError):
            store.query(sort_by="user_agent; DROP TABLE activity_logs")

    def test_query_filters_by_request_context(self, store: SQLiteEventStore) -> None:
        store.insert(ActivityEvent(action="login_success", session_id="s1", ip_address="10.0.0.1"))
        match = store.insert(ActivityEvent(action="login_success", session_id="s2", ip_address="10.0.0.2"))
        store.insert(ActivityEvent(action="record_updated", resource_type="invoice", resource_id=9))

        assert [e.id for e in store.query(EventFilter(session_id="s2"))] == [match]
        assert [e.id for e in store.query(EventFilter(ip_address="10.0.0.2"))] == [match]
        assert store.count(EventFilter(resource_type="invoice", resource_id=9)) == 1
        assert store.count(EventFilter(search="INVOICE")) == 1


class TestDeleteAndCompress:
    """Tests for retention-side writes."""

    def test_delete_requires_filters(self, store: SQLiteEventStore) -> None:
        with pytest.raises(EventStoreError):
            store.delete(EventFilter())

    def test_delete_returns_count(self, store: SQLiteEventStore, seed_events) -> None:
        seed_events(5, step=timedelta(days=1))
        deleted = store.delete(EventFilter(created_before=START + timedelta(days=2)))
        assert deleted == 2
        assert store.count() == 3

    def test_mark_compressed_is_idempotent(self, store: SQLiteEventStore, seed_events) -> None:
        seed_events(4, step=timedelta(days=1))
        cutoff = START + timedelta(days=3)
        assert store.mark_compressed(cutoff) == 3
        assert store.mark_compressed(cutoff) == 0
        assert store.count(EventFilter(compressed=True)) == 3
