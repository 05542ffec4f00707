"""Pytest configuration and fixtures."""

import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Generator

import pytest

from audit_pipeline.config import AuditSettings, SpoolMode
from audit_pipeline.core.clock import ManualClock
from audit_pipeline.events.models import ActivityEvent, ActivityStatus
from audit_pipeline.store.sqlite import SQLiteEventStore

START = datetime(2025, 1, 1, tzinfo=timezone.utc)


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory that is cleaned up after the test."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def clock() -> ManualClock:
    """Clock fixed at 2025-01-01T00:00:00Z until advanced."""
    return ManualClock(START)


@pytest.fixture
def settings(temp_dir: Path) -> AuditSettings:
    """Settings with every path inside the temp directory."""
    return AuditSettings(
        db_path=temp_dir / "activity_logs.db",
        archive_dir=temp_dir / "archives",
        export_temp_dir=temp_dir / "exports",
        export_spool=SpoolMode.FILE,
    )


@pytest.fixture
def store(settings: AuditSettings, clock: ManualClock) -> Generator[SQLiteEventStore, None, None]:
    """SQLite event store in the temp directory."""
    event_store = SQLiteEventStore(settings.db_path, clock=clock)
    yield event_store
    event_store.close()


@pytest.fixture
def make_event() -> Callable[..., ActivityEvent]:
    """Factory for events with sensible defaults."""

    def _make(action: str = "record_created", **kwargs) -> ActivityEvent:
        return ActivityEvent(action=action, **kwargs)

    return _make


@pytest.fixture
def seed_events(store: SQLiteEventStore) -> Callable[..., list[int]]:
    """Insert ``count`` events spaced ``step`` apart, starting at ``start``."""

    def _seed(
        count: int,
        *,
        start: datetime = START,
        step: timedelta = timedelta(seconds=1),
        action: str = "record_created",
        user_id: int | None = None,
        status: ActivityStatus = ActivityStatus.SUCCESS,
    ) -> list[int]:
        events = (
            ActivityEvent(action=action, user_id=user_id, status=status, created_at=start + step * i)
            for i in range(count)
        )
        return store.insert_many(events)

    return _seed
