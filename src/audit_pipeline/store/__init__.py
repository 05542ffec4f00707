"""
Event store capability and the bundled SQLite implementation.

Usage:
    >>> from audit_pipeline.store import SQLiteEventStore
    >>>
    >>> store = SQLiteEventStore(":memory:")
    >>> event_id = store.insert(ActivityEvent(action="login_success"))
"""

from .base import EventStore
from .sqlite import SORTABLE_COLUMNS, SQLiteEventStore, format_timestamp, parse_timestamp

__all__ = [
    "EventStore",
    "SORTABLE_COLUMNS",
    "SQLiteEventStore",
    "format_timestamp",
    "parse_timestamp",
]
