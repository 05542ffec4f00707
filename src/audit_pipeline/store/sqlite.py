"""
SQLite-backed event store.

Provides an append-only activity log table with id-cursor retrieval,
filtered counts and grouped aggregates.
"""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Iterator

from pydantic import ValidationError

from audit_pipeline.core.clock import Clock, SystemClock, ensure_utc
from audit_pipeline.core.exceptions import EventStoreError
from audit_pipeline.events.metadata import redact_metadata
from audit_pipeline.events.models import ActivityEvent, EventFilter, StatisticsPeriod

logger = logging.getLogger(__name__)

# Fixed-width UTC format so lexical order equals chronological order
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

_COLUMNS = (
    "user_id",
    "action",
    "category",
    "severity",
    "status",
    "resource_type",
    "resource_id",
    "description",
    "ip_address",
    "user_agent",
    "session_id",
    "metadata",
    "compressed",
    "created_at",
)

_GROUPABLE_COLUMNS = frozenset({"category", "severity", "status", "action", "user_id"})

SORTABLE_COLUMNS = frozenset({"id", "created_at", "action", "resource_type", "severity", "category", "status"})

# Text columns matched by a free-text search
_SEARCH_COLUMNS = ("description", "action", "resource_type", "category", "severity", "status")

_PERIOD_EXPRESSIONS = {
    StatisticsPeriod.DAY: "substr(created_at, 1, 10)",
    StatisticsPeriod.WEEK: "strftime('%Y-W%W', substr(created_at, 1, 19))",
    StatisticsPeriod.MONTH: "substr(created_at, 1, 7)",
    StatisticsPeriod.YEAR: "substr(created_at, 1, 4)",
}


def format_timestamp(value: datetime) -> str:
    return ensure_utc(value).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str | None) -> datetime | None:
    if value is None:
        return None
    return datetime.strptime(value, TIMESTAMP_FORMAT).replace(tzinfo=timezone.utc)


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


class SQLiteEventStore:
    """
    Activity log store with SQLite backend.

    A single connection is shared across threads and serialized with a
    re-entrant lock; ``:memory:`` databases are supported for tests.
    """

    DEFAULT_DB_PATH = Path("var/audit/activity_logs.db")

    # Bump to force schema creation on existing databases
    SCHEMA_VERSION = 1

    # Page size used when iterating whole ranges
    ITER_PAGE_SIZE = 1000

    def __init__(self, db_path: Path | str | None = None, clock: Clock | None = None):
        """
        Initialize the event store.

        Args:
            db_path: SQLite database file, or ":memory:"
            clock: Time source for insert timestamps
        """
        if db_path is None:
            db_path = self.DEFAULT_DB_PATH
        self._db_path = str(db_path)
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        self._clock = clock or SystemClock()
        self._lock = threading.RLock()
        self._conn = self._get_connection()

        self._init_db()

    @property
    def db_path(self) -> str:
        return self._db_path

    def _get_connection(self) -> sqlite3.Connection:
        """Create the database connection with WAL and row access by name."""
        conn = sqlite3.connect(
            self._db_path,
            check_same_thread=False,
            isolation_level=None,  # Explicit BEGIN/COMMIT in _transaction
        )
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA synchronous=NORMAL")
        conn.execute("PRAGMA cache_size=-64000")  # 64MB cache
        return conn

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Cursor]:
        """Context manager for write transactions."""
        with self._lock:
            cursor = self._conn.cursor()
            cursor.execute("BEGIN")
            try:
                yield cursor
                cursor.execute("COMMIT")
            except Exception:
                cursor.execute("ROLLBACK")
                raise

    def _init_db(self) -> None:
        """Initialize database schema."""
        try:
            with self._transaction() as cur:
                cur.execute(
                    """
                    SELECT name FROM sqlite_master
                    WHERE type='table' AND name='activity_meta'
                """
                )
                if cur.fetchone():
                    cur.execute("SELECT value FROM activity_meta WHERE key = 'schema_version'")
                    row = cur.fetchone()
                    if row and int(row["value"]) >= self.SCHEMA_VERSION:
                        return

                self._create_schema(cur)
        except sqlite3.Error as e:
            raise EventStoreError(f"Failed to initialize event store: {e}", operation="init") from e

    def _create_schema(self, cur: sqlite3.Cursor) -> None:
        """Create the activity log schema."""
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS activity_meta (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """
        )

        # created_at stays nullable so integrity checks can detect bad rows
        cur.execute(
            """
            CREATE TABLE IF NOT EXISTS activity_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER,
                action TEXT NOT NULL,
                category TEXT NOT NULL,
                severity TEXT NOT NULL,
                status TEXT NOT NULL,
                resource_type TEXT,
                resource_id INTEGER,
                description TEXT,
                ip_address TEXT,
                user_agent TEXT,
                session_id TEXT,
                metadata TEXT,
                compressed INTEGER NOT NULL DEFAULT 0,
                created_at TEXT
            )
        """
        )

        cur.execute("CREATE INDEX IF NOT EXISTS idx_activity_logs_created_at ON activity_logs(created_at)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_activity_logs_user_id ON activity_logs(user_id)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_activity_logs_category ON activity_logs(category)")
        cur.execute("CREATE INDEX IF NOT EXISTS idx_activity_logs_severity ON activity_logs(severity)")
        cur.execute(
            "CREATE INDEX IF NOT EXISTS idx_activity_logs_user_created ON activity_logs(user_id, created_at)"
        )

        cur.execute(
            "INSERT OR REPLACE INTO activity_meta (key, value) VALUES ('schema_version', ?)",
            (str(self.SCHEMA_VERSION),),
        )

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def _row_values(self, event: ActivityEvent) -> tuple[Any, ...]:
        created_at = event.created_at or self._clock.now()
        metadata = redact_metadata(event.metadata) if event.metadata else None
        return (
            event.user_id,
            event.action,
            event.category.value,
            event.severity.value,
            event.status.value,
            event.resource_type,
            event.resource_id,
            event.description,
            event.ip_address,
            event.user_agent,
            event.session_id,
            json.dumps(metadata, default=str) if metadata else None,
            int(event.compressed),
            format_timestamp(created_at),
        )

    def insert(self, event: ActivityEvent) -> int:
        """
        Append an event.

        Args:
            event: Event to store; ``id`` is ignored and ``created_at`` is
                assigned from the clock when absent

        Returns:
            The store-assigned id
        """
        placeholders = ",".join("?" * len(_COLUMNS))
        sql = f"INSERT INTO activity_logs ({', '.join(_COLUMNS)}) VALUES ({placeholders})"
        try:
            with self._transaction() as cur:
                cur.execute(sql, self._row_values(event))
                return int(cur.lastrowid)
        except sqlite3.Error as e:
            raise EventStoreError(f"Failed to insert event: {e}", operation="insert") from e

    def insert_many(self, events: Iterable[ActivityEvent]) -> list[int]:
        """Append several events in one transaction, returning their ids in order."""
        placeholders = ",".join("?" * len(_COLUMNS))
        sql = f"INSERT INTO activity_logs ({', '.join(_COLUMNS)}) VALUES ({placeholders})"
        ids: list[int] = []
        try:
            with self._transaction() as cur:
                for event in events:
                    cur.execute(sql, self._row_values(event))
                    ids.append(int(cur.lastrowid))
        except sqlite3.Error as e:
            raise EventStoreError(f"Failed to insert events: {e}", operation="insert_many") from e
        return ids

    def delete(self, filters: EventFilter) -> int:
        """Delete every event matching filters and return the count."""
        if not filters.has_filters():
            raise EventStoreError("Refusing to delete without filters", operation="delete")

        where, params = self._build_where(filters)
        try:
            with self._transaction() as cur:
                cur.execute(f"DELETE FROM activity_logs WHERE {where}", params)
                return cur.rowcount
        except sqlite3.Error as e:
            raise EventStoreError(f"Failed to delete events: {e}", operation="delete") from e

    def mark_compressed(self, before: datetime) -> int:
        """Flag not-yet-flagged events created before ``before``."""
        try:
            with self._transaction() as cur:
                cur.execute(
                    """
                    UPDATE activity_logs SET compressed = 1
                    WHERE created_at < ? AND compressed = 0
                """,
                    (format_timestamp(before),),
                )
                return cur.rowcount
        except sqlite3.Error as e:
            raise EventStoreError(f"Failed to mark events compressed: {e}", operation="mark_compressed") from e

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def _build_where(self, filters: EventFilter | None) -> tuple[str, list[Any]]:
        """Build a WHERE clause (without the keyword) from filters."""
        conditions: list[str] = ["1=1"]
        params: list[Any] = []
        if filters is None:
            return " AND ".join(conditions), params

        if filters.user_id is not None:
            conditions.append("user_id = ?")
            params.append(filters.user_id)
        if filters.date_from is not None:
            conditions.append("created_at >= ?")
            params.append(format_timestamp(filters.date_from))
        if filters.date_to is not None:
            conditions.append("created_at <= ?")
            params.append(format_timestamp(filters.date_to))
        if filters.created_before is not None:
            conditions.append("created_at < ?")
            params.append(format_timestamp(filters.created_before))
        if filters.severity is not None:
            conditions.append("severity = ?")
            params.append(filters.severity.value)
        if filters.category is not None:
            conditions.append("category = ?")
            params.append(filters.category.value)
        if filters.status is not None:
            conditions.append("status = ?")
            params.append(filters.status.value)
        if filters.action is not None:
            conditions.append("action = ?")
            params.append(filters.action)
        for column in ("session_id", "resource_type", "resource_id", "ip_address"):
            value = getattr(filters, column)
            if value is not None:
                conditions.append(f"{column} = ?")
                params.append(value)
        if filters.search:
            pattern = "%" + _escape_like(filters.search.lower()) + "%"
            matches = " OR ".join(f"LOWER({column}) LIKE ? ESCAPE '\\'" for column in _SEARCH_COLUMNS)
            conditions.append(f"({matches})")
            params.extend([pattern] * len(_SEARCH_COLUMNS))
        if filters.compressed is not None:
            conditions.append("compressed = ?")
            params.append(int(filters.compressed))

        return " AND ".join(conditions), params

    def _query(self, sql: str, params: list[Any] | tuple[Any, ...], operation: str) -> list[sqlite3.Row]:
        try:
            with self._lock:
                return self._conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            raise EventStoreError(f"Query failed: {e}", operation=operation) from e

    def _row_to_event(self, row: sqlite3.Row) -> ActivityEvent:
        """Convert database row to ActivityEvent."""
        metadata: dict[str, Any] = {}
        if row["metadata"]:
            try:
                metadata = json.loads(row["metadata"])
            except json.JSONDecodeError:
                logger.warning("Unreadable metadata on activity log %s", row["id"])

        return ActivityEvent(
            id=row["id"],
            user_id=row["user_id"],
            action=row["action"],
            category=row["category"],
            severity=row["severity"],
            status=row["status"],
            resource_type=row["resource_type"],
            resource_id=row["resource_id"],
            description=row["description"],
            ip_address=row["ip_address"],
            user_agent=row["user_agent"],
            session_id=row["session_id"],
            metadata=metadata,
            compressed=bool(row["compressed"]),
            created_at=parse_timestamp(row["created_at"]),
        )

    def _rows_to_events(self, rows: list[sqlite3.Row], operation: str) -> list[ActivityEvent]:
        try:
            return [self._row_to_event(row) for row in rows]
        except (ValidationError, ValueError) as e:
            raise EventStoreError(f"Malformed activity log row: {e}", operation=operation) from e

    def get(self, event_id: int) -> ActivityEvent | None:
        """Retrieve a single event by id."""
        rows = self._query("SELECT * FROM activity_logs WHERE id = ?", (event_id,), "get")
        if not rows:
            return None
        return self._rows_to_events(rows, "get")[0]

    def count(self, filters: EventFilter | None = None) -> int:
        """Count events matching filters."""
        where, params = self._build_where(filters)
        rows = self._query(f"SELECT COUNT(*) AS count FROM activity_logs WHERE {where}", params, "count")
        return int(rows[0]["count"]) if rows else 0

    def fetch_batch(
        self,
        filters: EventFilter | None = None,
        *,
        after_id: int = 0,
        limit: int = 1000,
    ) -> list[ActivityEvent]:
        """
        Fetch the next page of events after an id cursor.

        Args:
            filters: Optional filters
            after_id: Only rows with id > after_id are returned
            limit: Maximum rows in the page

        Returns:
            Events in ascending id order; empty when the range is exhausted
        """
        where, params = self._build_where(filters)
        sql = f"SELECT * FROM activity_logs WHERE {where} AND id > ? ORDER BY id ASC LIMIT ?"
        rows = self._query(sql, [*params, after_id, limit], "fetch_batch")
        return self._rows_to_events(rows, "fetch_batch")

    def iter_range(self, filters: EventFilter | None = None) -> Iterator[ActivityEvent]:
        """Iterate all matching events in ascending id order, one page at a time."""
        last_id = 0
        while True:
            batch = self.fetch_batch(filters, after_id=last_id, limit=self.ITER_PAGE_SIZE)
            if not batch:
                return
            yield from batch
            last_id = batch[-1].id or last_id

    def query(
        self,
        filters: EventFilter | None = None,
        *,
        sort_by: str = "created_at",
        descending: bool = True,
        limit: int = 50,
        offset: int = 0,
    ) -> list[ActivityEvent]:
        """
        Fetch one page of events in a caller-chosen order.

        Ties on ``sort_by`` are broken by id in the same direction.

        Raises:
            EventStoreError: If sort_by is not a sortable column
        """
        if sort_by not in SORTABLE_COLUMNS:
            raise EventStoreError(f"Cannot sort by column: {sort_by}", operation="query")

        direction = "DESC" if descending else "ASC"
        where, params = self._build_where(filters)
        sql = (
            f"SELECT * FROM activity_logs WHERE {where} "
            f"ORDER BY {sort_by} {direction}, id {direction} LIMIT ? OFFSET ?"
        )
        rows = self._query(sql, [*params, limit, offset], "query")
        return self._rows_to_events(rows, "query")

    def count_by(self, column: str, filters: EventFilter | None = None) -> dict[str, int]:
        """Count matching events grouped by a column."""
        if column not in _GROUPABLE_COLUMNS:
            raise EventStoreError(f"Cannot group by column: {column}", operation="count_by")

        where, params = self._build_where(filters)
        sql = f"""
            SELECT {column} AS bucket, COUNT(*) AS count
            FROM activity_logs WHERE {where}
            GROUP BY {column}
            ORDER BY count DESC
        """
        rows = self._query(sql, params, "count_by")
        return {str(row["bucket"]): int(row["count"]) for row in rows}

    def count_by_period(
        self,
        period: StatisticsPeriod,
        filters: EventFilter | None = None,
    ) -> list[tuple[str, int]]:
        """Count matching events per period bucket, ascending by bucket."""
        expression = _PERIOD_EXPRESSIONS[period]
        where, params = self._build_where(filters)
        sql = f"""
            SELECT {expression} AS period_value, COUNT(*) AS count
            FROM activity_logs WHERE {where} AND created_at IS NOT NULL
            GROUP BY period_value
            ORDER BY period_value ASC
        """
        rows = self._query(sql, params, "count_by_period")
        return [(str(row["period_value"]), int(row["count"])) for row in rows]

    def ping(self) -> bool:
        """Check that the database answers queries."""
        try:
            with self._lock:
                self._conn.execute("SELECT 1").fetchone()
            return True
        except sqlite3.Error:
            return False

    def close(self) -> None:
        """Close the database connection."""
        with self._lock:
            self._conn.close()

    def __enter__(self) -> "SQLiteEventStore":
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit."""
        self.close()
