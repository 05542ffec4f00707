"""
Retention and archival of activity logs.

Handles chunked gzip archival of old events, deletion of expired events,
compressed-flag bookkeeping and integrity validation of stored ranges.
"""

import gzip
import json
import logging
import os
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field

from audit_pipeline.config import AuditSettings
from audit_pipeline.core.clock import Clock, SystemClock
from audit_pipeline.core.exceptions import AuditPipelineError, RetentionError
from audit_pipeline.events.models import ActivityEvent, EventFilter
from audit_pipeline.store.base import EventStore

logger = logging.getLogger(__name__)

ARCHIVE_PREFIX = "activity_logs"
ARCHIVE_SUFFIX = ".json.gz"


def archive_filename(min_id: int, max_id: int) -> str:
    return f"{ARCHIVE_PREFIX}_{min_id}_{max_id}{ARCHIVE_SUFFIX}"


class RetentionReport(BaseModel):
    """Result of a full retention cycle."""

    success: bool = Field(description="Whether every stage succeeded")
    archived_files: list[str] = Field(default_factory=list, description="Archive files written")
    archived_rows: int = Field(default=0, description="Rows written to archives")
    deleted_count: int = Field(default=0, description="Expired rows deleted")
    compressed_count: int = Field(default=0, description="Rows newly flagged compressed")
    errors: list[str] = Field(default_factory=list, description="Any errors encountered")


class RetentionManager:
    """
    Age-based retention policy over an event store.

    Archival streams the selection with an id cursor so at most one chunk
    is held in memory. Each chunk becomes one gzip-compressed JSON file
    named after its first and last id.
    """

    def __init__(
        self,
        store: EventStore,
        settings: AuditSettings | None = None,
        clock: Clock | None = None,
    ):
        self._store = store
        self._settings = settings or AuditSettings()
        self._clock = clock or SystemClock()

    @property
    def archive_dir(self) -> Path:
        return Path(self._settings.archive_dir)

    def _cutoff(self, age_days: int) -> datetime:
        return self._clock.now() - timedelta(days=age_days)

    # ------------------------------------------------------------------
    # Archival
    # ------------------------------------------------------------------

    def archive_older_than(self, age_days: int | None = None) -> list[Path]:
        """
        Archive events older than ``age_days`` into chunked gzip files.

        Args:
            age_days: Age threshold (default from settings)

        Returns:
            Paths of the written archives, in id order; empty when nothing
            is eligible

        Raises:
            RetentionError: If reading the store or writing a file fails
        """
        written, _ = self._archive(age_days)
        return written

    def _archive(self, age_days: int | None) -> tuple[list[Path], int]:
        age_days = self._settings.archive_age_days if age_days is None else age_days
        filters = EventFilter(created_before=self._cutoff(age_days))
        chunk_size = self._settings.archive_chunk_size

        archive_dir = self.archive_dir
        written: list[Path] = []
        rows = 0
        last_id = 0

        try:
            archive_dir.mkdir(parents=True, exist_ok=True)
            while True:
                chunk = self._store.fetch_batch(filters, after_id=last_id, limit=chunk_size)
                if not chunk:
                    break

                path = self._write_chunk(archive_dir, chunk)
                written.append(path)
                rows += len(chunk)
                last_id = chunk[-1].id or last_id
        except AuditPipelineError as e:
            if isinstance(e, RetentionError):
                raise
            raise RetentionError(f"Archive failed: {e}", stage="archive") from e
        except OSError as e:
            raise RetentionError(f"Archive failed: {e}", stage="archive", path=str(archive_dir)) from e

        if written:
            logger.info(
                f"Archived {len(written)} activity log file(s) older than {age_days} days",
                extra={"files": len(written), "rows": rows, "age_days": age_days},
            )
        return written, rows

    def _write_chunk(self, archive_dir: Path, chunk: list[ActivityEvent]) -> Path:
        """Write one chunk atomically via a temp file and rename."""
        first_id, last_id = chunk[0].id, chunk[-1].id
        path = archive_dir / archive_filename(first_id, last_id)
        tmp_path = path.with_name(path.name + ".tmp")

        payload = json.dumps([event.model_dump(mode="json") for event in chunk])
        try:
            with gzip.open(tmp_path, "wt", encoding="utf-8") as f:
                f.write(payload)
            os.replace(tmp_path, path)
        except OSError as e:
            tmp_path.unlink(missing_ok=True)
            raise RetentionError(f"Failed to write archive: {e}", stage="archive", path=str(path)) from e

        logger.debug(f"Wrote archive {path.name} with {len(chunk)} rows")
        return path

    def read_archive(self, path: Path | str) -> list[dict[str, Any]]:
        """
        Restore the rows stored in an archive file.

        Raises:
            RetentionError: If the file is missing or not a valid archive
        """
        path = Path(path)
        try:
            with gzip.open(path, "rt", encoding="utf-8") as f:
                rows = json.load(f)
        except (OSError, json.JSONDecodeError, EOFError) as e:
            raise RetentionError(f"Failed to read archive: {e}", stage="restore", path=str(path)) from e

        if not isinstance(rows, list):
            raise RetentionError("Archive does not contain a row list", stage="restore", path=str(path))
        return rows

    def list_archives(self) -> list[Path]:
        """Archive files in the archive directory, sorted by name."""
        if not self.archive_dir.exists():
            return []
        return sorted(self.archive_dir.glob(f"{ARCHIVE_PREFIX}_*{ARCHIVE_SUFFIX}"))

    # ------------------------------------------------------------------
    # Deletion and compression
    # ------------------------------------------------------------------

    def delete_expired(self, age_days: int | None = None) -> int:
        """
        Delete events older than ``age_days``.

        Returns:
            Number of rows removed
        """
        age_days = self._settings.delete_age_days if age_days is None else age_days
        try:
            deleted = self._store.delete(EventFilter(created_before=self._cutoff(age_days)))
        except AuditPipelineError as e:
            raise RetentionError(f"Delete failed: {e}", stage="delete") from e

        logger.info(
            f"Deleted {deleted} activity logs older than {age_days} days",
            extra={"deleted": deleted, "age_days": age_days},
        )
        return deleted

    def mark_compressed(self, age_days: int | None = None) -> int:
        """
        Flag events older than ``age_days`` as compressed.

        Already-flagged rows are left alone, so repeated calls return 0.
        """
        age_days = self._settings.compress_threshold_days if age_days is None else age_days
        try:
            updated = self._store.mark_compressed(self._cutoff(age_days))
        except AuditPipelineError as e:
            raise RetentionError(f"Compression bookkeeping failed: {e}", stage="compress") from e

        logger.info(
            f"Marked {updated} activity logs as compressed",
            extra={"updated": updated, "age_days": age_days},
        )
        return updated

    # ------------------------------------------------------------------
    # Integrity
    # ------------------------------------------------------------------

    def validate_integrity(
        self,
        date_from: datetime | None = None,
        date_to: datetime | None = None,
    ) -> bool:
        """
        Check that a stored range is well-formed.

        Fails on the first row whose id does not increase or whose timestamp
        is missing. Timestamps that go backwards are logged but tolerated.
        An empty range is valid.
        """
        filters = EventFilter(date_from=date_from, date_to=date_to)
        previous_id: int | None = None
        previous_ts: datetime | None = None

        try:
            for event in self._store.iter_range(filters):
                if event.id is None or (previous_id is not None and event.id <= previous_id):
                    logger.warning(
                        "Integrity check failed: non-increasing id",
                        extra={"id": event.id, "previous_id": previous_id},
                    )
                    return False
                if event.created_at is None:
                    logger.warning("Integrity check failed: missing timestamp", extra={"id": event.id})
                    return False
                if previous_ts is not None and event.created_at < previous_ts:
                    logger.warning(
                        "Timestamp earlier than previous row",
                        extra={"id": event.id, "previous_id": previous_id},
                    )
                previous_id = event.id
                previous_ts = event.created_at
        except AuditPipelineError as e:
            raise RetentionError(f"Integrity check failed: {e}", stage="validate") from e

        return True

    # ------------------------------------------------------------------
    # Full cycle
    # ------------------------------------------------------------------

    def run_cycle(self) -> RetentionReport:
        """
        Run archive, delete and compress in order.

        Deletion only runs when archival succeeded, so rows are never
        removed without having been archived.
        """
        report = RetentionReport(success=True)

        archived_ok = False
        try:
            paths, rows = self._archive(None)
            report.archived_files = [str(p) for p in paths]
            report.archived_rows = rows
            archived_ok = True
        except RetentionError as e:
            report.success = False
            report.errors.append(str(e))
            logger.error(f"Retention archive stage failed: {e}")

        if archived_ok:
            try:
                report.deleted_count = self.delete_expired()
            except RetentionError as e:
                report.success = False
                report.errors.append(str(e))
                logger.error(f"Retention delete stage failed: {e}")

        try:
            report.compressed_count = self.mark_compressed()
        except RetentionError as e:
            report.success = False
            report.errors.append(str(e))
            logger.error(f"Retention compress stage failed: {e}")

        return report
