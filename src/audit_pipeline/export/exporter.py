"""
Batched bulk export of activity logs.

Rows are fetched with an ascending id cursor and handed to a format
serializer one batch at a time, so peak memory is bounded by the batch
size rather than the result set. The serialized output is spooled to a
temporary file (or memory) and returned as a single buffer.
"""

import io
import logging
import os
import tempfile
import time
from pathlib import Path
from typing import Any, BinaryIO

from audit_pipeline.config import AuditSettings, SpoolMode
from audit_pipeline.core.exceptions import AuditPipelineError, ExportError
from audit_pipeline.events.metadata import redact_metadata
from audit_pipeline.events.models import ActivityEvent, EventFilter, ExportFormat, ExportResult
from audit_pipeline.export.serializers import ExportSerializer, get_serializer
from audit_pipeline.store.base import EventStore

logger = logging.getLogger(__name__)

EXPORT_COLUMNS = (
    "id",
    "user_id",
    "action",
    "resource_type",
    "resource_id",
    "description",
    "severity",
    "category",
    "status",
    "created_at",
)


def normalize_row(event: ActivityEvent, include_metadata: bool = False) -> dict[str, Any]:
    """Flatten an event into the exported column set."""
    row: dict[str, Any] = {
        "id": event.id,
        "user_id": event.user_id,
        "action": event.action,
        "resource_type": event.resource_type,
        "resource_id": event.resource_id,
        "description": event.description,
        "severity": event.severity.value,
        "category": event.category.value,
        "status": event.status.value,
        "created_at": event.created_at.isoformat() if event.created_at else None,
    }
    if include_metadata:
        row["metadata"] = redact_metadata(event.metadata)
    return row


class ActivityExporter:
    """
    Exports filtered activity logs as CSV, NDJSON or XLSX.

    Exports are all-or-nothing: any store or serialization failure raises
    ExportError and no partial buffer is returned. Temporary files are
    removed on every exit path.
    """

    def __init__(
        self,
        store: EventStore,
        settings: AuditSettings | None = None,
        spool: SpoolMode | str | None = None,
        temp_dir: Path | str | None = None,
    ):
        """
        Initialize the exporter.

        Args:
            store: Event store to read from
            settings: Batch size and spool defaults
            spool: Override the spool mode ("file" or "memory")
            temp_dir: Override the directory for temporary files
        """
        self._store = store
        self._settings = settings or AuditSettings()
        self._spool = SpoolMode(spool) if spool is not None else self._settings.export_spool
        temp_dir = temp_dir if temp_dir is not None else self._settings.export_temp_dir
        self._temp_dir = Path(temp_dir) if temp_dir is not None else None

    def export_to_csv(self, filters: EventFilter | None = None, batch_size: int | None = None) -> ExportResult:
        return self.export(ExportFormat.CSV, filters, batch_size)

    def export_to_json(self, filters: EventFilter | None = None, batch_size: int | None = None) -> ExportResult:
        """Export as newline-delimited JSON."""
        return self.export(ExportFormat.JSON, filters, batch_size)

    def export_to_xlsx(self, filters: EventFilter | None = None, batch_size: int | None = None) -> ExportResult:
        return self.export(ExportFormat.XLSX, filters, batch_size)

    def export(
        self,
        fmt: ExportFormat | str,
        filters: EventFilter | None = None,
        batch_size: int | None = None,
        include_metadata: bool = False,
    ) -> ExportResult:
        """
        Export matching rows in the given format.

        Args:
            fmt: Output format
            filters: Row filters (default: all rows)
            batch_size: Rows fetched per batch (default from settings)
            include_metadata: Add a redacted metadata column

        Returns:
            ExportResult holding the full serialized output

        Raises:
            ExportError: If any batch fails to fetch or serialize
        """
        started = time.monotonic()
        try:
            fmt = ExportFormat(fmt)
            serializer = get_serializer(fmt)
        except ValueError as e:
            raise ExportError(str(e), export_format=str(fmt)) from e

        batch_size = batch_size or self._settings.export_batch_size
        if batch_size < 1:
            raise ExportError("Batch size must be positive", export_format=fmt.value)

        try:
            total = self._store.count(filters)
        except AuditPipelineError as e:
            raise ExportError(f"Export failed: {e}", export_format=fmt.value, rows_written=0) from e

        if self._spool == SpoolMode.MEMORY:
            buffer = self._run(io.BytesIO(), serializer, fmt, filters, batch_size, include_metadata)
        else:
            buffer = self._run_with_temp_file(serializer, fmt, filters, batch_size, include_metadata)

        duration_ms = (time.monotonic() - started) * 1000
        logger.info(
            f"Activity export completed: {fmt.value}, {total} rows",
            extra={"format": fmt.value, "total": total, "duration_ms": duration_ms},
        )
        return ExportResult(buffer=buffer, total_rows=total, format=fmt, duration_ms=duration_ms)

    def _run_with_temp_file(
        self,
        serializer: ExportSerializer,
        fmt: ExportFormat,
        filters: EventFilter | None,
        batch_size: int,
        include_metadata: bool,
    ) -> bytes:
        if self._temp_dir is not None:
            self._temp_dir.mkdir(parents=True, exist_ok=True)

        try:
            handle = tempfile.NamedTemporaryFile(
                mode="w+b",
                prefix="activity_export_",
                suffix=f".{fmt.extension}",
                dir=self._temp_dir,
                delete=False,
            )
        except OSError as e:
            raise ExportError(f"Cannot create export temp file: {e}", export_format=fmt.value) from e

        try:
            with handle:
                return self._run(handle, serializer, fmt, filters, batch_size, include_metadata)
        finally:
            try:
                os.unlink(handle.name)
            except FileNotFoundError:
                pass
            except OSError as e:
                logger.warning(f"Failed to remove export temp file {handle.name}: {e}")

    def _run(
        self,
        sink: BinaryIO,
        serializer: ExportSerializer,
        fmt: ExportFormat,
        filters: EventFilter | None,
        batch_size: int,
        include_metadata: bool,
    ) -> bytes:
        """Stream every batch through the serializer into sink and read the result back."""
        last_id = 0
        try:
            serializer.open(sink)
            while True:
                batch = self._store.fetch_batch(filters, after_id=last_id, limit=batch_size)
                if not batch:
                    break
                last_id = batch[-1].id or last_id
                serializer.write_batch([normalize_row(event, include_metadata) for event in batch])
            serializer.close()

            sink.flush()
            sink.seek(0)
            return sink.read()
        except ExportError:
            raise
        except Exception as e:
            logger.error(f"Activity export failed after {serializer.rows_written} rows: {e}")
            raise ExportError(
                f"Export failed: {e}",
                export_format=fmt.value,
                rows_written=serializer.rows_written,
            ) from e
