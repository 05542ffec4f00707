"""
Bulk export of activity logs.

Usage:
    >>> from audit_pipeline.export import ActivityExporter
    >>>
    >>> result = ActivityExporter(store).export_to_csv()
    >>> Path("logs.csv").write_bytes(result.buffer)
"""

from .exporter import EXPORT_COLUMNS, ActivityExporter, normalize_row
from .serializers import (
    SERIALIZERS,
    CsvSerializer,
    ExportSerializer,
    NdjsonSerializer,
    XlsxSerializer,
    escape_csv_value,
    get_serializer,
    register_serializer,
)

__all__ = [
    "ActivityExporter",
    "CsvSerializer",
    "EXPORT_COLUMNS",
    "ExportSerializer",
    "NdjsonSerializer",
    "SERIALIZERS",
    "XlsxSerializer",
    "escape_csv_value",
    "get_serializer",
    "normalize_row",
    "register_serializer",
]
