"""
Export serializers.

Each serializer writes batches of normalized rows to a binary stream.
Batching is owned by the exporter; a serializer only knows how to frame
rows for its format. New formats are added by registering a subclass.
"""

import json
from abc import ABC, abstractmethod
from typing import Any, BinaryIO

from openpyxl import Workbook
from openpyxl.cell import WriteOnlyCell
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE

from audit_pipeline.events.models import ExportFormat

# Leading characters that spreadsheet applications evaluate as formulas
FORMULA_PREFIXES = ("=", "+", "-", "@")

XLSX_SHEET_NAME = "Logs"


def escape_csv_value(value: Any) -> str:
    """
    Render one CSV field.

    Strings are double-quoted with embedded quotes doubled; a string that
    could be read as a formula is prefixed with a single quote first.
    ``None`` renders as an empty field.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        value = json.dumps(value, default=str)
    if isinstance(value, str):
        if value.startswith(FORMULA_PREFIXES):
            value = "'" + value
        return '"' + value.replace('"', '""') + '"'
    return str(value)


class ExportSerializer(ABC):
    """Writes batches of rows in one export format."""

    format: ExportFormat

    def __init__(self):
        self._stream: BinaryIO | None = None
        self.rows_written = 0

    def open(self, stream: BinaryIO) -> None:
        self._stream = stream

    @property
    def stream(self) -> BinaryIO:
        if self._stream is None:
            raise RuntimeError(f"{type(self).__name__} is not open")
        return self._stream

    def write_batch(self, rows: list[dict[str, Any]]) -> None:
        if rows:
            self._write_rows(rows)
            self.rows_written += len(rows)

    @abstractmethod
    def _write_rows(self, rows: list[dict[str, Any]]) -> None: ...

    def close(self) -> None:
        """Finish the output. Formats with a footer or container write it here."""


class CsvSerializer(ExportSerializer):
    format = ExportFormat.CSV

    def __init__(self):
        super().__init__()
        self._headers: list[str] | None = None

    def _write_rows(self, rows: list[dict[str, Any]]) -> None:
        lines: list[str] = []
        if self._headers is None:
            self._headers = list(rows[0].keys())
            lines.append(",".join(self._headers))

        for row in rows:
            lines.append(",".join(escape_csv_value(row.get(h)) for h in self._headers))

        self.stream.write(("\n".join(lines) + "\n").encode("utf-8"))


class NdjsonSerializer(ExportSerializer):
    format = ExportFormat.JSON

    def _write_rows(self, rows: list[dict[str, Any]]) -> None:
        payload = "".join(json.dumps(row, default=str) + "\n" for row in rows)
        self.stream.write(payload.encode("utf-8"))


class XlsxSerializer(ExportSerializer):
    """Single-sheet workbook built with openpyxl's write-only mode."""

    format = ExportFormat.XLSX

    def __init__(self):
        super().__init__()
        self._workbook: Workbook | None = None
        self._sheet = None
        self._headers: list[str] | None = None

    def open(self, stream: BinaryIO) -> None:
        super().open(stream)
        self._workbook = Workbook(write_only=True)
        self._sheet = self._workbook.create_sheet(XLSX_SHEET_NAME)

    def _write_rows(self, rows: list[dict[str, Any]]) -> None:
        if self._headers is None:
            self._headers = list(rows[0].keys())
            self._sheet.append(self._headers)

        for row in rows:
            self._sheet.append([self._cell(row.get(h)) for h in self._headers])

    def _cell(self, value: Any) -> Any:
        """
        Convert one value to a worksheet cell.

        Strings are stripped of control characters the XLSX format cannot
        hold and are always stored as text, so a leading "=" never becomes
        a live formula.
        """
        if isinstance(value, (dict, list)):
            value = json.dumps(value, default=str)
        if not isinstance(value, str):
            return value

        cell = WriteOnlyCell(self._sheet, value=ILLEGAL_CHARACTERS_RE.sub("", value))
        cell.data_type = "s"
        return cell

    def close(self) -> None:
        if self._workbook is not None:
            self._workbook.save(self.stream)
            self._workbook = None


SERIALIZERS: dict[ExportFormat, type[ExportSerializer]] = {
    ExportFormat.CSV: CsvSerializer,
    ExportFormat.JSON: NdjsonSerializer,
    ExportFormat.XLSX: XlsxSerializer,
}


def register_serializer(fmt: ExportFormat, serializer: type[ExportSerializer]) -> None:
    SERIALIZERS[fmt] = serializer


def get_serializer(fmt: ExportFormat | str) -> ExportSerializer:
    """Create a fresh serializer for a format."""
    try:
        return SERIALIZERS[ExportFormat(fmt)]()
    except (KeyError, ValueError) as e:
        raise ValueError(f"Unsupported export format: {fmt}") from e
