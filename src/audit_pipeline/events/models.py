"""
Audit event data models.

Defines the core types for activity events, alerts, filters and exports.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from audit_pipeline.core.clock import ensure_utc


class ActivitySeverity(str, Enum):
    """Activity severity levels."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ActivityCategory(str, Enum):
    """Activity categories for logical grouping."""

    AUTHENTICATION = "authentication"
    AUTHORIZATION = "authorization"
    USER_MANAGEMENT = "user_management"
    DATA_MODIFICATION = "data_modification"
    SYSTEM = "system"
    SECURITY = "security"


class ActivityStatus(str, Enum):
    """Result status of the audited operation."""

    SUCCESS = "success"
    FAILURE = "failure"
    ERROR = "error"

    @property
    def is_failure(self) -> bool:
        return self in (ActivityStatus.FAILURE, ActivityStatus.ERROR)


class ActivityEvent(BaseModel):
    """
    A single audit record.

    Immutable once stored: the store assigns ``id`` and ``created_at`` on
    insert and never updates either.
    """

    # Identity
    id: int | None = Field(default=None, description="Store-assigned, monotonically increasing")
    user_id: int | None = Field(default=None, description="Acting user, if any")

    # What happened
    action: str = Field(min_length=1, max_length=100, description="Short action identifier")
    category: ActivityCategory = Field(default=ActivityCategory.SYSTEM)
    severity: ActivitySeverity = Field(default=ActivitySeverity.MEDIUM)
    status: ActivityStatus = Field(default=ActivityStatus.SUCCESS)

    # Affected resource
    resource_type: str | None = Field(default=None, description="Kind of resource affected")
    resource_id: int | None = Field(default=None, description="Affected resource identifier")
    description: str | None = Field(default=None, description="Human-readable summary")

    # Request context
    ip_address: str | None = Field(default=None)
    user_agent: str | None = Field(default=None)
    session_id: str | None = Field(default=None)

    created_at: datetime | None = Field(default=None, description="UTC insert time")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Additional event context")

    # Storage bookkeeping
    compressed: bool = Field(default=False, description="Flagged by retention compression")

    model_config = {"frozen": True}

    @field_validator("created_at")
    @classmethod
    def _normalize_created_at(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None

    def with_timestamp(self, when: datetime) -> "ActivityEvent":
        """Return a copy stamped with ``when`` unless already stamped."""
        if self.created_at is not None:
            return self
        return self.model_copy(update={"created_at": ensure_utc(when)})


class SecurityAlert(BaseModel):
    """Alert raised by the real-time monitor. Never persisted."""

    reason: str
    events: list[ActivityEvent] = Field(default_factory=list)
    triggered_at: datetime

    @property
    def count(self) -> int:
        return len(self.events)


class EventFilter(BaseModel):
    """
    Filter shared by store queries, exports, retention and analytics.

    ``date_from``/``date_to`` are inclusive bounds; ``created_before`` is an
    exclusive upper bound used for age-based retention cutoffs.
    """

    user_id: int | None = Field(default=None, description="Filter by acting user")
    date_from: datetime | None = Field(default=None, description="created_at >= date_from")
    date_to: datetime | None = Field(default=None, description="created_at <= date_to")
    created_before: datetime | None = Field(default=None, description="created_at < created_before")
    severity: ActivitySeverity | None = Field(default=None)
    category: ActivityCategory | None = Field(default=None)
    status: ActivityStatus | None = Field(default=None)
    action: str | None = Field(default=None)
    session_id: str | None = Field(default=None)
    resource_type: str | None = Field(default=None)
    resource_id: int | None = Field(default=None)
    ip_address: str | None = Field(default=None)
    search: str | None = Field(default=None, description="Case-insensitive substring over text columns")
    compressed: bool | None = Field(default=None)

    @field_validator("date_from", "date_to", "created_before")
    @classmethod
    def _normalize_bounds(cls, value: datetime | None) -> datetime | None:
        return ensure_utc(value) if value is not None else None

    def has_filters(self) -> bool:
        """Check if any filter is active."""
        return any(value is not None for value in self.model_dump().values())


class ExportFormat(str, Enum):
    """Supported bulk export formats."""

    CSV = "csv"
    JSON = "json"
    XLSX = "xlsx"

    @property
    def media_type(self) -> str:
        return _MEDIA_TYPES[self]

    @property
    def extension(self) -> str:
        return self.value


_MEDIA_TYPES = {
    ExportFormat.CSV: "text/csv",
    ExportFormat.JSON: "application/x-ndjson",
    ExportFormat.XLSX: "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
}


@dataclass
class ExportResult:
    """Serialized export returned to the caller. Not retained."""

    buffer: bytes
    total_rows: int
    format: ExportFormat
    duration_ms: float = 0.0
    byte_length: int = field(init=False)

    def __post_init__(self) -> None:
        self.byte_length = len(self.buffer)


class StatisticsPeriod(str, Enum):
    """Period granularity for grouped statistics."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


class StatisticsFilters(BaseModel):
    """Parameters for grouped statistics."""

    period: StatisticsPeriod = Field(default=StatisticsPeriod.MONTH)
    date_from: datetime | None = Field(default=None)
    date_to: datetime | None = Field(default=None)

    def to_event_filter(self) -> EventFilter:
        return EventFilter(date_from=self.date_from, date_to=self.date_to)
