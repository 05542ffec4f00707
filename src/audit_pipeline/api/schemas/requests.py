"""
Pydantic request schemas for API endpoints.

All incoming API requests are validated against these schemas.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from audit_pipeline.events.models import (
    ActivityCategory,
    ActivitySeverity,
    ActivityStatus,
    EventFilter,
    ExportFormat,
)


class EventCreateRequest(BaseModel):
    """Request body for ingesting one audit event."""

    action: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Short action identifier",
        examples=["login_failed"],
    )
    user_id: int | None = Field(None, description="Acting user")
    category: ActivityCategory | None = Field(None, description="Derived from action when omitted")
    severity: ActivitySeverity | None = Field(None, description="Derived from action when omitted")
    status: ActivityStatus | None = Field(None, description="Derived from action when omitted")
    resource_type: str | None = Field(None, max_length=100)
    resource_id: int | None = Field(None)
    description: str | None = Field(None, max_length=1000)
    ip_address: str | None = Field(None, max_length=45)
    user_agent: str | None = Field(None, max_length=500)
    session_id: str | None = Field(None, max_length=255)
    metadata: dict[str, Any] = Field(default_factory=dict, description="Additional event context")


class ExportRequest(BaseModel):
    """Request body for a bulk export."""

    format: ExportFormat = Field(ExportFormat.CSV, description="Output format")
    user_id: int | None = Field(None, description="Filter by acting user")
    date_from: datetime | None = Field(None, description="Inclusive lower bound")
    date_to: datetime | None = Field(None, description="Inclusive upper bound")
    severity: ActivitySeverity | None = Field(None)
    category: ActivityCategory | None = Field(None)
    batch_size: int | None = Field(None, ge=1, le=50_000, description="Rows fetched per batch")
    include_metadata: bool = Field(False, description="Add a redacted metadata column")

    def to_filter(self) -> EventFilter:
        return EventFilter(
            user_id=self.user_id,
            date_from=self.date_from,
            date_to=self.date_to,
            severity=self.severity,
            category=self.category,
        )
