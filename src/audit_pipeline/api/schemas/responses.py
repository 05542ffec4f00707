"""
Pydantic response schemas for API endpoints.
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from audit_pipeline.events.models import ActivityEvent


class EventCreatedResponse(BaseModel):
    """Response for an ingested event."""

    id: int = Field(..., description="Store-assigned event id")
    created_at: datetime | None = Field(None, description="Insert timestamp")


class RecentEventsResponse(BaseModel):
    """Snapshot of the real-time buffer."""

    events: list[ActivityEvent] = Field(default_factory=list)
    count: int = Field(..., description="Events returned")
    capacity: int = Field(..., description="Buffer capacity")


class IntegrityResponse(BaseModel):
    """Integrity verdict for a stored range."""

    valid: bool
    date_from: datetime | None = None
    date_to: datetime | None = None


class HealthResponse(BaseModel):
    """Response model for health check."""

    status: str = Field(..., description="Health status")
    version: str = Field(..., description="API version")
    timestamp: str = Field(..., description="Check timestamp")
    components: dict[str, str] = Field(default_factory=dict, description="Component statuses")
    stream_clients: int = Field(0, description="Connected SSE clients")

    model_config = {"extra": "forbid"}


class ErrorResponse(BaseModel):
    """Standard error response format."""

    error: dict[str, Any] = Field(..., description="Error details")

    model_config = {"extra": "forbid"}
