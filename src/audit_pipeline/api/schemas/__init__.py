"""
Pydantic schemas for API request/response validation.
"""

from audit_pipeline.api.schemas.requests import EventCreateRequest, ExportRequest
from audit_pipeline.api.schemas.responses import (
    ErrorResponse,
    EventCreatedResponse,
    HealthResponse,
    IntegrityResponse,
    RecentEventsResponse,
)

__all__ = [
    # Requests
    "EventCreateRequest",
    "ExportRequest",
    # Responses
    "ErrorResponse",
    "EventCreatedResponse",
    "HealthResponse",
    "IntegrityResponse",
    "RecentEventsResponse",
]
