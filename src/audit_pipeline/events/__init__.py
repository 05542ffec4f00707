"""
Audit event models, categorization rules and metadata redaction.

Usage:
    >>> from audit_pipeline.events import ActivityEvent, ActivityStatus
    >>>
    >>> event = ActivityEvent(action="login_failed", status=ActivityStatus.FAILURE)
"""

from .categorization import (
    ALL_ACTIONS,
    detect_category,
    is_known_action,
    severity_for_action,
    status_for_action,
)
from .metadata import REDACTED, redact_metadata, validate_metadata
from .models import (
    ActivityCategory,
    ActivityEvent,
    ActivitySeverity,
    ActivityStatus,
    EventFilter,
    ExportFormat,
    ExportResult,
    SecurityAlert,
    StatisticsFilters,
    StatisticsPeriod,
)

__all__ = [
    # Models
    "ActivityCategory",
    "ActivityEvent",
    "ActivitySeverity",
    "ActivityStatus",
    "EventFilter",
    "ExportFormat",
    "ExportResult",
    "SecurityAlert",
    "StatisticsFilters",
    "StatisticsPeriod",
    # Categorization
    "ALL_ACTIONS",
    "detect_category",
    "is_known_action",
    "severity_for_action",
    "status_for_action",
    # Metadata
    "REDACTED",
    "redact_metadata",
    "validate_metadata",
]
