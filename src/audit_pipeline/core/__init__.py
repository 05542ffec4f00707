"""Core building blocks shared by every pipeline component."""

from audit_pipeline.core.clock import Clock, ManualClock, SystemClock, ensure_utc
from audit_pipeline.core.exceptions import (
    AuditPipelineError,
    ConfigurationError,
    EventStoreError,
    EventValidationError,
    ExportError,
    RetentionError,
)
from audit_pipeline.core.result import OperationResult

__all__ = [
    # Clock
    "Clock",
    "ManualClock",
    "SystemClock",
    "ensure_utc",
    # Exceptions
    "AuditPipelineError",
    "ConfigurationError",
    "EventStoreError",
    "EventValidationError",
    "ExportError",
    "RetentionError",
    # Results
    "OperationResult",
]
