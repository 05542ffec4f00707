"""
Audit Pipeline Exception Hierarchy.

Defines the custom exceptions raised by the store, retention, export and
configuration layers. The real-time monitor never raises and analytics
converts failures into result objects, so neither defines its own errors.
"""

from typing import Any


class AuditPipelineError(Exception):
    """
    Base exception for all audit pipeline errors.

    All custom exceptions inherit from this class, allowing
    generic catch blocks and consistent error handling.
    """

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        """
        Initialize an AuditPipelineError.

        Args:
            message: Human-readable error message
            details: Optional structured data for debugging
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        """Return string representation with details."""
        base = self.message
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{base} ({details_str})"
        return base

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class EventStoreError(AuditPipelineError):
    """
    Errors raised by event store operations.

    Wraps driver-level failures (locked database, malformed rows,
    constraint violations) with the operation that was being performed.
    """

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if operation:
            details["operation"] = operation

        super().__init__(message, details=details)
        self.operation = operation


class EventValidationError(AuditPipelineError):
    """
    Raised when an incoming event fails ingestion checks.

    Covers empty or oversized action names and metadata that cannot be
    serialized or exceeds the size limit.
    """

    def __init__(
        self,
        message: str,
        *,
        field: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if field:
            details["field"] = field

        super().__init__(message, details=details)
        self.field = field


class RetentionError(AuditPipelineError):
    """
    Errors during archival, expiry deletion or compression bookkeeping.

    Raised to the invoking scheduler, which owns retry policy.
    """

    def __init__(
        self,
        message: str,
        *,
        stage: str | None = None,
        path: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize a RetentionError.

        Args:
            message: Human-readable error message
            stage: Retention stage that failed (archive, delete, compress)
            path: Archive file involved, if any
            details: Optional structured data for debugging
        """
        details = details or {}
        if stage:
            details["stage"] = stage
        if path:
            details["path"] = path

        super().__init__(message, details=details)
        self.stage = stage
        self.path = path


class ExportError(AuditPipelineError):
    """
    Raised when a bulk export aborts.

    Exports are all-or-nothing: no partial buffer accompanies this error.
    """

    def __init__(
        self,
        message: str,
        *,
        export_format: str | None = None,
        rows_written: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if export_format:
            details["format"] = export_format
        if rows_written is not None:
            details["rows_written"] = rows_written

        super().__init__(message, details=details)
        self.export_format = export_format
        self.rows_written = rows_written


class ConfigurationError(AuditPipelineError):
    """
    Errors in configuration loading or validation.

    Raised when:
    - Required environment variables are malformed
    - Configuration values are out of range
    """

    def __init__(
        self,
        message: str,
        *,
        env_var: str | None = None,
        config_key: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize a ConfigurationError.

        Args:
            message: Human-readable error message
            env_var: Environment variable name if applicable
            config_key: Configuration key if applicable
            details: Optional structured data for debugging
        """
        details = details or {}
        if env_var:
            details["env_var"] = env_var
        if config_key:
            details["config_key"] = config_key

        super().__init__(message, details=details)
        self.env_var = env_var
        self.config_key = config_key
