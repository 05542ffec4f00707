"""
Configuration for the audit pipeline.

Settings are read from AUDIT_* environment variables into a validated
pydantic model. Components receive an AuditSettings instance at construction
time rather than reading the environment themselves.
"""

import logging
import os
from enum import Enum
from pathlib import Path
from typing import Any, Mapping

from pydantic import BaseModel, Field, ValidationError

from audit_pipeline.core.exceptions import ConfigurationError


class SpoolMode(str, Enum):
    """Where export batches are accumulated before the final buffer is built."""

    FILE = "file"
    MEMORY = "memory"


# field name -> environment variable
ENV_VARS: dict[str, str] = {
    "db_path": "AUDIT_DB_PATH",
    "buffer_size": "AUDIT_REAL_TIME_BUFFER_SIZE",
    "suspicious_threshold": "AUDIT_SUSPICIOUS_ACTIVITY_THRESHOLD",
    "suspicious_window_seconds": "AUDIT_SUSPICIOUS_WINDOW_SECONDS",
    "failure_alert_threshold": "AUDIT_FAILURE_ALERT_THRESHOLD",
    "failure_window_seconds": "AUDIT_FAILURE_WINDOW_SECONDS",
    "archive_dir": "AUDIT_ARCHIVE_DIR",
    "archive_age_days": "AUDIT_ARCHIVE_AGE_DAYS",
    "delete_age_days": "AUDIT_DELETE_AGE_DAYS",
    "compress_threshold_days": "AUDIT_COMPRESS_THRESHOLD_DAYS",
    "archive_chunk_size": "AUDIT_ARCHIVE_CHUNK_SIZE",
    "export_batch_size": "AUDIT_EXPORT_BATCH_SIZE",
    "export_spool": "AUDIT_EXPORT_SPOOL",
    "export_temp_dir": "AUDIT_EXPORT_TEMP_DIR",
    "log_level": "AUDIT_LOG_LEVEL",
}


class AuditSettings(BaseModel):
    """Validated pipeline configuration."""

    # Storage
    db_path: Path = Field(default=Path("var/audit/activity_logs.db"), description="SQLite event store path")

    # Real-time monitor
    buffer_size: int = Field(default=1000, ge=1, description="Circular buffer capacity")
    suspicious_threshold: int = Field(default=10, ge=1, description="Events per window considered suspicious")
    suspicious_window_seconds: int = Field(default=60, ge=1, description="Suspicious-activity window")
    failure_alert_threshold: int = Field(default=5, ge=1, description="Failures per action before alerting")
    failure_window_seconds: int = Field(default=60, ge=1, description="Failure counter decay window")

    # Retention
    archive_dir: Path = Field(default=Path("audit-archives"), description="Archive output directory")
    archive_age_days: int = Field(default=90, ge=0, description="Archive events older than this")
    delete_age_days: int = Field(default=365, ge=0, description="Delete events older than this")
    compress_threshold_days: int = Field(default=30, ge=0, description="Flag events older than this as compressed")
    archive_chunk_size: int = Field(default=10_000, ge=1, description="Rows per archive file")

    # Export
    export_batch_size: int = Field(default=5_000, ge=1, description="Rows fetched per export batch")
    export_spool: SpoolMode = Field(default=SpoolMode.FILE, description="Export spool mode")
    export_temp_dir: Path | None = Field(default=None, description="Directory for export temp files")

    # Logging
    log_level: str = Field(default="INFO", description="Root log level")

    model_config = {"frozen": True}

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None, **overrides: Any) -> "AuditSettings":
        """
        Build settings from AUDIT_* environment variables.

        Args:
            environ: Mapping to read from (default: os.environ)
            **overrides: Explicit values that win over the environment

        Returns:
            Validated AuditSettings

        Raises:
            ConfigurationError: If a variable holds an invalid value
        """
        environ = os.environ if environ is None else environ

        values: dict[str, Any] = {}
        for field_name, env_var in ENV_VARS.items():
            raw = environ.get(env_var)
            if raw is not None and raw.strip() != "":
                values[field_name] = raw.strip()
        values.update(overrides)

        try:
            return cls(**values)
        except ValidationError as e:
            first = e.errors()[0]
            field_name = str(first["loc"][0]) if first.get("loc") else None
            raise ConfigurationError(
                f"Invalid audit configuration: {first['msg']}",
                env_var=ENV_VARS.get(field_name or ""),
                config_key=field_name,
            ) from e


def configure_logging(level: str = "INFO") -> None:
    """Configure root logging with the standard pipeline format."""
    numeric = logging.getLevelName(level.upper())
    if not isinstance(numeric, int):
        numeric = logging.INFO
    logging.basicConfig(
        level=numeric,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
