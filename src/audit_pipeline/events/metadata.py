"""
Metadata sanitization for audit events.

Sensitive keys are redacted before an event is stored or exported, and
oversized or unserializable metadata is rejected at ingestion.
"""

import json
from typing import Any

from audit_pipeline.core.exceptions import EventValidationError

REDACTED = "[REDACTED]"

MAX_METADATA_BYTES = 1024 * 1024

# Matched as substrings of the lower-cased key
SENSITIVE_KEY_FRAGMENTS: tuple[str, ...] = (
    "password",
    "token",
    "secret",
    "key",
    "credential",
    "auth",
    "cookie",
    "session",
)


def is_sensitive_key(key: str) -> bool:
    lowered = key.lower()
    return any(fragment in lowered for fragment in SENSITIVE_KEY_FRAGMENTS)


def redact_metadata(metadata: Any) -> Any:
    """
    Return a redacted deep copy of metadata.

    Dict values under sensitive keys are replaced with ``[REDACTED]``;
    nested dicts and lists are processed recursively. The input is not
    modified.
    """
    if isinstance(metadata, dict):
        return {
            key: REDACTED if is_sensitive_key(str(key)) else redact_metadata(value)
            for key, value in metadata.items()
        }
    if isinstance(metadata, list):
        return [redact_metadata(item) for item in metadata]
    return metadata


def validate_metadata(metadata: dict[str, Any]) -> None:
    """
    Check that metadata serializes to JSON within the size limit.

    Raises:
        EventValidationError: If metadata is unserializable or too large
    """
    try:
        serialized = json.dumps(metadata, default=str)
    except (TypeError, ValueError) as e:
        raise EventValidationError(f"Invalid metadata structure: {e}", field="metadata") from e

    size = len(serialized.encode("utf-8"))
    if size > MAX_METADATA_BYTES:
        raise EventValidationError(
            "Metadata exceeds 1MB size limit",
            field="metadata",
            details={"size_bytes": size},
        )
