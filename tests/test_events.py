"""Tests for event models, categorization and metadata redaction."""

from datetime import datetime, timedelta, timezone

import pytest
from pydantic import ValidationError

from audit_pipeline.core.exceptions import EventValidationError
from audit_pipeline.events import (
    REDACTED,
    ActivityCategory,
    ActivityEvent,
    ActivitySeverity,
    ActivityStatus,
    EventFilter,
    ExportFormat,
    ExportResult,
    detect_category,
    is_known_action,
    redact_metadata,
    severity_for_action,
    status_for_action,
    validate_metadata,
)


class TestActivityEvent:
    """Tests for ActivityEvent."""

    def test_defaults(self) -> None:
        event = ActivityEvent(action="logout")
        assert event.category == ActivityCategory.SYSTEM
        assert event.severity == ActivitySeverity.MEDIUM
        assert event.status == ActivityStatus.SUCCESS
        assert event.metadata == {}

    def test_frozen(self) -> None:
        event = ActivityEvent(action="logout")
        with pytest.raises(ValidationError):
            event.action = "login"

    def test_naive_timestamp_taken_as_utc(self) -> None:
        event = ActivityEvent(action="logout", created_at=datetime(2025, 1, 1, 8))
        assert event.created_at.tzinfo == timezone.utc

    def test_offset_timestamp_converted(self) -> None:
        plus_two = timezone(timedelta(hours=2))
        event = ActivityEvent(action="logout", created_at=datetime(2025, 1, 1, 10, tzinfo=plus_two))
        assert event.created_at == datetime(2025, 1, 1, 8, tzinfo=timezone.utc)

    def test_with_timestamp_keeps_existing(self) -> None:
        first = datetime(2025, 1, 1, tzinfo=timezone.utc)
        event = ActivityEvent(action="logout", created_at=first)
        assert event.with_timestamp(first + timedelta(days=1)).created_at == first

    def test_action_length(self) -> None:
        with pytest.raises(ValidationError):
            ActivityEvent(action="x" * 101)

    def test_failure_statuses(self) -> None:
        assert ActivityStatus.FAILURE.is_failure
        assert ActivityStatus.ERROR.is_failure
        assert not ActivityStatus.SUCCESS.is_failure


class TestFiltersAndResults:
    """Tests for EventFilter and ExportResult."""

    def test_has_filters(self) -> None:
        assert EventFilter().has_filters() is False
        assert EventFilter(user_id=1).has_filters() is True

    def test_export_result_byte_length(self) -> None:
        result = ExportResult(buffer=b"abc", total_rows=1, format=ExportFormat.CSV)
        assert result.byte_length == 3

    def test_export_format_media_types(self) -> None:
        assert ExportFormat.CSV.media_type == "text/csv"
        assert ExportFormat.JSON.media_type == "application/x-ndjson"
        assert ExportFormat.XLSX.extension == "xlsx"


class TestCategorization:
    """Tests for action categorization rules."""

    @pytest.mark.parametrize(
        "action, category",
        [
            ("login_failed", ActivityCategory.AUTHENTICATION),
            ("access_denied", ActivityCategory.AUTHORIZATION),
            ("role_assigned", ActivityCategory.USER_MANAGEMENT),
            ("data_exported", ActivityCategory.DATA_MODIFICATION),
            ("backup_created", ActivityCategory.SYSTEM),
            ("intrusion_detected", ActivityCategory.SECURITY),
            ("something_new", ActivityCategory.SYSTEM),
        ],
    )
    def test_detect_category(self, action: str, category: ActivityCategory) -> None:
        assert detect_category(action) == category

    def test_severity(self) -> None:
        assert severity_for_action("intrusion_detected") == ActivitySeverity.CRITICAL
        assert severity_for_action("login_failed") == ActivitySeverity.HIGH
        assert severity_for_action("login_success") == ActivitySeverity.MEDIUM
        assert severity_for_action("logout") == ActivitySeverity.LOW

    def test_status(self) -> None:
        assert status_for_action("access_denied") == ActivityStatus.FAILURE
        assert status_for_action("vulnerability_detected") == ActivityStatus.ERROR
        assert status_for_action("logout") == ActivityStatus.SUCCESS

    def test_known_actions(self) -> None:
        assert is_known_action("logout") is True
        assert is_known_action("made_up") is False


class TestMetadata:
    """Tests for metadata redaction and validation."""

    def test_sensitive_keys_redacted(self) -> None:
        metadata = {
            "Password": "p",
            "accessToken": "t",
            "client_secret": "s",
            "apiKey": "k",
            "Authorization": "a",
            "cookie": "c",
            "session_id": "x",
            "credentials": "y",
            "page": 1,
        }
        redacted = redact_metadata(metadata)
        assert redacted["page"] == 1
        assert all(redacted[k] == REDACTED for k in metadata if k != "page")

    def test_nested_structures(self) -> None:
        metadata = {"request": {"headers": [{"cookie": "c", "accept": "json"}]}}
        assert redact_metadata(metadata) == {"request": {"headers": [{"cookie": REDACTED, "accept": "json"}]}}

    def test_input_not_modified(self) -> None:
        metadata = {"password": "p"}
        redact_metadata(metadata)
        assert metadata == {"password": "p"}

    def test_validate_size_limit(self) -> None:
        validate_metadata({"blob": "x" * 1000})
        with pytest.raises(EventValidationError) as exc_info:
            validate_metadata({"blob": "x" * (1024 * 1024)})
        assert exc_info.value.field == "metadata"

    def test_validate_unserializable(self) -> None:
        circular: dict = {}
        circular["self"] = circular
        with pytest.raises(EventValidationError):
            validate_metadata(circular)
