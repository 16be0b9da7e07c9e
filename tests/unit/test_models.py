"""
Unit tests for the analytics data model.
"""

import pytest
from pydantic import ValidationError

from tool_usage_analytics.analytics.models import (
    AnalyticsEvent,
    CleanupResult,
    DailyPartition,
    ErrorCategory,
    LockTimeoutError,
    StorageInfo,
)


class TestAnalyticsEvent:
    """Test event validation and serialisation."""

    def test_parse_wire_format(self):
        """Test construction from camelCase keys."""
        event = AnalyticsEvent.model_validate(
            {
                "toolName": "debug",
                "timestamp": "2026-03-01T10:00:00.000Z",
                "success": False,
                "durationMs": 250,
                "sessionId": "abc",
                "errorCategory": "timeout",
            }
        )

        assert event.tool_name == "debug"
        assert event.error_category == "timeout"
        assert event.date == "2026-03-01"

    def test_to_dict_uses_camel_case(self):
        event = AnalyticsEvent(
            tool_name="map",
            timestamp="2026-03-01T10:00:00.000Z",
            success=True,
            duration_ms=5,
            session_id="abc",
        )

        data = event.to_dict()

        assert data == {
            "toolName": "map",
            "timestamp": "2026-03-01T10:00:00.000Z",
            "success": True,
            "durationMs": 5,
            "sessionId": "abc",
        }

    def test_unknown_tool_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            AnalyticsEvent(
                tool_name="hammer",
                timestamp="2026-03-01T10:00:00.000Z",
                success=True,
                duration_ms=1,
                session_id="abc",
            )

        assert "Unknown tool" in str(exc_info.value)

    def test_negative_duration_rejected(self):
        with pytest.raises(ValidationError):
            AnalyticsEvent(
                tool_name="trace",
                timestamp="2026-03-01T10:00:00.000Z",
                success=True,
                duration_ms=-1,
                session_id="abc",
            )

    def test_error_category_requires_failure(self):
        """Test that a successful event cannot carry an error category."""
        with pytest.raises(ValidationError):
            AnalyticsEvent(
                tool_name="trace",
                timestamp="2026-03-01T10:00:00.000Z",
                success=True,
                duration_ms=1,
                session_id="abc",
                error_category=ErrorCategory.RUNTIME,
            )

    def test_invalid_timestamp_rejected(self):
        with pytest.raises(ValidationError):
            AnalyticsEvent(
                tool_name="trace",
                timestamp="yesterday",
                success=True,
                duration_ms=1,
                session_id="abc",
            )

    def test_events_are_immutable(self):
        event = AnalyticsEvent(
            tool_name="trace",
            timestamp="2026-03-01T10:00:00.000Z",
            success=True,
            duration_ms=1,
            session_id="abc",
        )

        with pytest.raises(ValidationError):
            event.success = False


class TestResults:
    """Test result value serialisation."""

    def test_partition_to_dict(self):
        partition = DailyPartition(date="2026-03-01", last_modified="2026-03-01T11:00:00.000Z")

        assert partition.to_dict() == {
            "schemaVersion": "1.0.0",
            "date": "2026-03-01",
            "events": [],
            "lastModified": "2026-03-01T11:00:00.000Z",
        }

    def test_cleanup_result_omits_missing_error(self):
        assert CleanupResult(success=True, files_deleted=2, events_deleted=7).to_dict() == {
            "success": True,
            "filesDeleted": 2,
            "eventsDeleted": 7,
        }

    def test_storage_info_defaults(self):
        info = StorageInfo().to_dict()

        assert info["totalFiles"] == 0
        assert info["oldestDate"] is None

    def test_lock_timeout_error_code(self):
        error = LockTimeoutError("busy", details={"lock": "x"})

        assert error.code == "lock_timeout"
        assert error.message == "busy"
        assert error.details == {"lock": "x"}
