"""
Pytest configuration and fixtures for Tool Usage Analytics tests.
"""

import pytest

from tool_usage_analytics.analytics import (
    AggregationEngine,
    AnalyticsEvent,
    ErrorTracker,
    EventStore,
    InsightsGenerator,
)
from tool_usage_analytics.utils.dates import days_ago


@pytest.fixture
def storage_dir(tmp_path):
    """Directory for partition files."""
    return tmp_path / "analytics"


@pytest.fixture
def store(storage_dir):
    """Event store with short lock timings."""
    return EventStore(storage_dir, retention_days=90, lock_timeout_ms=300, lock_retry_ms=10)


@pytest.fixture
def aggregator(store):
    return AggregationEngine(store)


@pytest.fixture
def error_tracker(store):
    return ErrorTracker(store)


@pytest.fixture
def generator(aggregator, error_tracker):
    """Insights generator with default thresholds."""
    return InsightsGenerator(aggregator, error_tracker)


@pytest.fixture
def make_event():
    """Factory for events placed a number of days before today."""

    def _make(
        tool_name="trace",
        days_back=0,
        success=True,
        duration_ms=100,
        error_category=None,
        session_id="session-1",
        time_of_day="12:00:00.000",
    ):
        return AnalyticsEvent(
            tool_name=tool_name,
            timestamp=f"{days_ago(days_back)}T{time_of_day}Z",
            success=success,
            duration_ms=duration_ms,
            session_id=session_id,
            error_category=error_category,
        )

    return _make
