"""
Unit tests for the aggregation engine.
"""

from unittest.mock import AsyncMock

import pytest

from tool_usage_analytics.analytics.aggregator import (
    AggregationEngine,
    PeriodType,
    TrendDirection,
    classify_trend,
    percentile_95,
)
from tool_usage_analytics.analytics.models import AnalyticsEvent
from tool_usage_analytics.utils.dates import days_ago, week_id


def _event(tool_name, timestamp, success=True, duration_ms=100, error_category=None):
    return AnalyticsEvent(
        tool_name=tool_name,
        timestamp=timestamp,
        success=success,
        duration_ms=duration_ms,
        session_id="s",
        error_category=error_category,
    )


class TestHelpers:
    """Test pure statistics helpers."""

    def test_p95_of_twenty_values(self):
        values = [float(v) for v in range(100, 2001, 100)]

        assert percentile_95(values) == 1900

    def test_p95_small_inputs(self):
        assert percentile_95([]) == 0
        assert percentile_95([42]) == 42

    def test_trend_needs_two_points(self):
        assert classify_trend([]) == (TrendDirection.STABLE, 0.0)
        assert classify_trend([50]) == (TrendDirection.STABLE, 0.0)

    def test_trend_from_zero(self):
        direction, change = classify_trend([0, 4])

        assert direction == TrendDirection.INCREASING
        assert change == 100

        assert classify_trend([0, 0]) == (TrendDirection.STABLE, 0.0)

    def test_trend_uses_halves(self):
        """Test that the odd middle point belongs to the second half."""
        direction, change = classify_trend([10, 10, 4])

        assert direction == TrendDirection.DECREASING
        assert change == pytest.approx(-30.0)

    def test_week_ids(self):
        assert week_id("2025-12-28") == "2025-W52"
        assert week_id("2025-12-29") == "2026-W01"
        assert week_id("2026-01-01") == "2026-W01"
        assert week_id("2021-01-03") == "2020-W53"
        assert week_id("2026-10-19") == "2026-W43"


class TestUsageStats:
    """Test the statistics envelope."""

    @pytest.mark.asyncio
    async def test_empty_store(self, aggregator):
        stats = await aggregator.get_usage_stats()

        assert stats.total_invocations == 0
        assert stats.tool_metrics == []
        assert stats.trends == []
        assert stats.overall_error_rate == 0
        assert stats.avg_invocations_per_session == 0
        assert stats.period_start == days_ago(30)

    @pytest.mark.asyncio
    async def test_totals_are_consistent(self, store, aggregator, make_event):
        events = [
            make_event("trace"),
            make_event("trace", success=False, error_category="runtime"),
            make_event("model", session_id="session-2"),
            make_event("debug", success=False, days_back=2),
        ]
        await store.append_events(events)

        stats = await aggregator.get_usage_stats()

        assert stats.total_invocations == 4
        assert stats.total_invocations == stats.total_successes + stats.total_errors
        assert sum(m.invocation_count for m in stats.tool_metrics) == stats.total_invocations
        assert 0 <= stats.overall_error_rate <= 100
        assert stats.overall_error_rate == 50
        assert stats.unique_sessions == 2
        assert stats.avg_invocations_per_session == 2

    @pytest.mark.asyncio
    async def test_popularity_ranking(self, store, aggregator, make_event):
        await store.append_events(
            [make_event("trace")] * 3 + [make_event("model")] * 2
        )

        stats = await aggregator.get_usage_stats()
        ranking = await aggregator.get_popularity_ranking()

        assert stats.popularity_ranking == ["trace", "model"]
        assert ranking == [
            {"toolName": "trace", "count": 3, "percentage": 60.0},
            {"toolName": "model", "count": 2, "percentage": 40.0},
        ]
        assert await aggregator.get_popularity_ranking(limit=1) == ranking[:1]

    @pytest.mark.asyncio
    async def test_tool_metrics(self, store, aggregator, make_event):
        await store.append_events(
            [
                make_event("debug", duration_ms=100, time_of_day="08:00:00.000"),
                make_event(
                    "debug",
                    success=False,
                    duration_ms=300,
                    time_of_day="09:00:00.000",
                ),
            ]
        )

        metrics = await aggregator.get_tool_metrics("debug")

        assert metrics.error_rate == 50
        assert metrics.avg_duration_ms == 200
        assert metrics.min_duration_ms == 100
        assert metrics.max_duration_ms == 300
        assert metrics.p95_duration_ms == 300
        assert metrics.errors_by_category == {
            "validation": 0,
            "runtime": 0,
            "timeout": 0,
            "unknown": 1,
        }
        assert metrics.first_invocation.endswith("08:00:00.000Z")
        assert metrics.last_invocation.endswith("09:00:00.000Z")
        assert await aggregator.get_tool_metrics("map") is None

    @pytest.mark.asyncio
    async def test_tools_needing_attention(self, store, aggregator, make_event):
        events = [make_event("trace")] * 9 + [make_event("trace", success=False)]
        events += [make_event("model")] * 3 + [make_event("model", success=False)]
        events += [make_event("map", success=False)]
        await store.append_events(events)

        stats = await aggregator.get_usage_stats()

        assert stats.tools_needing_attention == ["map", "model"]

    @pytest.mark.asyncio
    async def test_explicit_window(self, store, aggregator, make_event):
        await store.append_events([make_event(days_back=d) for d in (0, 5, 10)])

        stats = await aggregator.get_usage_stats(days_ago(6), days_ago(4))

        assert stats.total_invocations == 1
        assert stats.period_start == days_ago(6)
        assert stats.period_end == days_ago(4)

    @pytest.mark.asyncio
    async def test_read_failure_yields_empty_stats(self):
        store = AsyncMock()
        store.read_events.side_effect = RuntimeError("disk on fire")
        engine = AggregationEngine(store)

        stats = await engine.get_usage_stats()
        trends = await engine.get_usage_trends()
        periods = await engine.get_period_counts(PeriodType.DAILY)

        assert stats.total_invocations == 0
        assert trends == []
        assert periods == []


class TestTrends:
    """Test usage trend classification."""

    @pytest.mark.asyncio
    async def test_increasing(self, store, aggregator, make_event):
        events = [make_event("trace", days_back=6)] * 2
        events += [make_event("trace", days_back=3)] * 5
        events += [make_event("trace", days_back=0)] * 10
        await store.append_events(events)

        trends = await aggregator.get_usage_trends()

        assert len(trends) == 1
        assert trends[0].trend == TrendDirection.INCREASING
        assert trends[0].change_percentage > 0
        assert [p.count for p in trends[0].data_points] == [2, 5, 10]

    @pytest.mark.asyncio
    async def test_decreasing(self, store, aggregator, make_event):
        events = [make_event("model", days_back=6)] * 10
        events += [make_event("model", days_back=3)] * 5
        events += [make_event("model", days_back=0)] * 2
        await store.append_events(events)

        trends = await aggregator.get_usage_trends()

        assert trends[0].trend == TrendDirection.DECREASING
        assert trends[0].change_percentage < 0

    @pytest.mark.asyncio
    async def test_stable(self, store, aggregator, make_event):
        events = [make_event("map", days_back=4)] * 10
        events += [make_event("map", days_back=2)] * 10
        events += [make_event("map", days_back=0)] * 11
        await store.append_events(events)

        trends = await aggregator.get_usage_trends()

        assert trends[0].trend == TrendDirection.STABLE

    @pytest.mark.asyncio
    async def test_single_point_is_stable(self, store, aggregator, make_event):
        await store.append_events([make_event("map")] * 8)

        trends = await aggregator.get_usage_trends()

        assert trends[0].trend == TrendDirection.STABLE
        assert trends[0].change_percentage == 0


class TestPeriodCounts:
    """Test period bucketing."""

    @pytest.mark.asyncio
    async def test_weekly_buckets(self, store, aggregator):
        await store.append_events(
            [
                _event("trace", "2025-12-28T10:00:00.000Z", duration_ms=100),
                _event("trace", "2025-12-29T10:00:00.000Z", duration_ms=300),
                _event("trace", "2026-01-01T10:00:00.000Z", success=False, duration_ms=200),
                _event("model", "2026-01-02T10:00:00.000Z"),
            ]
        )

        series = await aggregator.get_weekly_counts(
            start_date="2025-12-01", end_date="2026-01-31"
        )

        by_tool = {s.tool_name: s for s in series}
        trace = by_tool["trace"]
        assert trace.period_type == PeriodType.WEEKLY
        assert [p.period for p in trace.periods] == ["2025-W52", "2026-W01"]
        assert [p.total_count for p in trace.periods] == [1, 2]
        assert trace.periods[1].error_count == 1
        assert trace.periods[1].error_rate == 0.5
        assert trace.periods[1].avg_duration_ms == 250
        assert trace.trend == TrendDirection.INCREASING
        assert trace.change_percentage == 100

    @pytest.mark.asyncio
    async def test_monthly_buckets_with_tool_filter(self, store, aggregator):
        await store.append_events(
            [
                _event("trace", "2025-12-28T10:00:00.000Z"),
                _event("trace", "2026-01-01T10:00:00.000Z"),
                _event("model", "2026-01-02T10:00:00.000Z"),
            ]
        )

        series = await aggregator.get_monthly_counts(
            "trace", start_date="2025-12-01", end_date="2026-01-31"
        )

        assert len(series) == 1
        assert [p.period for p in series[0].periods] == ["2025-12", "2026-01"]

    @pytest.mark.asyncio
    async def test_daily_buckets_sorted(self, store, aggregator, make_event):
        await store.append_events([make_event(days_back=0), make_event(days_back=2)])

        series = await aggregator.get_daily_counts()

        assert [p.period for p in series[0].periods] == [days_ago(2), days_ago(0)]


class TestSummary:
    """Test the condensed summary and projections."""

    @pytest.mark.asyncio
    async def test_empty_summary(self, aggregator):
        summary = await aggregator.get_summary()

        assert summary.total_invocations == 0
        assert summary.overall_error_rate == 0
        assert summary.most_popular_tool is None
        assert summary.highest_error_rate_tool is None
        assert summary.slowest_tool is None

    @pytest.mark.asyncio
    async def test_summary_scales_error_rate(self, store, aggregator, make_event):
        """Test that the summary reports the stats error rate as a fraction."""
        events = [make_event("trace", duration_ms=100)] * 3
        events += [make_event("debug", success=False, duration_ms=1000)]
        await store.append_events(events)

        stats = await aggregator.get_usage_stats()
        summary = await aggregator.get_summary()

        assert stats.overall_error_rate == 25
        assert summary.overall_error_rate == pytest.approx(stats.overall_error_rate / 100)
        assert 0 <= summary.overall_error_rate <= 1
        assert summary.most_popular_tool == "trace"
        assert summary.highest_error_rate_tool == "debug"
        assert summary.slowest_tool == "debug"
        assert summary.overall_avg_duration_ms == pytest.approx(325)

    @pytest.mark.asyncio
    async def test_error_rates_and_response_times_sorted(self, store, aggregator, make_event):
        events = [make_event("trace", duration_ms=50)] * 4
        events += [make_event("model", duration_ms=500), make_event("model", success=False)]
        events += [make_event("map", success=False, duration_ms=2000)]
        await store.append_events(events)

        rates = await aggregator.get_error_rates()
        times = await aggregator.get_response_times()

        assert [r["toolName"] for r in rates] == ["map", "model", "trace"]
        assert rates[0]["errorRate"] == 100
        assert [t["toolName"] for t in times] == ["map", "model", "trace"]
        assert len(await aggregator.get_response_times(limit=2)) == 2
