"""
Aggregation engine for usage analytics.

Recomputes statistics from the event store on every call: per-tool counts
and latency percentiles, popularity, period bucketing and coarse trend
classification. Nothing is cached.
"""

import math
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import structlog

from ..utils.dates import days_ago, month_id, utc_now_iso, utc_today, week_id
from .models import ERROR_CATEGORIES, AnalyticsEvent, ErrorCategory
from .storage import EventStore

logger = structlog.get_logger(__name__)

DEFAULT_LOOKBACK_DAYS = 30
TREND_SIGNIFICANCE_THRESHOLD = 10
MIN_TREND_DATA_POINTS = 2
ATTENTION_ERROR_RATE = 10


class TrendDirection(str, Enum):
    """Coarse classification of a series."""

    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class PeriodType(str, Enum):
    """Bucket granularity for period counts."""

    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


@dataclass
class ToolMetrics:
    """Summary of one tool over a window. ``error_rate`` is a percentage."""

    tool_name: str
    invocation_count: int = 0
    success_count: int = 0
    error_count: int = 0
    error_rate: float = 0.0
    avg_duration_ms: float = 0.0
    min_duration_ms: float = 0.0
    max_duration_ms: float = 0.0
    p95_duration_ms: float = 0.0
    errors_by_category: Dict[str, int] = field(default_factory=dict)
    first_invocation: Optional[str] = None
    last_invocation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "toolName": self.tool_name,
            "invocationCount": self.invocation_count,
            "successCount": self.success_count,
            "errorCount": self.error_count,
            "errorRate": self.error_rate,
            "avgDurationMs": self.avg_duration_ms,
            "minDurationMs": self.min_duration_ms,
            "maxDurationMs": self.max_duration_ms,
            "p95DurationMs": self.p95_duration_ms,
            "errorsByCategory": dict(self.errors_by_category),
            "firstInvocation": self.first_invocation,
            "lastInvocation": self.last_invocation,
        }


@dataclass
class TrendDataPoint:
    date: str
    count: int = 0
    success_count: int = 0
    error_count: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "count": self.count,
            "successCount": self.success_count,
            "errorCount": self.error_count,
        }


@dataclass
class UsageTrend:
    """Daily series of one tool with its trend classification."""

    tool_name: str
    data_points: List[TrendDataPoint] = field(default_factory=list)
    trend: TrendDirection = TrendDirection.STABLE
    change_percentage: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "toolName": self.tool_name,
            "dataPoints": [point.to_dict() for point in self.data_points],
            "trend": self.trend.value,
            "changePercentage": self.change_percentage,
        }


@dataclass
class UsageStats:
    """Statistics envelope over a window. ``overall_error_rate`` is 0-100."""

    period_start: str
    period_end: str
    total_invocations: int = 0
    total_successes: int = 0
    total_errors: int = 0
    overall_error_rate: float = 0.0
    tool_metrics: List[ToolMetrics] = field(default_factory=list)
    popularity_ranking: List[str] = field(default_factory=list)
    tools_needing_attention: List[str] = field(default_factory=list)
    trends: List[UsageTrend] = field(default_factory=list)
    unique_sessions: int = 0
    avg_invocations_per_session: float = 0.0
    generated_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalInvocations": self.total_invocations,
            "totalSuccesses": self.total_successes,
            "totalErrors": self.total_errors,
            "overallErrorRate": self.overall_error_rate,
            "toolMetrics": [metrics.to_dict() for metrics in self.tool_metrics],
            "popularityRanking": list(self.popularity_ranking),
            "toolsNeedingAttention": list(self.tools_needing_attention),
            "trends": [trend.to_dict() for trend in self.trends],
            "uniqueSessions": self.unique_sessions,
            "avgInvocationsPerSession": self.avg_invocations_per_session,
            "periodStart": self.period_start,
            "periodEnd": self.period_end,
            "generatedAt": self.generated_at,
        }


@dataclass
class PeriodCount:
    """One bucket of a period series. ``error_rate`` is 0-1."""

    period: str
    total_count: int = 0
    success_count: int = 0
    error_count: int = 0
    error_rate: float = 0.0
    avg_duration_ms: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "period": self.period,
            "totalCount": self.total_count,
            "successCount": self.success_count,
            "errorCount": self.error_count,
            "errorRate": self.error_rate,
            "avgDurationMs": self.avg_duration_ms,
        }


@dataclass
class ToolPeriodCounts:
    tool_name: str
    period_type: PeriodType
    periods: List[PeriodCount] = field(default_factory=list)
    trend: TrendDirection = TrendDirection.STABLE
    change_percentage: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "toolName": self.tool_name,
            "periodType": self.period_type.value,
            "periods": [period.to_dict() for period in self.periods],
            "trend": self.trend.value,
            "changePercentage": self.change_percentage,
        }


@dataclass
class AggregationSummary:
    """Headline numbers. ``overall_error_rate`` is 0-1, unlike ``UsageStats``."""

    total_invocations: int = 0
    total_successes: int = 0
    total_errors: int = 0
    overall_error_rate: float = 0.0
    overall_avg_duration_ms: float = 0.0
    unique_sessions: int = 0
    avg_invocations_per_session: float = 0.0
    most_popular_tool: Optional[str] = None
    highest_error_rate_tool: Optional[str] = None
    slowest_tool: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalInvocations": self.total_invocations,
            "totalSuccesses": self.total_successes,
            "totalErrors": self.total_errors,
            "overallErrorRate": self.overall_error_rate,
            "overallAvgDurationMs": self.overall_avg_duration_ms,
            "uniqueSessions": self.unique_sessions,
            "avgInvocationsPerSession": self.avg_invocations_per_session,
            "mostPopularTool": self.most_popular_tool,
            "highestErrorRateTool": self.highest_error_rate_tool,
            "slowestTool": self.slowest_tool,
        }


def safe_rate(part: float, total: float) -> float:
    """Ratio guarded against an empty denominator."""
    if total == 0:
        return 0.0
    return part / total


def percentile_95(values: List[float]) -> float:
    """Nearest-rank 95th percentile."""
    if not values:
        return 0.0
    ordered = sorted(values)
    index = math.ceil(len(ordered) * 0.95) - 1
    return ordered[max(0, index)]


def classify_trend(values: List[float]) -> Tuple[TrendDirection, float]:
    """
    Compare the mean of the first half of a series with the second half.

    The first half holds ``len // 2`` points. A zero first-half mean yields
    100% when the second half is non-zero. Changes beyond +/-10% count as
    increasing or decreasing.
    """
    if len(values) < MIN_TREND_DATA_POINTS:
        return TrendDirection.STABLE, 0.0

    midpoint = len(values) // 2
    first_half = values[:midpoint]
    second_half = values[midpoint:]
    first_avg = sum(first_half) / len(first_half)
    second_avg = sum(second_half) / len(second_half)

    if first_avg > 0:
        change = (second_avg - first_avg) / first_avg * 100
    elif second_avg > 0:
        change = 100.0
    else:
        change = 0.0

    if change > TREND_SIGNIFICANCE_THRESHOLD:
        return TrendDirection.INCREASING, change
    if change < -TREND_SIGNIFICANCE_THRESHOLD:
        return TrendDirection.DECREASING, change
    return TrendDirection.STABLE, change


def period_key(date: str, period_type: PeriodType) -> str:
    if period_type == PeriodType.WEEKLY:
        return week_id(date)
    if period_type == PeriodType.MONTHLY:
        return month_id(date)
    return date


class AggregationEngine:
    """
    On-demand statistics over the event store.

    Every query re-reads the requested window. Failures inside a query are
    logged and turned into the empty result for that query.
    """

    def __init__(self, store: EventStore):
        self.store = store

    def _resolve_window(
        self, start_date: Optional[str], end_date: Optional[str]
    ) -> Tuple[str, str]:
        return (
            start_date or days_ago(DEFAULT_LOOKBACK_DAYS),
            end_date or utc_today(),
        )

    async def _load_events(self, start: str, end: str) -> List[AnalyticsEvent]:
        result = await self.store.read_events(start, end)
        if not result.success:
            logger.warning("Event read failed, using empty window", error=result.error)
            return []
        return result.events

    async def get_usage_stats(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> UsageStats:
        """Full statistics envelope; the window defaults to the last 30 days."""
        start, end = self._resolve_window(start_date, end_date)
        try:
            events = await self._load_events(start, end)
            return self._build_usage_stats(events, start, end)
        except Exception as e:
            logger.error("Usage stats computation failed", error=str(e), exc_info=True)
            return UsageStats(period_start=start, period_end=end)

    def _build_usage_stats(
        self, events: List[AnalyticsEvent], start: str, end: str
    ) -> UsageStats:
        stats = UsageStats(period_start=start, period_end=end)
        sessions = set()
        durations: Dict[str, List[float]] = defaultdict(list)
        metrics: Dict[str, ToolMetrics] = {}

        for event in events:
            sessions.add(event.session_id)
            stats.total_invocations += 1

            tool = metrics.get(event.tool_name)
            if tool is None:
                tool = ToolMetrics(
                    tool_name=event.tool_name,
                    errors_by_category={category: 0 for category in ERROR_CATEGORIES},
                    first_invocation=event.timestamp,
                    last_invocation=event.timestamp,
                )
                metrics[event.tool_name] = tool

            tool.invocation_count += 1
            durations[event.tool_name].append(event.duration_ms)

            if event.success:
                stats.total_successes += 1
                tool.success_count += 1
            else:
                stats.total_errors += 1
                tool.error_count += 1
                category = event.error_category or ErrorCategory.UNKNOWN.value
                tool.errors_by_category[category] += 1

            if event.timestamp < tool.first_invocation:
                tool.first_invocation = event.timestamp
            if event.timestamp > tool.last_invocation:
                tool.last_invocation = event.timestamp

        for name, tool in metrics.items():
            values = durations[name]
            tool.error_rate = safe_rate(tool.error_count, tool.invocation_count) * 100
            tool.avg_duration_ms = safe_rate(sum(values), len(values))
            tool.min_duration_ms = min(values) if values else 0.0
            tool.max_duration_ms = max(values) if values else 0.0
            tool.p95_duration_ms = percentile_95(values)

        stats.tool_metrics = list(metrics.values())
        stats.popularity_ranking = [
            tool.tool_name
            for tool in sorted(stats.tool_metrics, key=lambda m: m.invocation_count, reverse=True)
        ]
        stats.tools_needing_attention = [
            tool.tool_name
            for tool in sorted(stats.tool_metrics, key=lambda m: m.error_rate, reverse=True)
            if tool.error_rate > ATTENTION_ERROR_RATE
        ]
        stats.overall_error_rate = safe_rate(stats.total_errors, stats.total_invocations) * 100
        stats.unique_sessions = len(sessions)
        stats.avg_invocations_per_session = safe_rate(stats.total_invocations, len(sessions))
        stats.trends = self._build_trends(events)
        return stats

    async def get_usage_trends(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> List[UsageTrend]:
        """Daily series per tool with trend classification."""
        start, end = self._resolve_window(start_date, end_date)
        try:
            events = await self._load_events(start, end)
            return self._build_trends(events)
        except Exception as e:
            logger.error("Usage trend computation failed", error=str(e), exc_info=True)
            return []

    def _build_trends(self, events: List[AnalyticsEvent]) -> List[UsageTrend]:
        series: Dict[str, Dict[str, TrendDataPoint]] = {}

        for event in events:
            by_date = series.setdefault(event.tool_name, {})
            point = by_date.get(event.date)
            if point is None:
                point = TrendDataPoint(date=event.date)
                by_date[event.date] = point
            point.count += 1
            if event.success:
                point.success_count += 1
            else:
                point.error_count += 1

        trends = []
        for tool_name, by_date in series.items():
            points = sorted(by_date.values(), key=lambda p: p.date)
            direction, change = classify_trend([p.count for p in points])
            trends.append(
                UsageTrend(
                    tool_name=tool_name,
                    data_points=points,
                    trend=direction,
                    change_percentage=change,
                )
            )
        return trends

    async def get_period_counts(
        self,
        period_type: PeriodType,
        tool_name: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[ToolPeriodCounts]:
        """
        Bucket events per tool into daily, weekly or monthly periods.

        Args:
            period_type: Bucket granularity
            tool_name: Restrict to one tool
            start_date: First date (defaults to 30 days ago)
            end_date: Last date (defaults to today)

        Returns:
            One series per tool, periods in ascending key order
        """
        period_type = PeriodType(period_type)
        start, end = self._resolve_window(start_date, end_date)
        try:
            events = await self._load_events(start, end)
        except Exception as e:
            logger.error("Period count read failed", error=str(e), exc_info=True)
            return []

        buckets: Dict[str, Dict[str, PeriodCount]] = {}
        durations: Dict[Tuple[str, str], List[float]] = defaultdict(list)

        for event in events:
            if tool_name and event.tool_name != tool_name:
                continue
            key = period_key(event.date, period_type)
            periods = buckets.setdefault(event.tool_name, {})
            bucket = periods.get(key)
            if bucket is None:
                bucket = PeriodCount(period=key)
                periods[key] = bucket
            bucket.total_count += 1
            if event.success:
                bucket.success_count += 1
            else:
                bucket.error_count += 1
            durations[(event.tool_name, key)].append(event.duration_ms)

        results = []
        for name, periods in buckets.items():
            ordered = sorted(periods.values(), key=lambda p: p.period)
            for bucket in ordered:
                values = durations[(name, bucket.period)]
                bucket.error_rate = safe_rate(bucket.error_count, bucket.total_count)
                bucket.avg_duration_ms = safe_rate(sum(values), len(values))
            direction, change = classify_trend([p.total_count for p in ordered])
            results.append(
                ToolPeriodCounts(
                    tool_name=name,
                    period_type=period_type,
                    periods=ordered,
                    trend=direction,
                    change_percentage=change,
                )
            )
        return results

    async def get_daily_counts(
        self,
        tool_name: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[ToolPeriodCounts]:
        return await self.get_period_counts(PeriodType.DAILY, tool_name, start_date, end_date)

    async def get_weekly_counts(
        self,
        tool_name: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[ToolPeriodCounts]:
        return await self.get_period_counts(PeriodType.WEEKLY, tool_name, start_date, end_date)

    async def get_monthly_counts(
        self,
        tool_name: Optional[str] = None,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[ToolPeriodCounts]:
        return await self.get_period_counts(PeriodType.MONTHLY, tool_name, start_date, end_date)

    async def get_summary(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> AggregationSummary:
        """Condensed headline numbers with a 0-1 overall error rate."""
        stats = await self.get_usage_stats(start_date, end_date)
        try:
            with_errors = [m for m in stats.tool_metrics if m.error_count > 0]
            invoked = [m for m in stats.tool_metrics if m.invocation_count > 0]
            weighted_duration = sum(
                m.avg_duration_ms * m.invocation_count for m in stats.tool_metrics
            )

            return AggregationSummary(
                total_invocations=stats.total_invocations,
                total_successes=stats.total_successes,
                total_errors=stats.total_errors,
                overall_error_rate=stats.overall_error_rate / 100,
                overall_avg_duration_ms=safe_rate(weighted_duration, stats.total_invocations),
                unique_sessions=stats.unique_sessions,
                avg_invocations_per_session=stats.avg_invocations_per_session,
                most_popular_tool=stats.popularity_ranking[0] if stats.popularity_ranking else None,
                highest_error_rate_tool=(
                    max(with_errors, key=lambda m: m.error_rate).tool_name if with_errors else None
                ),
                slowest_tool=(
                    max(invoked, key=lambda m: m.avg_duration_ms).tool_name if invoked else None
                ),
            )
        except Exception as e:
            logger.error("Summary computation failed", error=str(e), exc_info=True)
            return AggregationSummary()

    async def get_tool_metrics(
        self,
        tool_name: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> Optional[ToolMetrics]:
        """Metrics of one tool, or None when it has no events in the window."""
        stats = await self.get_usage_stats(start_date, end_date)
        for metrics in stats.tool_metrics:
            if metrics.tool_name == tool_name:
                return metrics
        return None

    async def get_popularity_ranking(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Tools by invocation count with their share of all invocations."""
        stats = await self.get_usage_stats(start_date, end_date)
        ranked = sorted(stats.tool_metrics, key=lambda m: m.invocation_count, reverse=True)
        ranking = [
            {
                "toolName": m.tool_name,
                "count": m.invocation_count,
                "percentage": safe_rate(m.invocation_count, stats.total_invocations) * 100,
            }
            for m in ranked
        ]
        return ranking[:limit] if limit else ranking

    async def get_error_rates(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Per-tool error rates (percentages), highest first."""
        stats = await self.get_usage_stats(start_date, end_date)
        rates = [
            {"toolName": m.tool_name, "errorRate": m.error_rate, "errorCount": m.error_count}
            for m in sorted(stats.tool_metrics, key=lambda m: m.error_rate, reverse=True)
        ]
        return rates[:limit] if limit else rates

    async def get_response_times(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Per-tool latency figures, slowest average first."""
        stats = await self.get_usage_stats(start_date, end_date)
        times = [
            {
                "toolName": m.tool_name,
                "avgDurationMs": m.avg_duration_ms,
                "minDurationMs": m.min_duration_ms,
                "maxDurationMs": m.max_duration_ms,
                "p95DurationMs": m.p95_duration_ms,
            }
            for m in sorted(stats.tool_metrics, key=lambda m: m.avg_duration_ms, reverse=True)
        ]
        return times[:limit] if limit else times
