"""
Error tracking over recorded events.

Supplies per-tool error breakdowns, problematic-tool lists and error-rate
series. Rates in this module are fractions in the 0-1 range.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

import structlog

from ..utils.dates import days_ago, utc_now_iso, utc_today
from .aggregator import DEFAULT_LOOKBACK_DAYS, TrendDirection, classify_trend, safe_rate
from .models import ERROR_CATEGORIES, AnalyticsEvent, ErrorCategory
from .storage import EventStore

logger = structlog.get_logger(__name__)

CRITICAL_ERROR_RATE = 0.25
WARNING_ERROR_RATE = 0.10
DEFAULT_PROBLEM_THRESHOLD = 0.10

SEVERITY_ORDER = {"critical": 0, "warning": 1, "info": 2}


def empty_category_counts() -> Dict[str, int]:
    return {category: 0 for category in ERROR_CATEGORIES}


def most_common_category(counts: Dict[str, int]) -> Optional[str]:
    """Category with the highest count; ties go to the earlier category."""
    best: Optional[str] = None
    best_count = 0
    for category in ERROR_CATEGORIES:
        if counts.get(category, 0) > best_count:
            best_count = counts[category]
            best = category
    return best


def severity_for_rate(error_rate: float) -> str:
    if error_rate >= CRITICAL_ERROR_RATE:
        return "critical"
    if error_rate >= WARNING_ERROR_RATE:
        return "warning"
    return "info"


@dataclass
class ToolErrorBreakdown:
    tool_name: str
    total_invocations: int = 0
    total_errors: int = 0
    error_rate: float = 0.0
    errors_by_category: Dict[str, int] = field(default_factory=empty_category_counts)
    most_common_error_category: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "toolName": self.tool_name,
            "totalInvocations": self.total_invocations,
            "totalErrors": self.total_errors,
            "errorRate": self.error_rate,
            "errorsByCategory": dict(self.errors_by_category),
            "mostCommonErrorCategory": self.most_common_error_category,
        }


@dataclass
class ErrorStats:
    period_start: str
    period_end: str
    total_invocations: int = 0
    total_errors: int = 0
    overall_error_rate: float = 0.0
    by_tool: List[ToolErrorBreakdown] = field(default_factory=list)
    by_category: Dict[str, int] = field(default_factory=empty_category_counts)
    tools_by_error_rate: List[str] = field(default_factory=list)
    tools_by_error_count: List[str] = field(default_factory=list)
    generated_at: str = field(default_factory=utc_now_iso)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalInvocations": self.total_invocations,
            "totalErrors": self.total_errors,
            "overallErrorRate": self.overall_error_rate,
            "byTool": [tool.to_dict() for tool in self.by_tool],
            "byCategory": dict(self.by_category),
            "toolsByErrorRate": list(self.tools_by_error_rate),
            "toolsByErrorCount": list(self.tools_by_error_count),
            "periodStart": self.period_start,
            "periodEnd": self.period_end,
            "generatedAt": self.generated_at,
        }


@dataclass
class ProblematicTool:
    """A tool whose error rate crossed the requested threshold."""

    tool_name: str
    error_rate: float
    error_count: int
    invocation_count: int
    most_common_error_category: Optional[str]
    severity: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "toolName": self.tool_name,
            "errorRate": self.error_rate,
            "errorCount": self.error_count,
            "invocationCount": self.invocation_count,
            "mostCommonErrorCategory": self.most_common_error_category,
            "severity": self.severity,
        }


@dataclass
class ErrorDataPoint:
    date: str
    total_invocations: int = 0
    total_errors: int = 0
    error_rate: float = 0.0
    by_category: Dict[str, int] = field(default_factory=empty_category_counts)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "date": self.date,
            "totalInvocations": self.total_invocations,
            "totalErrors": self.total_errors,
            "errorRate": self.error_rate,
            "byCategory": dict(self.by_category),
        }


@dataclass
class ErrorTrend:
    data_points: List[ErrorDataPoint] = field(default_factory=list)
    trend: TrendDirection = TrendDirection.STABLE
    change_percentage: float = 0.0
    average_error_rate: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dataPoints": [point.to_dict() for point in self.data_points],
            "trend": self.trend.value,
            "changePercentage": self.change_percentage,
            "averageErrorRate": self.average_error_rate,
        }


class ErrorTracker:
    """Error statistics computed from the event store on demand."""

    def __init__(self, store: EventStore):
        self.store = store

    async def _load(
        self, start_date: Optional[str], end_date: Optional[str]
    ) -> Tuple[str, str, List[AnalyticsEvent]]:
        start = start_date or days_ago(DEFAULT_LOOKBACK_DAYS)
        end = end_date or utc_today()
        result = await self.store.read_events(start, end)
        return start, end, result.events if result.success else []

    async def get_error_stats(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> ErrorStats:
        """Error totals overall, per tool and per category."""
        start, end, events = await self._load(start_date, end_date)
        stats = ErrorStats(period_start=start, period_end=end)

        try:
            tools: Dict[str, ToolErrorBreakdown] = {}
            for event in events:
                stats.total_invocations += 1
                tool = tools.get(event.tool_name)
                if tool is None:
                    tool = ToolErrorBreakdown(tool_name=event.tool_name)
                    tools[event.tool_name] = tool
                tool.total_invocations += 1

                if not event.success:
                    category = event.error_category or ErrorCategory.UNKNOWN.value
                    stats.total_errors += 1
                    stats.by_category[category] += 1
                    tool.total_errors += 1
                    tool.errors_by_category[category] += 1

            for tool in tools.values():
                tool.error_rate = safe_rate(tool.total_errors, tool.total_invocations)
                tool.most_common_error_category = most_common_category(tool.errors_by_category)

            stats.overall_error_rate = safe_rate(stats.total_errors, stats.total_invocations)
            stats.by_tool = sorted(tools.values(), key=lambda t: t.error_rate, reverse=True)
            stats.tools_by_error_rate = [tool.tool_name for tool in stats.by_tool]
            stats.tools_by_error_count = [
                tool.tool_name
                for tool in sorted(tools.values(), key=lambda t: t.total_errors, reverse=True)
            ]
        except Exception as e:
            logger.error("Error stats computation failed", error=str(e), exc_info=True)
            return ErrorStats(period_start=start, period_end=end)

        return stats

    async def get_tool_error_breakdown(
        self,
        tool_name: str,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> Optional[ToolErrorBreakdown]:
        stats = await self.get_error_stats(start_date, end_date)
        for tool in stats.by_tool:
            if tool.tool_name == tool_name:
                return tool
        return None

    async def get_problematic_tools(
        self,
        threshold: float = DEFAULT_PROBLEM_THRESHOLD,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> List[ProblematicTool]:
        """
        Tools whose error rate reaches the threshold.

        Args:
            threshold: Minimum error rate as a fraction (0-1)
            start_date: First date (defaults to 30 days ago)
            end_date: Last date (defaults to today)

        Returns:
            Problematic tools, most severe first, then by error rate
        """
        stats = await self.get_error_stats(start_date, end_date)
        problems = [
            ProblematicTool(
                tool_name=tool.tool_name,
                error_rate=tool.error_rate,
                error_count=tool.total_errors,
                invocation_count=tool.total_invocations,
                most_common_error_category=tool.most_common_error_category,
                severity=severity_for_rate(tool.error_rate),
            )
            for tool in stats.by_tool
            if tool.error_rate >= threshold and tool.total_errors > 0
        ]
        problems.sort(key=lambda p: (SEVERITY_ORDER[p.severity], -p.error_rate))
        return problems

    async def get_error_trend(
        self,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
        tool_name: Optional[str] = None,
    ) -> ErrorTrend:
        """Daily error-rate series, optionally for a single tool."""
        _, _, events = await self._load(start_date, end_date)

        try:
            points: Dict[str, ErrorDataPoint] = {}
            for event in events:
                if tool_name and event.tool_name != tool_name:
                    continue
                point = points.get(event.date)
                if point is None:
                    point = ErrorDataPoint(date=event.date)
                    points[event.date] = point
                point.total_invocations += 1
                if not event.success:
                    point.total_errors += 1
                    point.by_category[event.error_category or ErrorCategory.UNKNOWN.value] += 1

            ordered = sorted(points.values(), key=lambda p: p.date)
            for point in ordered:
                point.error_rate = safe_rate(point.total_errors, point.total_invocations)

            direction, change = classify_trend([p.error_rate for p in ordered])
            return ErrorTrend(
                data_points=ordered,
                trend=direction,
                change_percentage=change,
                average_error_rate=safe_rate(
                    sum(p.total_errors for p in ordered),
                    sum(p.total_invocations for p in ordered),
                ),
            )
        except Exception as e:
            logger.error("Error trend computation failed", error=str(e), exc_info=True)
            return ErrorTrend()

    async def get_errors_by_category(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> Dict[str, int]:
        stats = await self.get_error_stats(start_date, end_date)
        return stats.by_category

    async def has_high_error_rate(
        self,
        tool_name: str,
        threshold: float = DEFAULT_PROBLEM_THRESHOLD,
        start_date: Optional[str] = None,
        end_date: Optional[str] = None,
    ) -> bool:
        breakdown = await self.get_tool_error_breakdown(tool_name, start_date, end_date)
        if breakdown is None:
            return False
        return breakdown.error_rate >= threshold

    async def get_summary(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> Dict[str, Any]:
        """Short error digest for display."""
        stats = await self.get_error_stats(start_date, end_date)
        trend = await self.get_error_trend(start_date, end_date)

        most_problematic = None
        if stats.by_tool and stats.by_tool[0].total_errors > 0:
            most_problematic = stats.by_tool[0].tool_name

        return {
            "totalErrors": stats.total_errors,
            "overallErrorRate": f"{stats.overall_error_rate * 100:.1f}%",
            "mostProblematicTool": most_problematic,
            "mostCommonErrorType": most_common_category(stats.by_category),
            "trend": trend.trend.value,
        }
