"""
Insights generation for usage analytics.

Evaluates threshold rules over aggregated statistics and error data to
produce severity-ranked findings about popularity, reliability, performance
and trends, plus condensed summaries and a plain-text report.
"""

import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

import structlog

from ..toolnames import TOOL_NAMES, display_name, usage_suggestion
from ..utils.dates import days_ago, utc_now_iso, utc_today
from .aggregator import DEFAULT_LOOKBACK_DAYS, AggregationEngine, TrendDirection, UsageStats
from .errors import WARNING_ERROR_RATE, ErrorTracker

logger = structlog.get_logger(__name__)

DEFAULT_MIN_INVOCATIONS = 10
DEFAULT_SLOW_RESPONSE_MS = 1000
DEFAULT_TREND_CHANGE_PERCENT = 20

SLOW_WARNING_MULTIPLIER = 3
FAST_TOOL_MS = 100
UNDERUTILIZED_SHARE_PERCENT = 5
CONCENTRATION_SHARE_PERCENT = 80
CONCENTRATION_MIN_TOOLS = 3
MIN_TREND_POINTS = 2


class InsightSeverity(str, Enum):
    CRITICAL = "critical"
    WARNING = "warning"
    INFO = "info"


class InsightCategory(str, Enum):
    POPULARITY = "popularity"
    RELIABILITY = "reliability"
    PERFORMANCE = "performance"
    TREND = "trend"


SEVERITY_RANK = {
    InsightSeverity.CRITICAL: 0,
    InsightSeverity.WARNING: 1,
    InsightSeverity.INFO: 2,
}

INSIGHT_ICONS: Dict[InsightCategory, Dict[InsightSeverity, str]] = {
    InsightCategory.POPULARITY: {
        InsightSeverity.INFO: "⭐",
        InsightSeverity.WARNING: "⭐",
        InsightSeverity.CRITICAL: "⭐",
    },
    InsightCategory.PERFORMANCE: {
        InsightSeverity.INFO: "⏱️",
        InsightSeverity.WARNING: "⚠️",
        InsightSeverity.CRITICAL: "\U0001f6a8",
    },
    InsightCategory.RELIABILITY: {
        InsightSeverity.INFO: "ℹ️",
        InsightSeverity.WARNING: "⚠️",
        InsightSeverity.CRITICAL: "❌",
    },
    InsightCategory.TREND: {
        InsightSeverity.INFO: "\U0001f4c8",
        InsightSeverity.WARNING: "\U0001f4c9",
        InsightSeverity.CRITICAL: "\U0001f4c9",
    },
}

REPORT_SECTIONS = [
    InsightCategory.RELIABILITY,
    InsightCategory.PERFORMANCE,
    InsightCategory.POPULARITY,
    InsightCategory.TREND,
]


def format_percentage(value: float) -> str:
    return f"{value:.1f}%"


def format_duration(ms: float) -> str:
    if ms < 1000:
        return f"{round(ms)}ms"
    return f"{ms / 1000:.2f}s"


def percent_change(first: float, last: float) -> float:
    """Relative change in percent; from zero to anything positive counts as 100."""
    if first > 0:
        return (last - first) / first * 100
    if last > 0:
        return 100.0
    return 0.0


@dataclass
class AnalyticsInsight:
    """One generated finding."""

    category: InsightCategory
    severity: InsightSeverity
    title: str
    description: str
    affected_tools: List[str] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)
    recommendation: Optional[str] = None
    id: str = ""
    generated_at: str = field(default_factory=utc_now_iso)

    def __post_init__(self) -> None:
        if not self.id:
            tool_part = f"-{self.affected_tools[0]}" if self.affected_tools else ""
            self.id = f"{self.category.value}{tool_part}-{uuid.uuid4().hex[:12]}"

    def to_dict(self) -> Dict[str, Any]:
        result = {
            "id": self.id,
            "category": self.category.value,
            "severity": self.severity.value,
            "title": self.title,
            "description": self.description,
            "affectedTools": list(self.affected_tools),
            "metrics": dict(self.metrics),
            "generatedAt": self.generated_at,
        }
        if self.recommendation:
            result["recommendation"] = self.recommendation
        return result


@dataclass
class InsightsReport:
    """All insights over a window, most severe first."""

    period_start: str
    period_end: str
    insights: List[AnalyticsInsight] = field(default_factory=list)
    critical_count: int = 0
    warning_count: int = 0
    info_count: int = 0
    generated_at: str = field(default_factory=utc_now_iso)

    @property
    def total_insights(self) -> int:
        return len(self.insights)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "insights": [insight.to_dict() for insight in self.insights],
            "summary": {
                "totalInsights": self.total_insights,
                "criticalCount": self.critical_count,
                "warningCount": self.warning_count,
                "infoCount": self.info_count,
            },
            "periodStart": self.period_start,
            "periodEnd": self.period_end,
            "generatedAt": self.generated_at,
        }


@dataclass
class InsightsSummary:
    total_insights: int = 0
    critical_count: int = 0
    warning_count: int = 0
    info_count: int = 0
    most_popular_tool: Optional[str] = None
    tool_needing_attention: Optional[str] = None
    health_status: str = "healthy"
    one_liner: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "totalInsights": self.total_insights,
            "criticalCount": self.critical_count,
            "warningCount": self.warning_count,
            "infoCount": self.info_count,
            "mostPopularTool": self.most_popular_tool,
            "toolNeedingAttention": self.tool_needing_attention,
            "healthStatus": self.health_status,
            "oneLiner": self.one_liner,
        }


@dataclass
class FormattedInsight:
    """Display projection of an insight."""

    icon: str
    title: str
    description: str
    severity: str
    category: str
    recommendation: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "icon": self.icon,
            "title": self.title,
            "description": self.description,
            "recommendation": self.recommendation,
            "severity": self.severity,
            "category": self.category,
        }


def determine_health_status(critical_count: int, warning_count: int) -> str:
    if critical_count > 0:
        return "critical"
    if warning_count > 0:
        return "needs-attention"
    return "healthy"


class InsightsGenerator:
    """
    Rule-based insights over aggregated usage statistics.

    Every call recomputes from the aggregation engine and the error tracker.
    Failures inside a rule family are logged and yield no insights for it.
    """

    def __init__(
        self,
        aggregator: AggregationEngine,
        error_tracker: ErrorTracker,
        min_invocations_for_insight: int = DEFAULT_MIN_INVOCATIONS,
        slow_response_threshold: float = DEFAULT_SLOW_RESPONSE_MS,
        trend_change_threshold: float = DEFAULT_TREND_CHANGE_PERCENT,
    ):
        """
        Initialize the insights generator.

        Args:
            aggregator: Source of usage statistics
            error_tracker: Source of problematic tools and error trends
            min_invocations_for_insight: Invocations needed before a scope yields findings
            slow_response_threshold: Average duration (ms) considered slow
            trend_change_threshold: Percent change considered a significant trend
        """
        self.aggregator = aggregator
        self.error_tracker = error_tracker
        self.min_invocations = min_invocations_for_insight
        self.slow_response_threshold = slow_response_threshold
        self.trend_change_threshold = trend_change_threshold

    @classmethod
    def from_config(
        cls, aggregator: AggregationEngine, error_tracker: ErrorTracker, config
    ) -> "InsightsGenerator":
        """Build a generator from an ``InsightsConfig``."""
        return cls(
            aggregator,
            error_tracker,
            min_invocations_for_insight=config.min_invocations_for_insight,
            slow_response_threshold=config.slow_response_threshold,
            trend_change_threshold=config.trend_change_threshold,
        )

    def _resolve_window(
        self, start_date: Optional[str], end_date: Optional[str]
    ) -> Tuple[str, str]:
        return start_date or days_ago(DEFAULT_LOOKBACK_DAYS), end_date or utc_today()

    # Popularity

    async def get_popularity_insights(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> List[AnalyticsInsight]:
        """Most/least used tools, unexplored tools and usage concentration."""
        start, end = self._resolve_window(start_date, end_date)
        stats = await self.aggregator.get_usage_stats(start, end)
        try:
            return self._popularity_insights(stats)
        except Exception as e:
            logger.error("Popularity rules failed", error=str(e), exc_info=True)
            return []

    def _popularity_insights(self, stats: UsageStats) -> List[AnalyticsInsight]:
        insights: List[AnalyticsInsight] = []
        total = stats.total_invocations
        if total == 0:
            return insights

        significant = sorted(
            (m for m in stats.tool_metrics if m.invocation_count >= self.min_invocations),
            key=lambda m: m.invocation_count,
            reverse=True,
        )

        if not significant:
            insights.append(
                AnalyticsInsight(
                    category=InsightCategory.POPULARITY,
                    severity=InsightSeverity.INFO,
                    title="Collecting Usage Data",
                    description=(
                        f"Analytics has recorded {total} tool invocations. "
                        "Continue using the tools to generate more insights."
                    ),
                    metrics={"totalInvocations": total, "toolsUsed": len(stats.tool_metrics)},
                    recommendation=(
                        "Use the thinking tools in your workflows to generate meaningful insights."
                    ),
                )
            )
            return insights

        top = significant[0]
        top_share = top.invocation_count / total * 100
        insights.append(
            AnalyticsInsight(
                category=InsightCategory.POPULARITY,
                severity=InsightSeverity.INFO,
                title="Most Popular Tool",
                description=(
                    f"{display_name(top.tool_name)} is your most-used tool, accounting for "
                    f"{format_percentage(top_share)} of all invocations "
                    f"({top.invocation_count} uses)."
                ),
                affected_tools=[top.tool_name],
                metrics={
                    "invocationCount": top.invocation_count,
                    "percentageOfTotal": top_share,
                    "totalInvocations": total,
                },
            )
        )

        if len(significant) > 1:
            least = significant[-1]
            least_share = least.invocation_count / total * 100
            if least_share < UNDERUTILIZED_SHARE_PERCENT:
                insights.append(
                    AnalyticsInsight(
                        category=InsightCategory.POPULARITY,
                        severity=InsightSeverity.INFO,
                        title="Underutilized Tool",
                        description=(
                            f"{display_name(least.tool_name)} is rarely used "
                            f"({format_percentage(least_share)} of invocations). It might offer "
                            "valuable capabilities you're not leveraging."
                        ),
                        affected_tools=[least.tool_name],
                        metrics={
                            "invocationCount": least.invocation_count,
                            "percentageOfTotal": least_share,
                        },
                        recommendation=(
                            f"Try using {least.tool_name} for "
                            f"{usage_suggestion(least.tool_name)}."
                        ),
                    )
                )

        used = {m.tool_name for m in stats.tool_metrics}
        unexplored = [name for name in TOOL_NAMES if name not in used]
        if unexplored:
            insights.append(
                AnalyticsInsight(
                    category=InsightCategory.POPULARITY,
                    severity=InsightSeverity.INFO,
                    title="Unexplored Tools",
                    description=(
                        f"{len(unexplored)} tools haven't been used yet: "
                        f"{', '.join(unexplored)}. Each offers unique thinking approaches."
                    ),
                    affected_tools=unexplored,
                    metrics={"unusedToolCount": len(unexplored)},
                    recommendation="Explore these tools to expand your analytical toolkit.",
                )
            )

        if len(stats.tool_metrics) >= CONCENTRATION_MIN_TOOLS:
            ranked = sorted(stats.tool_metrics, key=lambda m: m.invocation_count, reverse=True)
            top_two = ranked[:2]
            top_two_share = sum(m.invocation_count for m in top_two) / total * 100
            if top_two_share > CONCENTRATION_SHARE_PERCENT:
                insights.append(
                    AnalyticsInsight(
                        category=InsightCategory.POPULARITY,
                        severity=InsightSeverity.INFO,
                        title="Concentrated Usage Pattern",
                        description=(
                            f"2 tools account for {format_percentage(top_two_share)} of all "
                            "usage. Consider diversifying your approach."
                        ),
                        affected_tools=[m.tool_name for m in top_two],
                        metrics={"topToolsCount": 2, "topToolsPercentage": top_two_share},
                        recommendation=(
                            "Different thinking tools are suited for different problem types. "
                            "Try varying your approach."
                        ),
                    )
                )

        return insights

    # Reliability

    async def get_reliability_insights(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> List[AnalyticsInsight]:
        """Per-tool error rate findings, or a single healthy notice."""
        start, end = self._resolve_window(start_date, end_date)
        stats = await self.aggregator.get_usage_stats(start, end)
        try:
            return await self._reliability_insights(stats, start, end)
        except Exception as e:
            logger.error("Reliability rules failed", error=str(e), exc_info=True)
            return []

    async def _reliability_insights(
        self, stats: UsageStats, start: str, end: str
    ) -> List[AnalyticsInsight]:
        insights: List[AnalyticsInsight] = []
        problematic = await self.error_tracker.get_problematic_tools(WARNING_ERROR_RATE, start, end)

        for tool in problematic:
            if tool.invocation_count < self.min_invocations:
                continue

            error_percentage = tool.error_rate * 100
            if tool.severity == "critical":
                severity = InsightSeverity.CRITICAL
                title = "Critical Error Rate"
                description = (
                    f"{display_name(tool.tool_name)} has a {format_percentage(error_percentage)} "
                    f"error rate ({tool.error_count} errors out of {tool.invocation_count} "
                    "invocations). This significantly impacts reliability."
                )
                recommendation = (
                    "Investigate error patterns immediately. Check if there are issues with "
                    "input validation or edge cases."
                )
            else:
                severity = InsightSeverity.WARNING
                title = "Elevated Error Rate"
                description = (
                    f"{display_name(tool.tool_name)} has a {format_percentage(error_percentage)} "
                    f"error rate ({tool.error_count} errors). This is above the recommended "
                    "threshold."
                )
                recommendation = "Review recent error patterns to identify common causes."

            if tool.most_common_error_category:
                description += f" Most errors are {tool.most_common_error_category} errors."

            insights.append(
                AnalyticsInsight(
                    category=InsightCategory.RELIABILITY,
                    severity=severity,
                    title=title,
                    description=description,
                    affected_tools=[tool.tool_name],
                    metrics={
                        "errorRate": error_percentage,
                        "errorCount": tool.error_count,
                        "invocationCount": tool.invocation_count,
                        "mostCommonErrorCategory": tool.most_common_error_category or "unknown",
                    },
                    recommendation=recommendation,
                )
            )

        if not problematic and stats.total_invocations >= self.min_invocations:
            insights.append(
                AnalyticsInsight(
                    category=InsightCategory.RELIABILITY,
                    severity=InsightSeverity.INFO,
                    title="Healthy Error Rates",
                    description=(
                        "All tools are operating within acceptable error rate thresholds "
                        f"(< {format_percentage(WARNING_ERROR_RATE * 100)}). Overall error rate "
                        f"is {format_percentage(stats.overall_error_rate)}."
                    ),
                    metrics={
                        "overallErrorRate": stats.overall_error_rate,
                        "threshold": WARNING_ERROR_RATE * 100,
                    },
                )
            )

        return insights

    # Performance

    async def get_performance_insights(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> List[AnalyticsInsight]:
        """Slow tools and the fastest tool."""
        start, end = self._resolve_window(start_date, end_date)
        stats = await self.aggregator.get_usage_stats(start, end)
        try:
            return self._performance_insights(stats)
        except Exception as e:
            logger.error("Performance rules failed", error=str(e), exc_info=True)
            return []

    def _performance_insights(self, stats: UsageStats) -> List[AnalyticsInsight]:
        insights: List[AnalyticsInsight] = []
        if stats.total_invocations < self.min_invocations:
            return insights

        qualifying = [m for m in stats.tool_metrics if m.invocation_count >= self.min_invocations]

        for tool in qualifying:
            if tool.avg_duration_ms <= self.slow_response_threshold:
                continue
            limit = self.slow_response_threshold * SLOW_WARNING_MULTIPLIER
            is_warning = tool.avg_duration_ms > limit
            insights.append(
                AnalyticsInsight(
                    category=InsightCategory.PERFORMANCE,
                    severity=InsightSeverity.WARNING if is_warning else InsightSeverity.INFO,
                    title="Slow Response Time" if is_warning else "Response Time Notice",
                    description=(
                        f"{display_name(tool.tool_name)} has an average response time of "
                        f"{format_duration(tool.avg_duration_ms)} "
                        f"(P95: {format_duration(tool.p95_duration_ms)}). "
                        "This may impact user experience."
                    ),
                    affected_tools=[tool.tool_name],
                    metrics={
                        "avgDurationMs": tool.avg_duration_ms,
                        "p95DurationMs": tool.p95_duration_ms,
                        "minDurationMs": tool.min_duration_ms,
                        "maxDurationMs": tool.max_duration_ms,
                    },
                    recommendation=(
                        "Complex mental models and multi-perspective tools naturally take "
                        "longer. Consider this expected behavior for thorough analysis."
                    ),
                )
            )

        if qualifying:
            fastest = min(qualifying, key=lambda m: m.avg_duration_ms)
            if fastest.avg_duration_ms < FAST_TOOL_MS:
                insights.append(
                    AnalyticsInsight(
                        category=InsightCategory.PERFORMANCE,
                        severity=InsightSeverity.INFO,
                        title="Fastest Tool",
                        description=(
                            f"{display_name(fastest.tool_name)} is your fastest tool with an "
                            f"average response time of {format_duration(fastest.avg_duration_ms)}."
                        ),
                        affected_tools=[fastest.tool_name],
                        metrics={"avgDurationMs": fastest.avg_duration_ms},
                    )
                )

        return insights

    # Trend

    async def get_trend_insights(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> List[AnalyticsInsight]:
        """Growing or declining tool usage and per-tool error rate movement."""
        start, end = self._resolve_window(start_date, end_date)
        stats = await self.aggregator.get_usage_stats(start, end)
        try:
            return await self._trend_insights(stats, start, end)
        except Exception as e:
            logger.error("Trend rules failed", error=str(e), exc_info=True)
            return []

    async def _trend_insights(
        self, stats: UsageStats, start: str, end: str
    ) -> List[AnalyticsInsight]:
        insights: List[AnalyticsInsight] = []
        if stats.total_invocations < self.min_invocations:
            return insights

        for trend in stats.trends:
            # A single period never establishes a trend
            if len(trend.data_points) < MIN_TREND_POINTS:
                continue
            if sum(p.count for p in trend.data_points) < self.min_invocations:
                continue
            if abs(trend.change_percentage) < self.trend_change_threshold:
                continue

            metrics = {
                "changePercentage": trend.change_percentage,
                "trend": trend.trend.value,
                "dataPoints": len(trend.data_points),
            }
            if trend.trend == TrendDirection.INCREASING:
                insights.append(
                    AnalyticsInsight(
                        category=InsightCategory.TREND,
                        severity=InsightSeverity.INFO,
                        title="Growing Tool Usage",
                        description=(
                            f"{display_name(trend.tool_name)} usage has increased by "
                            f"{format_percentage(trend.change_percentage)} over the analysis "
                            "period. This tool is becoming more central to your workflow."
                        ),
                        affected_tools=[trend.tool_name],
                        metrics=metrics,
                    )
                )
            elif trend.trend == TrendDirection.DECREASING:
                insights.append(
                    AnalyticsInsight(
                        category=InsightCategory.TREND,
                        severity=InsightSeverity.INFO,
                        title="Declining Tool Usage",
                        description=(
                            f"{display_name(trend.tool_name)} usage has decreased by "
                            f"{format_percentage(abs(trend.change_percentage))} over the analysis "
                            "period. You might be shifting to other approaches."
                        ),
                        affected_tools=[trend.tool_name],
                        metrics=metrics,
                        recommendation=(
                            "Consider if this tool still serves your needs or if you've found "
                            "better alternatives."
                        ),
                    )
                )

        for tool in stats.tool_metrics:
            if tool.invocation_count < self.min_invocations:
                continue
            insight = await self._error_trend_insight(tool.tool_name, start, end)
            if insight:
                insights.append(insight)

        return insights

    async def _error_trend_insight(
        self, tool_name: str, start: str, end: str
    ) -> Optional[AnalyticsInsight]:
        error_trend = await self.error_tracker.get_error_trend(start, end, tool_name)
        points = error_trend.data_points
        if len(points) < MIN_TREND_POINTS:
            return None

        first_rate = points[0].error_rate
        last_rate = points[-1].error_rate
        change = percent_change(first_rate, last_rate)
        metrics = {
            "changePercentage": change,
            "firstErrorRate": first_rate * 100,
            "lastErrorRate": last_rate * 100,
            "averageErrorRate": error_trend.average_error_rate * 100,
        }

        if change > self.trend_change_threshold:
            return AnalyticsInsight(
                category=InsightCategory.TREND,
                severity=InsightSeverity.WARNING,
                title="Increasing Error Trend",
                description=(
                    f"{display_name(tool_name)} error rate rose from "
                    f"{format_percentage(first_rate * 100)} on {points[0].date} to "
                    f"{format_percentage(last_rate * 100)} on {points[-1].date}. "
                    "This trend should be monitored."
                ),
                affected_tools=[tool_name],
                metrics=metrics,
                recommendation="Review recent changes and error patterns to identify the cause.",
            )
        if change < -self.trend_change_threshold:
            return AnalyticsInsight(
                category=InsightCategory.TREND,
                severity=InsightSeverity.INFO,
                title="Improving Error Trend",
                description=(
                    f"{display_name(tool_name)} error rate fell from "
                    f"{format_percentage(first_rate * 100)} on {points[0].date} to "
                    f"{format_percentage(last_rate * 100)} on {points[-1].date}."
                ),
                affected_tools=[tool_name],
                metrics=metrics,
            )
        return None

    # Reports

    async def generate_report(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> InsightsReport:
        """
        Run every rule family over one window and rank the results.

        Insights are stably sorted critical, then warning, then info.
        """
        start, end = self._resolve_window(start_date, end_date)
        report, _ = await self._build_report(start, end)
        return report

    async def _build_report(self, start: str, end: str) -> Tuple[InsightsReport, UsageStats]:
        stats = await self.aggregator.get_usage_stats(start, end)
        insights: List[AnalyticsInsight] = []

        try:
            insights.extend(self._popularity_insights(stats))
        except Exception as e:
            logger.error("Popularity rules failed", error=str(e), exc_info=True)
        try:
            insights.extend(await self._reliability_insights(stats, start, end))
        except Exception as e:
            logger.error("Reliability rules failed", error=str(e), exc_info=True)
        try:
            insights.extend(self._performance_insights(stats))
        except Exception as e:
            logger.error("Performance rules failed", error=str(e), exc_info=True)
        try:
            insights.extend(await self._trend_insights(stats, start, end))
        except Exception as e:
            logger.error("Trend rules failed", error=str(e), exc_info=True)

        insights.sort(key=lambda insight: SEVERITY_RANK[insight.severity])

        report = InsightsReport(
            period_start=start,
            period_end=end,
            insights=insights,
            critical_count=sum(1 for i in insights if i.severity == InsightSeverity.CRITICAL),
            warning_count=sum(1 for i in insights if i.severity == InsightSeverity.WARNING),
            info_count=sum(1 for i in insights if i.severity == InsightSeverity.INFO),
        )
        logger.debug(
            "Insights report generated",
            start=start,
            end=end,
            insights=report.total_insights,
        )
        return report, stats

    def _summarize(self, report: InsightsReport, stats: UsageStats) -> InsightsSummary:
        most_popular = stats.popularity_ranking[0] if stats.popularity_ranking else None

        attention = None
        for severity in (InsightSeverity.CRITICAL, InsightSeverity.WARNING):
            for insight in report.insights:
                if (
                    insight.category == InsightCategory.RELIABILITY
                    and insight.severity == severity
                    and insight.affected_tools
                ):
                    attention = insight.affected_tools[0]
                    break
            if attention:
                break

        health = determine_health_status(report.critical_count, report.warning_count)
        if stats.total_invocations == 0:
            one_liner = "No analytics data collected yet. Start using the thinking tools!"
        elif health == "critical":
            one_liner = (
                f"{report.critical_count} critical issue(s) detected. "
                "Immediate attention recommended."
            )
        elif health == "needs-attention":
            one_liner = f"{report.warning_count} warning(s) detected. Review recommended."
        elif most_popular:
            one_liner = f"All systems healthy. {most_popular} is your most-used tool."
        else:
            one_liner = "All systems healthy."

        return InsightsSummary(
            total_insights=report.total_insights,
            critical_count=report.critical_count,
            warning_count=report.warning_count,
            info_count=report.info_count,
            most_popular_tool=most_popular,
            tool_needing_attention=attention,
            health_status=health,
            one_liner=one_liner,
        )

    async def get_summary(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> InsightsSummary:
        """Condensed health view of the report."""
        start, end = self._resolve_window(start_date, end_date)
        report, stats = await self._build_report(start, end)
        return self._summarize(report, stats)

    def format_insights(self, insights: List[AnalyticsInsight]) -> List[FormattedInsight]:
        """Attach a display icon to each insight. No filtering is applied."""
        return [
            FormattedInsight(
                icon=INSIGHT_ICONS[insight.category][insight.severity],
                title=insight.title,
                description=insight.description,
                recommendation=insight.recommendation,
                severity=insight.severity.value,
                category=insight.category.value,
            )
            for insight in insights
        ]

    async def generate_text_report(
        self, start_date: Optional[str] = None, end_date: Optional[str] = None
    ) -> str:
        """Render the report as plain text grouped by category."""
        start, end = self._resolve_window(start_date, end_date)
        report, stats = await self._build_report(start, end)
        summary = self._summarize(report, stats)

        rule = "=" * 60
        divider = "-" * 60
        lines = [
            rule,
            "ANALYTICS INSIGHTS REPORT",
            rule,
            "",
            f"Period: {report.period_start} to {report.period_end}",
            f"Generated: {report.generated_at}",
            "",
            f"Status: {summary.health_status.upper()}",
            summary.one_liner,
            "",
            divider,
            "SUMMARY",
            divider,
            f"Total Insights: {report.total_insights}",
        ]
        if report.critical_count:
            lines.append(f"  Critical: {report.critical_count}")
        if report.warning_count:
            lines.append(f"  Warnings: {report.warning_count}")
        lines.append(f"  Info: {report.info_count}")
        lines.append("")

        for category in REPORT_SECTIONS:
            section = [i for i in report.insights if i.category == category]
            if not section:
                continue
            lines.extend([divider, category.value.upper(), divider])
            for formatted in self.format_insights(section):
                lines.append("")
                lines.append(
                    f"{formatted.icon} [{formatted.severity.upper()}] {formatted.title}"
                )
                lines.append(f"   {formatted.description}")
                if formatted.recommendation:
                    lines.append(f"   Recommendation: {formatted.recommendation}")
            lines.append("")

        return "\n".join(lines)
