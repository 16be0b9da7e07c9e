"""
Local usage analytics: event storage, aggregation and insights.
"""

from .aggregator import (
    AggregationEngine,
    AggregationSummary,
    PeriodCount,
    PeriodType,
    ToolMetrics,
    ToolPeriodCounts,
    TrendDirection,
    UsageStats,
    UsageTrend,
)
from .collector import AnalyticsCollector, FlushResult
from .errors import ErrorTracker, ProblematicTool
from .insights import AnalyticsInsight, InsightsGenerator, InsightsReport, InsightsSummary
from .lock import PartitionLock
from .models import (
    AnalyticsError,
    AnalyticsEvent,
    CleanupResult,
    DailyPartition,
    ErrorCategory,
    LockTimeoutError,
    ReadResult,
    StorageError,
    StorageInfo,
    WriteResult,
)
from .retention import RetentionEnforcer
from .storage import EventStore

__all__ = [
    "AggregationEngine",
    "AggregationSummary",
    "AnalyticsCollector",
    "AnalyticsError",
    "AnalyticsEvent",
    "AnalyticsInsight",
    "CleanupResult",
    "DailyPartition",
    "ErrorCategory",
    "ErrorTracker",
    "EventStore",
    "FlushResult",
    "InsightsGenerator",
    "InsightsReport",
    "InsightsSummary",
    "LockTimeoutError",
    "PartitionLock",
    "PeriodCount",
    "PeriodType",
    "ProblematicTool",
    "ReadResult",
    "RetentionEnforcer",
    "StorageError",
    "StorageInfo",
    "ToolMetrics",
    "ToolPeriodCounts",
    "TrendDirection",
    "UsageStats",
    "UsageTrend",
    "WriteResult",
]
