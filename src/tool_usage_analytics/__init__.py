"""
Tool Usage Analytics

Local, privacy-preserving usage telemetry for thinking tools: durable
date-partitioned event storage, on-demand statistics and rule-based insights.
"""

__version__ = "0.1.0"
__license__ = "MIT"

from .analytics import AggregationEngine, ErrorTracker, EventStore, InsightsGenerator
from .config.settings import Config, load_config

__all__ = [
    "AggregationEngine",
    "ErrorTracker",
    "EventStore",
    "InsightsGenerator",
    "Config",
    "load_config",
    "__version__",
    "__license__",
]
