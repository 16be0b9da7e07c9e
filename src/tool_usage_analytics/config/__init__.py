"""Configuration management for Tool Usage Analytics."""

from .settings import (
    CollectorConfig,
    Config,
    InsightsConfig,
    LoggingConfig,
    StorageConfig,
    create_default_config,
    load_config,
)

__all__ = [
    "CollectorConfig",
    "Config",
    "InsightsConfig",
    "LoggingConfig",
    "StorageConfig",
    "create_default_config",
    "load_config",
]
