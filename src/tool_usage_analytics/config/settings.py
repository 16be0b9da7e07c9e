"""
Configuration management for Tool Usage Analytics.

Handles loading, validation, and management of analytics configuration
from files and environment variables.
"""

import json
import os
from pathlib import Path
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

DEFAULT_STORAGE_PATH = "~/.tool-usage-analytics/analytics"


class StorageConfig(BaseModel):
    """Configuration for the on-disk event store."""

    storage_path: str = Field(
        default=DEFAULT_STORAGE_PATH,
        validate_default=True,
        description="Directory holding partition files",
    )
    retention_days: int = Field(
        default=90, ge=1, le=3650, description="Days of data kept by retention cleanup"
    )
    lock_timeout_ms: int = Field(default=5000, ge=1, description="Partition lock timeout")
    lock_retry_ms: int = Field(default=50, ge=1, description="Partition lock retry interval")

    @field_validator("storage_path")
    @classmethod
    def expand_storage_path(cls, v: str) -> str:
        """Expand ``~`` so every component sees the same directory."""
        return str(Path(v).expanduser())


class CollectorConfig(BaseModel):
    """Configuration for event batching."""

    batch_size: int = Field(default=50, ge=1, description="Events buffered before a flush")
    flush_interval_ms: int = Field(
        default=30000, ge=1000, description="Background flush interval in milliseconds"
    )


class InsightsConfig(BaseModel):
    """Thresholds used by the insights rules."""

    min_invocations_for_insight: int = Field(
        default=10, ge=1, description="Invocations needed before a scope yields findings"
    )
    slow_response_threshold: float = Field(
        default=1000, gt=0, description="Average duration in ms considered slow"
    )
    trend_change_threshold: float = Field(
        default=20, gt=0, description="Percent change considered a significant trend"
    )


class LoggingConfig(BaseModel):
    log_level: str = Field(default="INFO", description="Logging level")
    json_format: bool = Field(default=True, description="Emit JSON log records")

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level: {v}. Must be one of {valid_levels}")
        return v_upper


class Config(BaseModel):
    """Main configuration object."""

    model_config = ConfigDict(extra="forbid")

    version: str = Field(default="0.1.0", description="Configuration version")
    storage: StorageConfig = Field(default_factory=StorageConfig)
    collector: CollectorConfig = Field(default_factory=CollectorConfig)
    insights: InsightsConfig = Field(default_factory=InsightsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def _positive_int_env(name: str) -> Optional[int]:
    """Read a positive integer from the environment, ignoring bad values."""
    raw = os.getenv(name)
    if not raw:
        return None
    try:
        value = int(raw)
    except ValueError:
        return None
    return value if value > 0 else None


def load_config(config_path: Optional[Path] = None) -> Config:
    """
    Load configuration from file and environment variables.

    Args:
        config_path: Path to configuration file. If None, looks for
                    TOOL_ANALYTICS_CONFIG_PATH environment variable.

    Returns:
        Loaded and validated configuration

    Raises:
        FileNotFoundError: If config file specified but not found
        ValueError: If configuration is invalid
    """
    if config_path is None:
        env_path = os.getenv("TOOL_ANALYTICS_CONFIG_PATH")
        if env_path:
            config_path = Path(env_path)

    config_data: Dict[str, Any] = {}
    if config_path and config_path.exists():
        with open(config_path, "r") as f:
            config_data = json.load(f)
    elif config_path:
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    env_overrides: Dict[str, Any] = {}

    log_level = os.getenv("TOOL_ANALYTICS_LOG_LEVEL")
    if log_level:
        env_overrides.setdefault("logging", {})["log_level"] = log_level

    storage_path = os.getenv("TOOL_ANALYTICS_STORAGE_PATH")
    if storage_path:
        env_overrides.setdefault("storage", {})["storage_path"] = storage_path

    retention_days = _positive_int_env("TOOL_ANALYTICS_RETENTION_DAYS")
    if retention_days:
        env_overrides.setdefault("storage", {})["retention_days"] = retention_days

    batch_size = _positive_int_env("TOOL_ANALYTICS_BATCH_SIZE")
    if batch_size:
        env_overrides.setdefault("collector", {})["batch_size"] = batch_size

    flush_interval = _positive_int_env("TOOL_ANALYTICS_FLUSH_INTERVAL_MS")
    if flush_interval:
        env_overrides.setdefault("collector", {})["flush_interval_ms"] = flush_interval

    if env_overrides:
        config_data = _deep_merge(config_data, env_overrides)

    return Config(**config_data)


def create_default_config(config_path: Path) -> None:
    """
    Create a default configuration file.

    Args:
        config_path: Path where to create the configuration file
    """
    default_config = {
        "version": "0.1.0",
        "storage": {
            "storage_path": DEFAULT_STORAGE_PATH,
            "retention_days": 90,
            "lock_timeout_ms": 5000,
            "lock_retry_ms": 50,
        },
        "collector": {
            "batch_size": 50,
            "flush_interval_ms": 30000,
        },
        "insights": {
            "min_invocations_for_insight": 10,
            "slow_response_threshold": 1000,
            "trend_change_threshold": 20,
        },
        "logging": {
            "log_level": "INFO",
            "json_format": True,
        },
    }

    config_path.parent.mkdir(parents=True, exist_ok=True)

    with open(config_path, "w") as f:
        json.dump(default_config, f, indent=2)


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Override dictionary

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result
