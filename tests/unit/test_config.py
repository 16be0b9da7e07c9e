"""
Unit tests for configuration loading.
"""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from tool_usage_analytics.config.settings import (
    Config,
    StorageConfig,
    create_default_config,
    load_config,
)

ENV_VARS = [
    "TOOL_ANALYTICS_CONFIG_PATH",
    "TOOL_ANALYTICS_LOG_LEVEL",
    "TOOL_ANALYTICS_STORAGE_PATH",
    "TOOL_ANALYTICS_RETENTION_DAYS",
    "TOOL_ANALYTICS_BATCH_SIZE",
    "TOOL_ANALYTICS_FLUSH_INTERVAL_MS",
]


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)


class TestConfig:
    """Test defaults, file loading and environment overrides."""

    def test_defaults(self):
        config = load_config()

        assert config.storage.retention_days == 90
        assert config.storage.lock_timeout_ms == 5000
        assert config.storage.lock_retry_ms == 50
        assert config.collector.batch_size == 50
        assert config.collector.flush_interval_ms == 30000
        assert config.insights.min_invocations_for_insight == 10
        assert config.logging.log_level == "INFO"
        assert config.logging.json_format is True
        assert config.storage.storage_path == str(
            Path("~/.tool-usage-analytics/analytics").expanduser()
        )

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(
            json.dumps({"storage": {"storage_path": str(tmp_path), "retention_days": 14}})
        )

        config = load_config(path)

        assert config.storage.storage_path == str(tmp_path)
        assert config.storage.retention_days == 14
        assert config.collector.batch_size == 50

    def test_config_path_from_env(self, tmp_path, monkeypatch):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"insights": {"slow_response_threshold": 250}}))
        monkeypatch.setenv("TOOL_ANALYTICS_CONFIG_PATH", str(path))

        assert load_config().insights.slow_response_threshold == 250

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_config(tmp_path / "absent.json")

    def test_env_overrides_file(self, tmp_path, monkeypatch):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"storage": {"retention_days": 14}}))
        monkeypatch.setenv("TOOL_ANALYTICS_RETENTION_DAYS", "30")
        monkeypatch.setenv("TOOL_ANALYTICS_BATCH_SIZE", "5")
        monkeypatch.setenv("TOOL_ANALYTICS_FLUSH_INTERVAL_MS", "2000")
        monkeypatch.setenv("TOOL_ANALYTICS_LOG_LEVEL", "debug")
        monkeypatch.setenv("TOOL_ANALYTICS_STORAGE_PATH", str(tmp_path / "data"))

        config = load_config(path)

        assert config.storage.retention_days == 30
        assert config.collector.batch_size == 5
        assert config.collector.flush_interval_ms == 2000
        assert config.logging.log_level == "DEBUG"
        assert config.storage.storage_path == str(tmp_path / "data")

    def test_bad_numeric_env_ignored(self, monkeypatch):
        monkeypatch.setenv("TOOL_ANALYTICS_RETENTION_DAYS", "soon")
        monkeypatch.setenv("TOOL_ANALYTICS_BATCH_SIZE", "-3")

        config = load_config()

        assert config.storage.retention_days == 90
        assert config.collector.batch_size == 50

    def test_validation(self):
        with pytest.raises(ValidationError):
            StorageConfig(retention_days=0)
        with pytest.raises(ValidationError):
            Config(logging={"log_level": "LOUD"})
        with pytest.raises(ValidationError):
            Config(unexpected=True)

    def test_create_default_config(self, tmp_path):
        path = tmp_path / "nested" / "config.json"

        create_default_config(path)
        config = load_config(path)

        assert config.storage.retention_days == 90
        assert config.insights.trend_change_threshold == 20
