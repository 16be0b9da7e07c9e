"""
Unit tests for the command-line interface.
"""

import json

import pytest
from click.testing import CliRunner

from tool_usage_analytics.main import cli
from tool_usage_analytics.utils.dates import utc_today


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def env(storage_dir):
    return {
        "TOOL_ANALYTICS_CONFIG_PATH": None,
        "TOOL_ANALYTICS_STORAGE_PATH": str(storage_dir),
        "TOOL_ANALYTICS_LOG_LEVEL": "ERROR",
    }


def _track(runner, env, *args):
    return runner.invoke(cli, ["track", *args], env=env)


class TestTrack:
    def test_track_records_event(self, runner, env, storage_dir):
        result = _track(runner, env, "trace", "--duration", "120")

        assert result.exit_code == 0
        assert "Recorded trace invocation" in result.stdout
        assert (storage_dir / f"analytics-{utc_today()}.json").exists()

    def test_track_failure_with_category(self, runner, env):
        _track(runner, env, "debug", "--duration", "80", "--failed", "--error-category", "timeout")

        result = runner.invoke(cli, ["stats", "--json"], env=env)
        data = json.loads(result.stdout)

        assert data["totalErrors"] == 1
        assert data["toolMetrics"][0]["errorsByCategory"]["timeout"] == 1

    def test_unknown_tool_rejected(self, runner, env):
        result = _track(runner, env, "telepathy", "--duration", "1")

        assert result.exit_code == 2

    def test_negative_duration_rejected(self, runner, env):
        result = _track(runner, env, "trace", "--duration", "-5")

        assert result.exit_code == 2


class TestReports:
    def test_stats_empty(self, runner, env):
        result = runner.invoke(cli, ["stats"], env=env)

        assert result.exit_code == 0
        assert "No tool invocations recorded in this period." in result.stdout

    def test_stats_json(self, runner, env):
        for _ in range(3):
            _track(runner, env, "model", "--duration", "40", "--session", "abc")

        result = runner.invoke(cli, ["stats", "--json"], env=env)
        data = json.loads(result.stdout)

        assert result.exit_code == 0
        assert data["totalInvocations"] == 3
        assert data["uniqueSessions"] == 1
        assert data["popularityRanking"] == ["model"]

    def test_stats_table(self, runner, env):
        _track(runner, env, "map", "--duration", "10")

        result = runner.invoke(cli, ["stats"], env=env)

        assert "Invocations: 1" in result.stdout
        assert "map" in result.stdout

    def test_trends_json(self, runner, env):
        _track(runner, env, "trace", "--duration", "10")

        result = runner.invoke(cli, ["trends", "--period", "weekly", "--json"], env=env)
        data = json.loads(result.stdout)

        assert data["periodType"] == "weekly"
        assert data["tools"][0]["toolName"] == "trace"
        assert data["tools"][0]["periods"][0]["period"].count("-W") == 1

    def test_insights_text(self, runner, env):
        result = runner.invoke(cli, ["insights"], env=env)

        assert result.exit_code == 0
        assert "ANALYTICS INSIGHTS REPORT" in result.stdout
        assert "Total Insights: 0" in result.stdout

    def test_insights_json(self, runner, env):
        _track(runner, env, "trace", "--duration", "10")

        result = runner.invoke(cli, ["insights", "--json"], env=env)
        data = json.loads(result.stdout)

        assert data["summary"]["totalInsights"] == len(data["insights"])
        assert data["periodEnd"] == utc_today()

    def test_summary(self, runner, env):
        result = runner.invoke(cli, ["summary"], env=env)

        assert result.exit_code == 0
        assert "Status: HEALTHY" in result.stdout
        assert "No analytics data collected yet." in result.stdout

    def test_invalid_date(self, runner, env):
        result = runner.invoke(cli, ["stats", "--start", "2026-13-01"], env=env)

        assert result.exit_code == 2


class TestMaintenance:
    def test_info(self, runner, env):
        _track(runner, env, "trace", "--duration", "10")

        result = runner.invoke(cli, ["info", "--json"], env=env)
        data = json.loads(result.stdout)

        assert data["totalFiles"] == 1
        assert data["totalEvents"] == 1
        assert data["newestDate"] == utc_today()
        assert data["retentionDays"] == 90

    def test_cleanup_dry_run(self, runner, env):
        result = runner.invoke(cli, ["cleanup", "--dry-run"], env=env)

        assert result.exit_code == 0
        assert "Would delete 0 files (0 events)" in result.stdout

    def test_delete(self, runner, env, storage_dir):
        _track(runner, env, "trace", "--duration", "10")

        result = runner.invoke(cli, ["delete", "--yes"], env=env)

        assert result.exit_code == 0
        assert "Deleted 1 files (1 events)" in result.stdout
        assert not (storage_dir / f"analytics-{utc_today()}.json").exists()

    def test_init_and_use_config(self, runner, env, tmp_path, storage_dir):
        config_path = tmp_path / "config.json"

        result = runner.invoke(cli, ["init", "-c", str(config_path)], env=env)

        assert result.exit_code == 0
        assert config_path.exists()

        data = json.loads(config_path.read_text())
        data["storage"]["retention_days"] = 12
        config_path.write_text(json.dumps(data))

        env = dict(env, TOOL_ANALYTICS_STORAGE_PATH=str(storage_dir))
        result = runner.invoke(cli, ["--config", str(config_path), "info", "--json"], env=env)

        assert result.exit_code == 0
        assert json.loads(result.stdout)["retentionDays"] == 12

    def test_missing_config_file(self, runner, env, tmp_path):
        result = runner.invoke(cli, ["--config", str(tmp_path / "nope.json"), "stats"], env=env)

        assert result.exit_code == 2
