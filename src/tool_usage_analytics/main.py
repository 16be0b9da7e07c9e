"""
Command-line interface for Tool Usage Analytics.

Renders statistics, trends and insights from the local event store and
exposes the storage maintenance operations.
"""

import asyncio
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import click
import structlog

from .analytics import (
    AggregationEngine,
    AnalyticsCollector,
    ErrorTracker,
    EventStore,
    InsightsGenerator,
    PeriodType,
)
from .analytics.models import ERROR_CATEGORIES
from .config.settings import Config, create_default_config, load_config
from .toolnames import TOOL_NAMES
from .utils.dates import parse_date
from .utils.logging import setup_logging

logger = structlog.get_logger(__name__)


class AnalyticsServices:
    """Components wired from one configuration."""

    def __init__(self, config: Config):
        self.config = config
        self.store = EventStore.from_config(config.storage)
        self.aggregator = AggregationEngine(self.store)
        self.error_tracker = ErrorTracker(self.store)
        self.insights = InsightsGenerator.from_config(
            self.aggregator, self.error_tracker, config.insights
        )


def _validate_date(ctx: click.Context, param: click.Parameter, value: Optional[str]):
    if value is None:
        return None
    try:
        parse_date(value)
    except ValueError:
        raise click.BadParameter("expected YYYY-MM-DD")
    if len(value) != 10:
        raise click.BadParameter("expected YYYY-MM-DD")
    return value


def _echo_json(data: Dict[str, Any]) -> None:
    click.echo(json.dumps(data, indent=2, ensure_ascii=False))


start_option = click.option(
    "--start", callback=_validate_date, help="First date of the window (YYYY-MM-DD)"
)
end_option = click.option(
    "--end", callback=_validate_date, help="Last date of the window (YYYY-MM-DD)"
)
json_option = click.option("--json", "as_json", is_flag=True, help="Output JSON")


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, path_type=Path),
    help="Path to configuration file",
)
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Set logging level",
)
@click.version_option(package_name="tool-usage-analytics")
@click.pass_context
def cli(
    ctx: click.Context,
    config: Optional[Path] = None,
    log_level: Optional[str] = None,
) -> None:
    """Tool Usage Analytics - local usage statistics and insights."""
    if ctx.invoked_subcommand == "init":
        return

    try:
        config_data = load_config(config_path=config)
    except (OSError, ValueError) as e:
        click.echo(f"Failed to load configuration: {e}", err=True)
        sys.exit(1)

    if log_level:
        config_data.logging.log_level = log_level.upper()
    setup_logging(config_data.logging.log_level, config_data.logging.json_format)

    ctx.obj = AnalyticsServices(config_data)
    logger.debug(
        "Configuration loaded",
        config_file=str(config) if config else "default",
        storage_path=config_data.storage.storage_path,
        retention_days=config_data.storage.retention_days,
    )


@click.command()
@start_option
@end_option
@json_option
@click.pass_obj
def stats(
    services: AnalyticsServices,
    start: Optional[str] = None,
    end: Optional[str] = None,
    as_json: bool = False,
) -> None:
    """Show usage statistics per tool."""
    usage = asyncio.run(services.aggregator.get_usage_stats(start, end))

    if as_json:
        _echo_json(usage.to_dict())
        return

    click.echo(f"Period: {usage.period_start} to {usage.period_end}")
    click.echo(
        f"Invocations: {usage.total_invocations} "
        f"(errors: {usage.total_errors}, error rate: {usage.overall_error_rate:.1f}%)"
    )
    click.echo(
        f"Sessions: {usage.unique_sessions} "
        f"({usage.avg_invocations_per_session:.1f} invocations per session)"
    )
    if not usage.tool_metrics:
        click.echo("No tool invocations recorded in this period.")
        return

    click.echo("")
    click.echo(f"{'Tool':<12}{'Calls':>8}{'Errors':>8}{'Err %':>8}{'Avg ms':>10}{'P95 ms':>10}")
    ranked = sorted(usage.tool_metrics, key=lambda m: m.invocation_count, reverse=True)
    for metrics in ranked:
        click.echo(
            f"{metrics.tool_name:<12}{metrics.invocation_count:>8}{metrics.error_count:>8}"
            f"{metrics.error_rate:>8.1f}{metrics.avg_duration_ms:>10.0f}"
            f"{metrics.p95_duration_ms:>10.0f}"
        )
    if usage.tools_needing_attention:
        click.echo("")
        click.echo(f"Needs attention: {', '.join(usage.tools_needing_attention)}")


@click.command()
@click.option(
    "--period",
    type=click.Choice([p.value for p in PeriodType]),
    default=PeriodType.DAILY.value,
    show_default=True,
    help="Bucket size",
)
@click.option("--tool", type=click.Choice(TOOL_NAMES), help="Restrict to one tool")
@start_option
@end_option
@json_option
@click.pass_obj
def trends(
    services: AnalyticsServices,
    period: str,
    tool: Optional[str] = None,
    start: Optional[str] = None,
    end: Optional[str] = None,
    as_json: bool = False,
) -> None:
    """Show per-tool usage counts by period."""
    series = asyncio.run(
        services.aggregator.get_period_counts(PeriodType(period), tool, start, end)
    )

    if as_json:
        _echo_json({"periodType": period, "tools": [s.to_dict() for s in series]})
        return

    if not series:
        click.echo("No tool invocations recorded in this period.")
        return

    for tool_series in series:
        click.echo(
            f"{tool_series.tool_name}: {tool_series.trend.value} "
            f"({tool_series.change_percentage:+.1f}%)"
        )
        for bucket in tool_series.periods:
            click.echo(
                f"  {bucket.period:<12}{bucket.total_count:>6} calls"
                f"{bucket.error_count:>6} errors{bucket.avg_duration_ms:>10.0f} ms avg"
            )


@click.command()
@start_option
@end_option
@json_option
@click.pass_obj
def insights(
    services: AnalyticsServices,
    start: Optional[str] = None,
    end: Optional[str] = None,
    as_json: bool = False,
) -> None:
    """Generate the insights report."""
    if as_json:
        report = asyncio.run(services.insights.generate_report(start, end))
        _echo_json(report.to_dict())
    else:
        click.echo(asyncio.run(services.insights.generate_text_report(start, end)))


@click.command()
@start_option
@end_option
@json_option
@click.pass_obj
def summary(
    services: AnalyticsServices,
    start: Optional[str] = None,
    end: Optional[str] = None,
    as_json: bool = False,
) -> None:
    """Show a one-line health summary."""

    async def collect():
        return (
            await services.insights.get_summary(start, end),
            await services.aggregator.get_summary(start, end),
        )

    insight_summary, usage_summary = asyncio.run(collect())

    if as_json:
        _echo_json({"insights": insight_summary.to_dict(), "usage": usage_summary.to_dict()})
        return

    click.echo(f"Status: {insight_summary.health_status.upper()}")
    click.echo(insight_summary.one_liner)
    click.echo(
        f"Insights: {insight_summary.total_insights} "
        f"(critical {insight_summary.critical_count}, "
        f"warning {insight_summary.warning_count}, info {insight_summary.info_count})"
    )
    if usage_summary.total_invocations:
        click.echo(
            f"Invocations: {usage_summary.total_invocations}, "
            f"error rate {usage_summary.overall_error_rate:.1%}, "
            f"avg {usage_summary.overall_avg_duration_ms:.0f} ms"
        )
    if insight_summary.tool_needing_attention:
        click.echo(f"Needs attention: {insight_summary.tool_needing_attention}")


@click.command()
@click.argument("tool_name", type=click.Choice(TOOL_NAMES))
@click.option("--duration", "duration_ms", type=float, required=True, help="Duration in ms")
@click.option("--failed", is_flag=True, help="Record the invocation as failed")
@click.option("--error-category", type=click.Choice(ERROR_CATEGORIES), help="Failure category")
@click.option("--session", "session_id", help="Session identifier")
@click.pass_obj
def track(
    services: AnalyticsServices,
    tool_name: str,
    duration_ms: float,
    failed: bool = False,
    error_category: Optional[str] = None,
    session_id: Optional[str] = None,
) -> None:
    """Record a single tool invocation."""
    if duration_ms < 0:
        raise click.BadParameter("duration must not be negative", param_hint="--duration")

    collector = AnalyticsCollector.from_config(services.store, services.config.collector)

    async def record():
        await collector.track(
            tool_name,
            success=not failed,
            duration_ms=duration_ms,
            error_category=error_category,
            session_id=session_id,
        )
        return await collector.flush()

    result = asyncio.run(record())
    if not result.success:
        click.echo(f"Failed to record event: {result.error}", err=True)
        sys.exit(1)
    click.echo(f"Recorded {tool_name} invocation")


@click.command()
@json_option
@click.pass_obj
def info(services: AnalyticsServices, as_json: bool = False) -> None:
    """Show what is stored on disk."""
    storage = asyncio.run(services.store.get_storage_info())

    if as_json:
        data = storage.to_dict()
        data["storagePath"] = str(services.store.storage_path)
        data["retentionDays"] = services.store.retention_days
        _echo_json(data)
        return

    click.echo(f"Storage path: {services.store.storage_path}")
    click.echo(f"Retention: {services.store.retention_days} days")
    click.echo(f"Files: {storage.total_files}")
    click.echo(f"Events: {storage.total_events}")
    click.echo(f"Size: {storage.total_bytes} bytes")
    if storage.oldest_date:
        click.echo(f"Date range: {storage.oldest_date} to {storage.newest_date}")


@click.command()
@click.option("--dry-run", is_flag=True, help="Only report what would be deleted")
@click.pass_obj
def cleanup(services: AnalyticsServices, dry_run: bool = False) -> None:
    """Delete partitions older than the retention period."""
    result = asyncio.run(services.store.run_cleanup(dry_run=dry_run))

    verb = "Would delete" if dry_run else "Deleted"
    click.echo(f"{verb} {result.files_deleted} files ({result.events_deleted} events)")
    if not result.success:
        click.echo(f"Cleanup failed: {result.error}", err=True)
        sys.exit(1)


@click.command()
@click.confirmation_option(prompt="Delete all analytics data?")
@click.pass_obj
def delete(services: AnalyticsServices) -> None:
    """Delete every stored partition."""
    result = asyncio.run(services.store.delete_all_data())

    click.echo(f"Deleted {result.files_deleted} files ({result.events_deleted} events)")
    if not result.success:
        click.echo(f"Deletion failed: {result.error}", err=True)
        sys.exit(1)


@click.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(path_type=Path),
    help="Path to save configuration file",
)
def init_config(config: Optional[Path] = None) -> None:
    """Initialize a configuration file with default settings."""
    config_path = config or Path("config.json")

    if config_path.exists():
        click.echo(f"Configuration file already exists: {config_path}")
        if not click.confirm("Overwrite?"):
            return

    try:
        create_default_config(config_path)
        click.echo(f"Created configuration file: {config_path}")
        click.echo("\nNext steps:")
        click.echo("1. Point the CLI at it:")
        click.echo(f"   export TOOL_ANALYTICS_CONFIG_PATH='{config_path}'")
        click.echo("2. Review your usage:")
        click.echo("   tool-usage-analytics insights")
    except OSError as e:
        click.echo(f"Failed to create configuration file: {e}", err=True)
        sys.exit(1)


cli.add_command(stats)
cli.add_command(trends)
cli.add_command(insights)
cli.add_command(summary)
cli.add_command(track)
cli.add_command(info)
cli.add_command(cleanup)
cli.add_command(delete)
cli.add_command(init_config, name="init")


if __name__ == "__main__":
    cli()
