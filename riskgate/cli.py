"""Command line entry points for the daily and weekly scoring jobs."""

from __future__ import annotations

import json
import logging
from datetime import date as Date
from pathlib import Path
from typing import Optional

import click

from .config_models import ScoringConfig
from .validate import SCORING_CONFIG_PATH, ConfigError, load_config, validate_file


def _paths(data_dir: Optional[Path]):
    from .runner import DATA_DIR, RunPaths

    return RunPaths.under(data_dir or DATA_DIR)


def _config(ctx: click.Context) -> ScoringConfig:
    try:
        return load_config(ctx.obj["config_path"])
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


def _parse_date(value: str) -> Date:
    try:
        return Date.fromisoformat(value)
    except ValueError as exc:
        raise click.BadParameter(f"Expected YYYY-MM-DD, got {value!r}") from exc


@click.group()
@click.option(
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=SCORING_CONFIG_PATH,
    show_default=True,
    help="Scoring config YAML.",
)
@click.option("--data-dir", type=click.Path(path_type=Path, file_okay=False), default=None, help="Root of inputs and outputs.")
@click.option("--verbose", is_flag=True, help="Log per-country details.")
@click.pass_context
def cli(ctx: click.Context, config_path: Path, data_dir: Optional[Path], verbose: bool) -> None:
    """Country risk scoring CLI."""
    logging.basicConfig(level=logging.DEBUG if verbose else logging.INFO)
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["data_dir"] = data_dir


@cli.command("score-daily")
@click.option("--date", "day", required=True, help="Scoring date (YYYY-MM-DD).")
@click.option("--input", "input_dir", type=click.Path(path_type=Path, file_okay=False), default=None, help="Directory of per-day snapshot files.")
@click.option("--dry-run", is_flag=True, help="Score and log without writing outputs or history.")
@click.pass_context
def score_daily(ctx: click.Context, day: str, input_dir: Optional[Path], dry_run: bool) -> None:
    """Score every country for one date and publish daily outputs."""
    from .feeds import FeedError, SnapshotFileFeed
    from .runner import DailyRunner, SafetyFloorError

    _parse_date(day)
    config = _config(ctx)
    paths = _paths(ctx.obj["data_dir"])
    if input_dir is not None:
        paths.snapshots = input_dir
    feed = SnapshotFileFeed(input_dir) if input_dir is not None else None
    try:
        batch = DailyRunner(config, paths, feed=feed, dry_run=dry_run).run(day)
    except (FeedError, SafetyFloorError) as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(json.dumps({"date": batch.date, "distribution": batch.distribution, "ranked": batch.ranked[:10]}))


@cli.command("score-weekly")
@click.option("--start", required=True, help="First day of the range (YYYY-MM-DD).")
@click.option("--end", required=True, help="Last day of the range (YYYY-MM-DD).")
@click.option("--dry-run", is_flag=True, help="Aggregate without writing week or series files.")
@click.pass_context
def score_weekly(ctx: click.Context, start: str, end: str, dry_run: bool) -> None:
    """Aggregate weekly surge ratios for each ISO week ending in the range."""
    from .runner import WeeklyRunner

    start_day, end_day = _parse_date(start), _parse_date(end)
    if end_day < start_day:
        raise click.BadParameter("--end must not precede --start")
    aggregates = WeeklyRunner(_config(ctx), _paths(ctx.obj["data_dir"]), dry_run=dry_run).run(start_day, end_day)
    weeks = sorted({agg.week_id for agg in aggregates})
    click.echo(f"Processed {len(weeks)} weeks, {len(aggregates)} country-weeks")


@cli.command("refresh-gating")
@click.option("--dry-run", is_flag=True, help="Report changes without saving series files.")
@click.pass_context
def refresh_gating_cmd(ctx: click.Context, dry_run: bool) -> None:
    """Re-run weekly gating over stored series after a config change."""
    from .runner import refresh_series_gating

    stats = refresh_series_gating(_config(ctx), _paths(ctx.obj["data_dir"]), dry_run=dry_run)
    click.echo(json.dumps(stats))


@cli.command("validate-config")
@click.pass_context
def validate_config(ctx: click.Context) -> None:
    """Validate the scoring config; exits non-zero on errors."""
    validate_file(ScoringConfig, ctx.obj["config_path"])
    click.echo(f"{ctx.obj['config_path']} OK")


@cli.command("diagnose")
@click.option("--country", required=True, help="ISO country code.")
@click.option("--date", "day", required=True, help="Snapshot date (YYYY-MM-DD).")
@click.pass_context
def diagnose_cmd(ctx: click.Context, country: str, day: str) -> None:
    """Print the full gate trace for one country and date."""
    from .feeds import FeedError
    from .runner import diagnose

    _parse_date(day)
    try:
        report = diagnose(_config(ctx), country, day, _paths(ctx.obj["data_dir"]))
    except FeedError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(json.dumps(report, indent=2, sort_keys=True))


if __name__ == "__main__":
    cli()
