"""Run the periodic sweeps by hand (or from cron)."""

import click

from ..db import get_db_path
from ..services import (
    SweepReport,
    run_daily_status_sweep,
    run_sync_sweep,
    run_weekly_snapshot_sweep,
)
from .base import async_command, echo_success, echo_warning, ensure_initialized

DATE = click.DateTime(formats=["%Y-%m-%d"])


def _report(report: SweepReport) -> None:
    if report.failed:
        echo_warning(report.summary())
    else:
        echo_success(report.summary())


@click.group()
@click.pass_context
def sweep(ctx):
    """Run status, sync and weekly snapshot sweeps once."""
    ensure_initialized(ctx)


@sweep.command()
@click.option("--date", "day", type=DATE, help="Evaluate as if today were this date")
@async_command
async def status(day):
    """Advance every open challenge to its current status."""
    _report(await run_daily_status_sweep(today=day.date() if day else None, db_path=get_db_path()))


@sweep.command()
@click.option("--scheduled/--no-scheduled", default=None, help="Also sync SCHEDULED challenges")
@async_command
async def sync(scheduled):
    """Pull activity data and update progress."""
    _report(await run_sync_sweep(include_scheduled=scheduled, db_path=get_db_path()))


@sweep.command()
@click.option("--date", "day", type=DATE, help="Evaluate as if today were this date")
@async_command
async def weekly(day):
    """Record last week's results."""
    _report(
        await run_weekly_snapshot_sweep(today=day.date() if day else None, db_path=get_db_path())
    )


@sweep.command(name="all")
@async_command
async def run_all():
    """Sync, then advance statuses, then snapshot (like the nightly job)."""
    db_path = get_db_path()
    _report(await run_sync_sweep(db_path=db_path))
    _report(await run_daily_status_sweep(db_path=db_path))
    _report(await run_weekly_snapshot_sweep(db_path=db_path))
