"""Manual activity commands."""

from pathlib import Path

import click

from ..clients.base import BaseActivitySource
from ..clients.manual import ManualEntryClient, parse_activity_csv
from ..db import ActivityRepository, get_db_path
from .base import (
    async_command,
    echo_error,
    echo_info,
    echo_success,
    ensure_initialized,
    require_user,
)

DATE = click.DateTime(formats=["%Y-%m-%d"])


@click.group()
@click.pass_context
def activities(ctx):
    """Log activities by hand for users without a connected service."""
    ensure_initialized(ctx)


@activities.command(name="import")
@click.argument("path", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--as", "username", required=True, help="User the activities belong to")
@click.pass_context
@async_command
async def import_csv(ctx, path: Path, username: str):
    """Import activities from a CSV file.

    Columns: sport, start_time, distance_km (or distance_m), optional id.
    Rows already imported are skipped.

    Example:
        pace-duel activities import runs.csv --as alice
    """
    user = await require_user(username)
    try:
        records = parse_activity_csv(path, user.id)
    except ValueError as e:
        echo_error(f"Failed to parse {path}: {e}")
        ctx.exit(1)

    added = await ActivityRepository(get_db_path()).save_many(user.id, "manual", records)
    echo_success(f"Imported {added} new activities ({len(records) - added} already known)")


@activities.command()
@click.option("--as", "username", required=True, help="User the activity belongs to")
@async_command
async def add(username: str):
    """Enter one activity interactively."""
    user = await require_user(username)
    record = await ManualEntryClient().collect_activity(user.id)
    if record is None:
        echo_info("Cancelled")
        return

    added = await ActivityRepository(get_db_path()).save_many(user.id, "manual", [record])
    if added:
        echo_success(f"Logged {record.sport_type.value} {record.distance_meters / 1000:.1f} km")
    else:
        echo_info("That activity was already logged")


@activities.command(name="list")
@click.option("--as", "username", required=True, help="User whose activities to list")
@click.option("--from", "start", type=DATE, help="First day (YYYY-MM-DD)")
@click.option("--to", "end", type=DATE, help="Last day (YYYY-MM-DD)")
@async_command
async def list_activities(username: str, start, end):
    """Summarize stored activities."""
    user = await require_user(username)
    records = await ActivityRepository(get_db_path()).list_for_user(
        user.id,
        start=start.date() if start else None,
        end=end.date() if end else None,
    )
    if not records:
        echo_info("No activities stored")
        return

    totals = BaseActivitySource.total_by_sport(records)
    click.echo(f"{len(records)} activities")
    for sport, meters in sorted(totals.items()):
        click.echo(f"  - {sport.value}: {meters / 1000:.1f} km")
