"""Initialize project command."""

import click

from ..config import get_settings
from ..db import get_db_path, init_db
from .base import async_command, echo_info, echo_success


@click.command()
@async_command
async def init():
    """Initialize the pace-duel data directory and database.

    Safe to run again: missing tables are created and older databases are
    migrated in place.
    """
    db_path = get_db_path()
    echo_info(f"Initializing pace-duel in {db_path.parent}")

    await init_db(db_path)
    echo_success("Database initialized")

    settings = get_settings()
    click.echo()
    click.echo("pace-duel is ready to use!")
    click.echo()
    click.echo("Next steps:")
    click.echo("  1. Add users:")
    click.echo("     pace-duel users add alice --timezone Europe/Berlin")
    click.echo("     pace-duel users link-strava alice --token <access-token>")
    click.echo()
    click.echo("  2. Start a challenge:")
    click.echo("     pace-duel challenge create --as alice --start 2026-06-01 --end 2026-06-30 --goal RUN=50")
    click.echo("     pace-duel challenge join <INVITE> --as bob --goal RUN=60")
    click.echo()
    click.echo(f"  Times are evaluated in each creator's timezone (default {settings.default_timezone}).")
