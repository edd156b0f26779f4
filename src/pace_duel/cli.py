"""CLI entry point for pace-duel."""

import click

from .commands import activities, challenge, init, scheduler, serve, sweep, users
from .config import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="pace-duel")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Override PACE_DUEL_LOG_LEVEL",
)
def main(log_level: str | None):
    """pace-duel: head-to-head distance challenges.

    Two people set per-sport distance goals over the same dates; whoever
    gets closest to their own goals wins.

    Example usage:

        # Initialize the project
        pace-duel init

        # Add users and start a challenge
        pace-duel users add alice --manual
        pace-duel challenge create --as alice --start 2026-06-01 --end 2026-06-30 --goal RUN=50

        # Keep statuses and progress fresh
        pace-duel sweep all
    """
    configure_logging(log_level)


main.add_command(init)
main.add_command(users)
main.add_command(challenge)
main.add_command(activities)
main.add_command(sweep)
main.add_command(scheduler)
main.add_command(serve)


def run():
    """Run the CLI (handles async event loop)."""
    main()


if __name__ == "__main__":
    run()
