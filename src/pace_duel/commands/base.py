"""Shared CLI utilities."""

import asyncio
import sys
from functools import wraps

import click

from ..db import UserRepository, get_db_path
from ..exceptions import PaceDuelError
from ..models.challenge import SportType
from ..models.user import User


def async_command(f):
    """Decorator to run async Click commands.

    Errors raised by the services are printed and end the command with
    exit status 1.
    """

    @wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return asyncio.run(f(*args, **kwargs))
        except PaceDuelError as e:
            echo_error(e.message)
            sys.exit(1)

    return wrapper


def ensure_initialized(ctx: click.Context) -> None:
    """Ensure the database is initialized."""
    db_path = get_db_path()
    if not db_path.exists():
        click.echo(
            click.style("Error: ", fg="red")
            + "Project not initialized. Run 'pace-duel init' first."
        )
        ctx.exit(1)


async def require_user(username: str) -> User:
    """Look up a user by name or exit with an error."""
    user = await UserRepository(get_db_path()).get_by_username(username)
    if user is None:
        echo_error(f"Unknown user '{username}'. Add it with 'pace-duel users add'")
        sys.exit(1)
    return user


def parse_goals(values: tuple[str, ...]) -> dict[SportType, float]:
    """Parse ``SPORT=KM`` pairs from repeated ``--goal`` options."""
    goals: dict[SportType, float] = {}
    for value in values:
        sport, sep, km = value.partition("=")
        if not sep:
            raise click.BadParameter(f"'{value}' is not SPORT=KM", param_hint="--goal")
        try:
            goals[SportType.parse(sport)] = float(km)
        except ValueError as e:
            raise click.BadParameter(str(e), param_hint="--goal") from e
    return goals


def echo_success(message: str) -> None:
    """Print a success message."""
    click.echo(click.style("[OK] ", fg="green") + message)


def echo_error(message: str) -> None:
    """Print an error message."""
    click.echo(click.style("[ERROR] ", fg="red") + message)


def echo_info(message: str) -> None:
    """Print an info message."""
    click.echo(click.style("[INFO] ", fg="blue") + message)


def echo_warning(message: str) -> None:
    """Print a warning message."""
    click.echo(click.style("[WARN] ", fg="yellow") + message)


def format_table(headers: list[str], rows: list[list[str]], padding: int = 2) -> str:
    """Format data as a simple table."""
    if not rows:
        return ""

    widths = [len(h) for h in headers]
    for row in rows:
        for i, cell in enumerate(row):
            widths[i] = max(widths[i], len(str(cell)))

    lines = ["".join(h.ljust(widths[i] + padding) for i, h in enumerate(headers))]
    lines.append("".join("-" * w + " " * padding for w in widths))
    for row in rows:
        lines.append(
            "".join(str(cell).ljust(widths[i] + padding) for i, cell in enumerate(row))
        )

    return "\n".join(lines)
