"""User management commands."""

import aiosqlite
import click

from ..db import NotificationRepository, UserRepository, get_db_path
from ..models.user import User
from ..timeutils import is_valid_timezone
from .base import (
    async_command,
    echo_error,
    echo_info,
    echo_success,
    ensure_initialized,
    format_table,
    require_user,
)


@click.group()
@click.pass_context
def users(ctx):
    """Manage users and their activity sources."""
    ensure_initialized(ctx)


@users.command()
@click.argument("username")
@click.option("--email", help="Contact email")
@click.option("--timezone", "tz", help="IANA timezone, e.g. Europe/Berlin")
@click.option("--manual", is_flag=True, help="Track activities entered by hand")
@click.pass_context
@async_command
async def add(ctx, username: str, email: str | None, tz: str | None, manual: bool):
    """Add a user."""
    if tz and not is_valid_timezone(tz):
        echo_error(f"Unknown timezone: {tz}")
        ctx.exit(1)

    repo = UserRepository(get_db_path())
    user = User(
        username=username,
        email=email,
        timezone=tz,
        activity_source="manual" if manual else None,
    )
    try:
        user_id = await repo.create(user)
    except aiosqlite.IntegrityError:
        echo_error(f"User '{username}' already exists")
        ctx.exit(1)
    echo_success(f"User '{username}' created with ID: {user_id}")


@users.command(name="list")
@async_command
async def list_users():
    """List all users."""
    all_users = await UserRepository(get_db_path()).list_all()
    if not all_users:
        echo_info("No users yet. Add one with 'pace-duel users add'")
        return

    rows = [
        [str(u.id), u.username, u.timezone or "-", u.activity_source or "not linked"]
        for u in all_users
    ]
    click.echo()
    click.echo(format_table(["ID", "Username", "Timezone", "Source"], rows))


@users.command(name="link-strava")
@click.argument("username")
@click.option("--token", required=True, help="Strava access token")
@click.option("--refresh-token", help="Strava refresh token")
@async_command
async def link_strava(username: str, token: str, refresh_token: str | None):
    """Store a Strava access token obtained elsewhere."""
    user = await require_user(username)
    await UserRepository(get_db_path()).save_connection(
        user.id, "strava", token, refresh_token=refresh_token
    )
    echo_success(f"Linked Strava for '{username}'")


@users.command(name="use-manual")
@click.argument("username")
@async_command
async def use_manual(username: str):
    """Count activities entered by hand for this user."""
    user = await require_user(username)
    user.activity_source = "manual"
    await UserRepository(get_db_path()).update(user)
    echo_success(f"'{username}' now tracks manual activities")


@users.command(name="set-timezone")
@click.argument("username")
@click.argument("tz")
@click.pass_context
@async_command
async def set_timezone(ctx, username: str, tz: str):
    """Set a user's timezone (used for the challenges they create)."""
    if not is_valid_timezone(tz):
        echo_error(f"Unknown timezone: {tz}")
        ctx.exit(1)
    user = await require_user(username)
    user.timezone = tz
    await UserRepository(get_db_path()).update(user)
    echo_success(f"Timezone for '{username}' set to {tz}")


@users.command()
@click.argument("username")
@click.option("--unread", is_flag=True, help="Only unread notifications")
@click.option("--mark-read", is_flag=True, help="Mark everything as read afterwards")
@async_command
async def inbox(username: str, unread: bool, mark_read: bool):
    """Show a user's notifications."""
    user = await require_user(username)
    repo = NotificationRepository(get_db_path())
    notifications = await repo.list_for_user(user.id, unread_only=unread)

    if not notifications:
        echo_info("No notifications")
        return

    for n in notifications:
        marker = " " if n.read else "*"
        when = n.created_at.strftime("%Y-%m-%d %H:%M") if n.created_at else ""
        click.echo(f"{marker} {when}  {n.message}")

    if mark_read:
        await repo.mark_all_read(user.id)
        echo_success("Marked all as read")
