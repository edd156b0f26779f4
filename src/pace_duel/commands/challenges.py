"""Challenge commands: create, join, rename, leave, finish, delete and inspect."""

import click

from ..clients.manual import ManualEntryClient
from ..db import get_db_path
from ..models.challenge import ChallengeStatus, ChallengeView
from ..services import ChallengeService
from .base import (
    async_command,
    echo_info,
    echo_success,
    ensure_initialized,
    format_table,
    parse_goals,
    require_user,
)

DATE = click.DateTime(formats=["%Y-%m-%d"])
GOAL_HELP = "Goal as SPORT=KM, repeatable (e.g. --goal RUN=50 --goal RIDE=200)"


def _service() -> ChallengeService:
    return ChallengeService(get_db_path())


async def _goals_or_prompt(goal: tuple[str, ...]):
    if goal:
        return parse_goals(goal)
    return await ManualEntryClient().collect_goals()


def _print_view(view: ChallengeView) -> None:
    c = view.challenge
    click.echo()
    click.echo("=" * 50)
    click.echo(f"{c.name} (ID: {c.id})")
    click.echo("=" * 50)
    click.echo(f"Status:  {c.status.value}")
    click.echo(f"Invite:  {c.invite_code}")
    click.echo(f"Dates:   {c.start_date} to {c.end_date} ({c.total_days} days)")
    click.echo(f"Sports:  {', '.join(sorted(s.value for s in c.sport_types))}")
    if c.winner_id is not None:
        winner = next((p for p in view.participants if p.user_id == c.winner_id), None)
        click.echo(f"Winner:  {winner.username if winner else c.winner_id}")
    elif c.status == ChallengeStatus.COMPLETED:
        click.echo("Result:  tie")
    click.echo()
    for p in view.participants:
        goals = ", ".join(f"{s.value} {km:g} km" for s, km in sorted(p.goals.items()))
        suffix = " (forfeited)" if p.has_forfeited else ""
        click.echo(f"  - {p.username}: {goals}{suffix}")


@click.group()
@click.pass_context
def challenge(ctx):
    """Create and manage challenges."""
    ensure_initialized(ctx)


@challenge.command()
@click.option("--as", "username", required=True, help="Acting user")
@click.option("--name", help="Challenge name")
@click.option("--start", "start", type=DATE, required=True, help="Start date (YYYY-MM-DD)")
@click.option("--end", "end", type=DATE, required=True, help="End date (YYYY-MM-DD)")
@click.option("--goal", multiple=True, help=GOAL_HELP)
@click.option("--timezone", "tz", help="Your IANA timezone")
@async_command
async def create(username, name, start, end, goal, tz):
    """Create a challenge and print its invite code.

    Without --goal you are asked for goals interactively.
    """
    user = await require_user(username)
    goals = await _goals_or_prompt(goal)
    view = await _service().create_challenge(
        user.id, name, start.date(), end.date(), goals, timezone=tz
    )
    echo_success(f"Challenge created. Invite code: {view.challenge.invite_code}")
    _print_view(view)


@challenge.command()
@click.argument("invite_code")
@click.option("--as", "username", required=True, help="Acting user")
@click.option("--goal", multiple=True, help=GOAL_HELP)
@async_command
async def join(invite_code, username, goal):
    """Join a challenge with an invite code."""
    user = await require_user(username)
    goals = await _goals_or_prompt(goal)
    view = await _service().join_challenge(user.id, invite_code, goals)
    echo_success(f"Joined '{view.challenge.name}' ({view.challenge.status.value})")
    _print_view(view)


@challenge.command()
@click.argument("invite_code")
@async_command
async def preview(invite_code):
    """Look at a challenge before joining it."""
    _print_view(await _service().get_challenge_by_invite_code(invite_code))


@challenge.command()
@click.argument("challenge_id", type=int)
@click.option("--as", "username", required=True, help="Acting user")
@async_command
async def leave(challenge_id, username):
    """Leave a scheduled challenge, or forfeit an active one."""
    user = await require_user(username)
    view = await _service().leave_challenge(challenge_id, user.id)
    echo_success(f"Left challenge {challenge_id} (now {view.challenge.status.value})")


@challenge.command()
@click.argument("challenge_id", type=int)
@click.option("--as", "username", required=True, help="Acting user")
@async_command
async def finish(challenge_id, username):
    """Finish early and win after your opponent forfeited."""
    user = await require_user(username)
    view = await _service().finish_challenge(challenge_id, user.id)
    echo_success(f"Challenge {challenge_id} completed")
    _print_view(view)


@challenge.command()
@click.argument("challenge_id", type=int)
@click.option("--as", "username", required=True, help="Acting user")
@click.confirmation_option(prompt="Delete this challenge and all its progress?")
@async_command
async def delete(challenge_id, username):
    """Delete a challenge you created."""
    user = await require_user(username)
    await _service().delete_challenge(challenge_id, user.id)
    echo_success(f"Challenge {challenge_id} deleted")


@challenge.command()
@click.argument("challenge_id", type=int)
@click.argument("name")
@click.option("--as", "username", required=True, help="Acting user")
@async_command
async def rename(challenge_id, name, username):
    """Rename a challenge you created."""
    user = await require_user(username)
    view = await _service().update_challenge(challenge_id, user.id, name=name)
    echo_success(f"Challenge {challenge_id} renamed to {view.challenge.name}")


@challenge.command()
@click.argument("challenge_id", type=int)
@click.option("--no-sync", is_flag=True, help="Do not pull fresh activity data")
@async_command
async def show(challenge_id, no_sync):
    """Show a challenge."""
    view = await _service().get_challenge(challenge_id, sync=False if no_sync else None)
    _print_view(view)


@challenge.command(name="list")
@click.option("--as", "username", required=True, help="User whose challenges to list")
@click.option(
    "--status",
    type=click.Choice([s.value for s in ChallengeStatus], case_sensitive=False),
    help="Only challenges in this status",
)
@async_command
async def list_challenges(username, status):
    """List a user's challenges."""
    user = await require_user(username)
    views = await _service().list_user_challenges(
        user.id, ChallengeStatus(status.upper()) if status else None
    )
    if not views:
        echo_info("No challenges found")
        return

    rows = []
    for view in views:
        c = view.challenge
        rows.append([
            str(c.id),
            c.name[:30] + "..." if len(c.name) > 30 else c.name,
            c.status.value,
            f"{c.start_date} - {c.end_date}",
            str(len(view.participants)),
            c.invite_code,
        ])
    click.echo()
    click.echo(format_table(["ID", "Name", "Status", "Dates", "Players", "Invite"], rows))
    click.echo()
    click.echo(f"Total: {len(views)} challenge(s)")


@challenge.command()
@click.argument("challenge_id", type=int)
@async_command
async def progress(challenge_id):
    """Show each participant's progress."""
    data = await _service().get_progress(challenge_id)
    click.echo()
    click.echo(f"Challenge {data.challenge_id}: {data.status.value}")
    if data.seconds_remaining:
        days, rest = divmod(data.seconds_remaining, 86400)
        click.echo(f"Time left: {days}d {rest // 3600}h")
    click.echo()

    for p in data.participants:
        suffix = " (forfeited)" if p.forfeited else ""
        click.echo(f"{p.username}: {p.breakdown.overall_percent}%{suffix}")
        for sport, km in sorted(p.goals.items()):
            meters = p.breakdown.distances.get(sport, 0)
            percent = p.breakdown.sport_percents.get(sport, 0)
            click.echo(f"  {sport.value:<5} {meters / 1000:.1f} / {km:g} km  ({percent}%)")


@challenge.command()
@click.argument("challenge_id", type=int)
@async_command
async def weeks(challenge_id):
    """Show weekly snapshot results."""
    results = await _service().list_week_results(challenge_id)
    if not results:
        echo_info("No weekly results yet")
        return

    rows = [
        [
            f"{r.week_start} - {r.week_end}",
            f"{r.user_a_percent}%",
            f"{r.user_b_percent}%",
            "tie" if r.is_tie else str(r.winner_id),
        ]
        for r in results
    ]
    click.echo()
    click.echo(format_table(["Week", "A", "B", "Winner"], rows))
