"""Run the sweep scheduler in the foreground."""

import asyncio

import click

from ..db import get_db_path
from ..services import ChallengeScheduler
from .base import async_command, echo_info, ensure_initialized


@click.group()
@click.pass_context
def scheduler(ctx):
    """Background sweep scheduling."""
    ensure_initialized(ctx)


@scheduler.command()
@async_command
async def run():
    """Run sync, daily and weekly sweeps on their schedule until interrupted."""
    job_runner = ChallengeScheduler(get_db_path())
    job_runner.start()
    echo_info("Scheduler running. Press Ctrl+C to stop.")
    try:
        await asyncio.Event().wait()
    finally:
        job_runner.stop()
