"""Periodic sweeps and their APScheduler wiring.

The sweeps call the same transition, sync and snapshot code as the request
path, so running one early, late or twice changes nothing extra.
"""

import logging
from datetime import date
from pathlib import Path

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from apscheduler.triggers.interval import IntervalTrigger

from ..clients.base import ActivitySource
from ..config import get_settings
from ..db.repositories import ChallengeRepository
from ..models.challenge import ChallengeStatus
from .notifications import NotificationSink
from .reports import SweepReport
from .state_machine import TransitionEngine
from .sync import SyncOrchestrator
from .weekly_snapshot import WeeklySnapshotEngine

logger = logging.getLogger(__name__)

OPEN_STATUSES = (ChallengeStatus.PENDING, ChallengeStatus.SCHEDULED, ChallengeStatus.ACTIVE)


async def run_daily_status_sweep(
    today: date | None = None,
    db_path: Path | None = None,
    sink: NotificationSink | None = None,
) -> SweepReport:
    """Advance every non-terminal challenge to the status today's date implies."""
    repo = ChallengeRepository(db_path)
    engine = TransitionEngine(db_path, sink=sink)
    report = SweepReport(name="status")

    for status in OPEN_STATUSES:
        for challenge in await repo.list_by_status(status):
            if challenge.status != status:
                continue
            report.examined += 1
            try:
                before = challenge.status
                challenge = await engine.advance(challenge, today=today)
            except Exception:
                logger.exception(f"Status sweep failed for challenge {challenge.id}")
                report.failed += 1
                continue
            if challenge.status != before:
                report.changed += 1
            else:
                report.skipped += 1

    logger.info(report.summary())
    return report


async def run_sync_sweep(
    include_scheduled: bool | None = None,
    db_path: Path | None = None,
    sources: dict[str, ActivitySource] | None = None,
    today: date | None = None,
) -> SweepReport:
    """Refresh progress for every running challenge."""
    orchestrator = SyncOrchestrator(db_path, sources=sources)
    return await orchestrator.run_sync_sweep(include_scheduled=include_scheduled, today=today)


async def run_weekly_snapshot_sweep(
    today: date | None = None, db_path: Path | None = None
) -> SweepReport:
    """Record last week's result for every ACTIVE challenge."""
    return await WeeklySnapshotEngine(db_path).run_weekly_snapshot_sweep(today=today)


class ChallengeScheduler:
    """Runs the sync, daily status and weekly snapshot sweeps on a timer.

    Usage:
        scheduler = ChallengeScheduler()
        scheduler.start()
        # ... app runs ...
        scheduler.stop()
    """

    def __init__(
        self,
        db_path: Path | None = None,
        sink: NotificationSink | None = None,
        sources: dict[str, ActivitySource] | None = None,
    ):
        self.db_path = db_path
        self.sink = sink
        self.sources = sources
        self.scheduler: AsyncIOScheduler | None = None
        self._is_running = False

    @property
    def is_running(self) -> bool:
        return self._is_running and self.scheduler is not None

    def start(self) -> None:
        """Register the three jobs and start the scheduler on the running loop."""
        if self._is_running:
            logger.warning("Scheduler is already running")
            return

        settings = get_settings()
        self.scheduler = AsyncIOScheduler()

        self.scheduler.add_job(
            self._sync_job,
            IntervalTrigger(minutes=settings.sync_interval_minutes),
            id="activity_sync",
            name="Activity Sync",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.add_job(
            self._daily_job,
            CronTrigger(hour=settings.daily_sweep_hour, minute=0),
            id="daily_status_sweep",
            name="Daily Status Sweep",
            replace_existing=True,
            max_instances=1,
        )
        self.scheduler.add_job(
            self._weekly_job,
            CronTrigger(day_of_week="mon", hour=settings.weekly_sweep_hour, minute=5),
            id="weekly_snapshot",
            name="Weekly Snapshot",
            replace_existing=True,
            max_instances=1,
        )

        self.scheduler.start()
        self._is_running = True
        logger.info(
            f"Challenge scheduler started (sync every {settings.sync_interval_minutes} min, "
            f"daily sweep at {settings.daily_sweep_hour}:00, "
            f"weekly snapshot Mondays at {settings.weekly_sweep_hour}:05)"
        )

    def stop(self) -> None:
        """Gracefully shutdown the scheduler."""
        if not self._is_running or self.scheduler is None:
            return

        logger.info("Shutting down challenge scheduler...")
        self.scheduler.shutdown(wait=False)
        self._is_running = False
        self.scheduler = None
        logger.info("Challenge scheduler stopped")

    async def _sync_job(self) -> SweepReport:
        return await run_sync_sweep(db_path=self.db_path, sources=self.sources)

    async def _daily_job(self) -> SweepReport:
        # Fresh progress first so final winners use today's data
        await run_sync_sweep(db_path=self.db_path, sources=self.sources)
        return await run_daily_status_sweep(db_path=self.db_path, sink=self.sink)

    async def _weekly_job(self) -> SweepReport:
        return await run_weekly_snapshot_sweep(db_path=self.db_path)
