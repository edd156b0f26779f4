"""Pull activity data for challenge participants and record their progress."""

import asyncio
import logging
from datetime import date
from pathlib import Path

import httpx

from ..clients.base import ActivityRecord, ActivitySource
from ..config import get_settings
from ..db.repositories import (
    ActivityRepository,
    ChallengeRepository,
    DailyProgressRepository,
    ParticipantRepository,
    UserRepository,
)
from ..exceptions import ActivitySourceError
from ..models.challenge import Challenge, ChallengeStatus, Participant
from ..models.progress import DailyProgress
from ..models.user import User
from ..timeutils import today_in
from .goal_progress import calculate_progress
from .reports import SweepReport

logger = logging.getLogger(__name__)

FetchKey = tuple[int, str, date, date]


def default_sources(db_path: Path | None = None) -> dict[str, ActivitySource]:
    """The built-in sources keyed by the name stored on users."""
    from ..clients.manual import ManualActivitySource
    from ..clients.strava import StravaActivitySource

    sources: list[ActivitySource] = [
        StravaActivitySource(db_path=db_path),
        ManualActivitySource(db_path=db_path),
    ]
    return {source.source_name: source for source in sources}


def sync_window(challenge: Challenge, today: date) -> tuple[date, date] | None:
    """Days of activity that count toward the challenge so far, or None before it starts."""
    end = min(today, challenge.end_date)
    if end < challenge.start_date:
        return None
    return challenge.start_date, end


class SyncOrchestrator:
    """Fetches activities per participant and upserts their daily progress.

    A failure for one participant is logged and counted; it never stops the
    other participants or challenges. Fetches for the same user and window
    are made once per pass.
    """

    def __init__(
        self,
        db_path: Path | None = None,
        sources: dict[str, ActivitySource] | None = None,
        concurrency: int | None = None,
        delay_seconds: float | None = None,
    ):
        settings = get_settings()
        self.sources = sources if sources is not None else default_sources(db_path)
        self.concurrency = concurrency or settings.sync_concurrency
        self.delay_seconds = (
            settings.sync_delay_seconds if delay_seconds is None else delay_seconds
        )
        self.challenge_repo = ChallengeRepository(db_path)
        self.participant_repo = ParticipantRepository(db_path)
        self.user_repo = UserRepository(db_path)
        self.activity_repo = ActivityRepository(db_path)
        self.progress_repo = DailyProgressRepository(db_path)

    async def run_sync_sweep(
        self, include_scheduled: bool | None = None, today: date | None = None
    ) -> SweepReport:
        """Sync every ACTIVE (and optionally SCHEDULED) challenge."""
        if include_scheduled is None:
            include_scheduled = get_settings().sync_include_scheduled

        statuses = [ChallengeStatus.ACTIVE]
        if include_scheduled:
            statuses.append(ChallengeStatus.SCHEDULED)

        challenges: list[Challenge] = []
        for status in statuses:
            challenges.extend(await self.challenge_repo.list_by_status(status))

        report = SweepReport(name="sync")
        cache: dict[FetchKey, asyncio.Task] = {}
        semaphore = asyncio.Semaphore(self.concurrency)
        results = await asyncio.gather(
            *(
                self.sync_challenge(c, today=today, _cache=cache, _semaphore=semaphore)
                for c in challenges
            ),
            return_exceptions=True,
        )
        for challenge, result in zip(challenges, results):
            if isinstance(result, BaseException):
                logger.error(f"Sync of challenge {challenge.id} failed: {result!r}")
                report.failed += 1
            else:
                report.merge(result)

        logger.info(report.summary())
        return report

    async def sync_challenge(
        self,
        challenge: Challenge,
        today: date | None = None,
        only_user_id: int | None = None,
        _cache: dict[FetchKey, asyncio.Task] | None = None,
        _semaphore: asyncio.Semaphore | None = None,
    ) -> SweepReport:
        """Sync the non-forfeited participants of one challenge.

        Args:
            challenge: Challenge to sync
            today: Date in the creator's timezone (computed when omitted)
            only_user_id: Restrict the sync to one participant
        """
        report = SweepReport(name=f"sync challenge {challenge.id}")
        today = today or today_in(
            challenge.creator_timezone or get_settings().default_timezone
        )
        window = sync_window(challenge, today)
        participants = await self.participant_repo.list_for_challenge(challenge.id)
        if only_user_id is not None:
            participants = [p for p in participants if p.user_id == only_user_id]
        active = [p for p in participants if not p.has_forfeited]
        report.examined = len(active)

        if window is None or not active:
            report.skipped = len(active)
            return report

        cache = _cache if _cache is not None else {}
        semaphore = _semaphore or asyncio.Semaphore(self.concurrency)
        users = await self.user_repo.get_many([p.user_id for p in active])

        outcomes = await asyncio.gather(
            *(
                self._sync_participant(
                    challenge, p, users.get(p.user_id), today, window, cache, semaphore
                )
                for p in active
            )
        )
        for outcome in outcomes:
            if outcome is None:
                report.skipped += 1
            elif outcome:
                report.changed += 1
            else:
                report.failed += 1
        return report

    async def _sync_participant(
        self,
        challenge: Challenge,
        participant: Participant,
        user: User | None,
        today: date,
        window: tuple[date, date],
        cache: dict[FetchKey, asyncio.Task],
        semaphore: asyncio.Semaphore,
    ) -> bool | None:
        """Returns True when progress was written, False on failure, None if skipped."""
        if user is None or not user.has_activity_source:
            return None
        source = self.sources.get(user.activity_source)
        if source is None:
            logger.warning(
                f"User {user.id} linked unknown activity source {user.activity_source!r}"
            )
            return None

        start, end = window
        try:
            await self._shared_fetch(user, source, start, end, cache, semaphore)
            distances = await self.activity_repo.sum_distance_by_sport(
                user.id, start, end, sports=challenge.sport_types
            )
            breakdown = calculate_progress(
                distances, participant.goals, sports=challenge.sport_types
            )
            await self.progress_repo.upsert(
                DailyProgress(
                    challenge_id=challenge.id,
                    user_id=user.id,
                    date=today,
                    distances=breakdown.distances,
                    progress_percent=breakdown.overall_percent,
                )
            )
        except (ActivitySourceError, httpx.HTTPError) as e:
            logger.warning(
                f"Sync failed for user {user.id} in challenge {challenge.id}: {e}"
            )
            return False
        except Exception:
            logger.exception(
                f"Unexpected error syncing user {user.id} in challenge {challenge.id}"
            )
            return False

        logger.debug(
            f"Challenge {challenge.id} user {user.id}: {breakdown.overall_percent}%"
        )
        return True

    async def _shared_fetch(
        self,
        user: User,
        source: ActivitySource,
        start: date,
        end: date,
        cache: dict[FetchKey, asyncio.Task],
        semaphore: asyncio.Semaphore,
    ) -> list[ActivityRecord]:
        key = (user.id, source.source_name, start, end)
        task = cache.get(key)
        if task is None:
            task = asyncio.ensure_future(
                self._fetch_and_store(user, source, start, end, semaphore)
            )
            cache[key] = task
        return await task

    async def _fetch_and_store(
        self,
        user: User,
        source: ActivitySource,
        start: date,
        end: date,
        semaphore: asyncio.Semaphore,
    ) -> list[ActivityRecord]:
        async with semaphore:
            try:
                records = await source.fetch_activities(user, start, end)
            finally:
                if self.delay_seconds:
                    await asyncio.sleep(self.delay_seconds)
        added = await self.activity_repo.save_many(user.id, source.source_name, records)
        if added:
            logger.info(f"Stored {added} new {source.source_name} activities for user {user.id}")
        return records
