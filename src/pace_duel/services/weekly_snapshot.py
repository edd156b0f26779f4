"""Weekly head-to-head snapshots for running and just-finished challenges."""

import logging
from datetime import date, timedelta
from pathlib import Path

from ..config import get_settings
from ..db.repositories import (
    ChallengeRepository,
    ParticipantRepository,
    WeekResultRepository,
)
from ..models.challenge import Challenge, ChallengeStatus
from ..models.progress import WeekResult
from ..timeutils import previous_week_start, today_in
from .reports import SweepReport
from .winner import WinnerResolver, resolve_winner

logger = logging.getLogger(__name__)


class WeeklySnapshotEngine:
    """Writes one WeekResult per challenge per finished Monday-Sunday week."""

    def __init__(self, db_path: Path | None = None):
        self.challenge_repo = ChallengeRepository(db_path)
        self.participant_repo = ParticipantRepository(db_path)
        self.week_repo = WeekResultRepository(db_path)
        self.winner_resolver = WinnerResolver(db_path)

    async def run_weekly_snapshot_sweep(self, today: date | None = None) -> SweepReport:
        """Snapshot the previous week of every ACTIVE challenge.

        Challenges that completed on schedule during that week are included,
        since the daily sweep closes them before this one runs.
        """
        report = SweepReport(name="weekly snapshot")
        for challenge in await self._candidates(today):
            report.examined += 1
            try:
                written = await self.snapshot_challenge(challenge, today=today)
            except Exception:
                logger.exception(f"Weekly snapshot failed for challenge {challenge.id}")
                report.failed += 1
                continue
            if written:
                report.changed += 1
            else:
                report.skipped += 1

        logger.info(report.summary())
        return report

    async def _candidates(self, today: date | None) -> list[Challenge]:
        active = await self.challenge_repo.list_by_status(ChallengeStatus.ACTIVE)
        # Wide enough for any creator timezone; snapshot_challenge checks the week
        reference = today or today_in("UTC")
        completed = await self.challenge_repo.list_ended_between(
            ChallengeStatus.COMPLETED,
            reference - timedelta(days=15),
            reference + timedelta(days=1),
        )
        return active + completed

    async def snapshot_challenge(
        self, challenge: Challenge, today: date | None = None
    ) -> WeekResult | None:
        """Record the week before the one containing ``today``.

        Returns the stored result, or None when the week was skipped or
        already recorded.
        """
        today = today or today_in(
            challenge.creator_timezone or get_settings().default_timezone
        )
        week_start = previous_week_start(today)
        week_end = week_start + timedelta(days=6)

        if week_end < challenge.start_date or week_start > challenge.end_date:
            return None
        if challenge.status == ChallengeStatus.COMPLETED and not (
            week_start <= challenge.end_date <= week_end
        ):
            return None

        participants = await self.participant_repo.list_for_challenge(challenge.id)
        if len(participants) != 2:
            logger.warning(
                f"Challenge {challenge.id} has {len(participants)} participants, "
                f"skipping week of {week_start}"
            )
            return None

        if await self.week_repo.exists(challenge.id, week_start):
            return None

        percents = await self.winner_resolver.latest_percents(
            challenge.id, participants, as_of=week_end
        )
        user_a, user_b = participants
        result = WeekResult(
            challenge_id=challenge.id,
            week_start=week_start,
            user_a_id=user_a.user_id,
            user_b_id=user_b.user_id,
            user_a_percent=percents[user_a.user_id],
            user_b_percent=percents[user_b.user_id],
            winner_id=resolve_winner(participants, percents),
        )
        if not await self.week_repo.create(result):
            return None

        logger.info(
            f"Challenge {challenge.id} week of {week_start}: "
            f"{result.user_a_percent}% vs {result.user_b_percent}%, "
            f"winner={result.winner_id}"
        )
        return result
