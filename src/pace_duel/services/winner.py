"""Decide the winner of a challenge (or a week) from forfeits and progress."""

from datetime import date
from pathlib import Path

from ..db.repositories import DailyProgressRepository
from ..models.challenge import Participant


def resolve_winner(participants: list[Participant], percents: dict[int, int]) -> int | None:
    """Return the winning user id, or None for a tie / no contest.

    Forfeited participants are dropped first. A single remaining participant
    wins outright. With two, the strictly higher percent wins; a participant
    with no percent counts as 0.
    """
    remaining = [p for p in participants if not p.has_forfeited]
    if not remaining:
        return None
    if len(remaining) == 1:
        return remaining[0].user_id

    scored = sorted(
        ((percents.get(p.user_id, 0), p.user_id) for p in remaining), reverse=True
    )
    best_percent, best_user = scored[0]
    if scored[1][0] == best_percent:
        return None
    return best_user


class WinnerResolver:
    """Resolve winners using each participant's stored progress."""

    def __init__(self, db_path: Path | None = None):
        self.progress_repo = DailyProgressRepository(db_path)

    async def latest_percents(
        self,
        challenge_id: int,
        participants: list[Participant],
        as_of: date | None = None,
    ) -> dict[int, int]:
        """Latest overall percent per user, optionally on or before ``as_of``."""
        percents: dict[int, int] = {}
        for participant in participants:
            record = await self.progress_repo.get_latest(
                challenge_id, participant.user_id, as_of=as_of
            )
            percents[participant.user_id] = record.progress_percent if record else 0
        return percents

    async def resolve(
        self,
        challenge_id: int,
        participants: list[Participant],
        as_of: date | None = None,
    ) -> int | None:
        percents = await self.latest_percents(challenge_id, participants, as_of=as_of)
        return resolve_winner(participants, percents)
