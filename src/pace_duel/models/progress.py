"""Progress tracking models."""

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from .challenge import ChallengeStatus, SportType, goals_to_dict


@dataclass
class ProgressBreakdown:
    """Per-sport and overall completion for one participant."""

    distances: dict[SportType, int]  # meters
    sport_percents: dict[SportType, int]
    overall_percent: int

    def to_dict(self) -> dict:
        return {
            "distances": {s.value: m for s, m in sorted(self.distances.items())},
            "sport_percents": {s.value: p for s, p in sorted(self.sport_percents.items())},
            "overall_percent": self.overall_percent,
        }


@dataclass
class DailyProgress:
    """Cumulative progress of one participant in one challenge on a date.

    At most one record exists per (challenge, user, date); the most recent
    date is the participant's current progress.
    """

    challenge_id: int
    user_id: int
    date: date
    distances: dict[SportType, int] = field(default_factory=dict)
    progress_percent: int = 0
    updated_at: datetime | None = None
    id: int | None = None

    def distance_for(self, sport: SportType) -> int:
        return self.distances.get(sport, 0)

    def to_dict(self) -> dict:
        """Convert to dictionary for storage."""
        return {
            "challenge_id": self.challenge_id,
            "user_id": self.user_id,
            "date": self.date.isoformat(),
            "distances": {s.value: m for s, m in sorted(self.distances.items())},
            "progress_percent": self.progress_percent,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }

    @classmethod
    def from_dict(cls, data: dict, id: int | None = None) -> "DailyProgress":
        """Create from dictionary."""
        updated_at = None
        if data.get("updated_at"):
            updated_at = datetime.fromisoformat(data["updated_at"])

        return cls(
            id=id,
            challenge_id=data["challenge_id"],
            user_id=data["user_id"],
            date=date.fromisoformat(data["date"]),
            distances={SportType(k): int(v) for k, v in data.get("distances", {}).items()},
            progress_percent=data.get("progress_percent", 0),
            updated_at=updated_at,
        )


@dataclass
class WeekResult:
    """Immutable snapshot of both participants' progress at a week boundary."""

    challenge_id: int
    week_start: date
    user_a_id: int
    user_b_id: int
    user_a_percent: int
    user_b_percent: int
    winner_id: int | None = None
    created_at: datetime | None = None
    id: int | None = None

    @property
    def week_end(self) -> date:
        return self.week_start + timedelta(days=6)

    @property
    def is_tie(self) -> bool:
        return self.winner_id is None

    def to_dict(self) -> dict:
        return {
            "challenge_id": self.challenge_id,
            "week_start": self.week_start.isoformat(),
            "week_end": self.week_end.isoformat(),
            "user_a_id": self.user_a_id,
            "user_b_id": self.user_b_id,
            "user_a_percent": self.user_a_percent,
            "user_b_percent": self.user_b_percent,
            "winner_id": self.winner_id,
        }


@dataclass
class ParticipantProgress:
    """A participant's goals next to their current progress."""

    user_id: int
    username: str | None
    goals: dict[SportType, float]
    breakdown: ProgressBreakdown
    forfeited: bool = False

    def to_dict(self) -> dict:
        data = {
            "user_id": self.user_id,
            "username": self.username,
            "goals": goals_to_dict(self.goals),
            "forfeited": self.forfeited,
        }
        data.update(self.breakdown.to_dict())
        return data


@dataclass
class ChallengeProgress:
    """Progress view of a whole challenge."""

    challenge_id: int
    status: ChallengeStatus
    sport_types: set[SportType]
    start_date: date
    end_date: date
    seconds_remaining: int
    participants: list[ParticipantProgress]

    def to_dict(self) -> dict:
        return {
            "challenge_id": self.challenge_id,
            "status": self.status.value,
            "sport_types": sorted(s.value for s in self.sport_types),
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "seconds_remaining": self.seconds_remaining,
            "participants": [p.to_dict() for p in self.participants],
        }
