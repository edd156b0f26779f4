"""Challenge and participant data models."""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum


class SportType(str, Enum):
    """Activity types a challenge can count distance for."""

    RUN = "RUN"
    RIDE = "RIDE"
    SWIM = "SWIM"
    WALK = "WALK"

    @classmethod
    def parse(cls, value: str) -> "SportType":
        """Parse a sport name case-insensitively."""
        try:
            return cls(value.strip().upper())
        except ValueError:
            valid = ", ".join(s.value for s in cls)
            raise ValueError(f"Unknown sport '{value}' (expected one of: {valid})") from None


class ChallengeStatus(str, Enum):
    """Challenge lifecycle status."""

    PENDING = "PENDING"  # waiting for an opponent
    SCHEDULED = "SCHEDULED"  # both joined, start date in the future
    ACTIVE = "ACTIVE"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"
    EXPIRED = "EXPIRED"  # nobody joined before the end date

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES


TERMINAL_STATUSES = frozenset(
    {ChallengeStatus.COMPLETED, ChallengeStatus.CANCELLED, ChallengeStatus.EXPIRED}
)


def goals_to_dict(goals: dict[SportType, float]) -> dict[str, float]:
    """Serialize a goal mapping with string keys."""
    return {sport.value: float(km) for sport, km in sorted(goals.items())}


def goals_from_dict(data: dict) -> dict[SportType, float]:
    """Deserialize a goal mapping, accepting any sport name casing."""
    return {SportType.parse(k): float(v) for k, v in data.items()}


@dataclass
class Participant:
    """A user's membership in a challenge with their per-sport goals (km)."""

    challenge_id: int
    user_id: int
    goals: dict[SportType, float]
    joined_at: datetime | None = None
    forfeited_at: datetime | None = None
    id: int | None = None
    username: str | None = None

    @property
    def has_forfeited(self) -> bool:
        return self.forfeited_at is not None

    def to_dict(self) -> dict:
        """Convert to dictionary for storage and API output."""
        return {
            "user_id": self.user_id,
            "username": self.username,
            "goals": goals_to_dict(self.goals),
            "joined_at": self.joined_at.isoformat() if self.joined_at else None,
            "forfeited_at": self.forfeited_at.isoformat() if self.forfeited_at else None,
        }


@dataclass
class Challenge:
    """A timed head-to-head competition between two users.

    ``creator_timezone`` is not stored on the challenge itself; repositories
    fill it from the creator's user record so status checks can work out
    "today" where the creator lives.
    """

    creator_id: int
    name: str
    invite_code: str
    start_date: date
    end_date: date
    sport_types: set[SportType] = field(default_factory=set)
    status: ChallengeStatus = ChallengeStatus.PENDING
    winner_id: int | None = None
    created_at: datetime | None = None
    id: int | None = None
    creator_timezone: str | None = None

    def sport_types_to_str(self) -> str:
        """Comma-separated sport list for storage."""
        return ",".join(sorted(s.value for s in self.sport_types))

    @staticmethod
    def sport_types_from_str(value: str | None) -> set[SportType]:
        if not value:
            return set()
        return {SportType(v) for v in value.split(",") if v}

    @property
    def total_days(self) -> int:
        return (self.end_date - self.start_date).days + 1

    def to_dict(self) -> dict:
        """Convert to dictionary for API output."""
        return {
            "id": self.id,
            "creator_id": self.creator_id,
            "name": self.name,
            "invite_code": self.invite_code,
            "sport_types": sorted(s.value for s in self.sport_types),
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "status": self.status.value,
            "winner_id": self.winner_id,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def union_sport_types(participants: list[Participant]) -> set[SportType]:
    """Sport set of a challenge: the union of every participant's goal keys."""
    sports: set[SportType] = set()
    for participant in participants:
        sports.update(participant.goals.keys())
    return sports


@dataclass
class ChallengeView:
    """A challenge together with its participants, as returned to callers."""

    challenge: Challenge
    participants: list[Participant]

    def to_dict(self) -> dict:
        data = self.challenge.to_dict()
        data["participants"] = [p.to_dict() for p in self.participants]
        return data
