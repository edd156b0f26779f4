"""User and notification models."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum


@dataclass
class User:
    """An account that can create and join challenges.

    ``activity_source`` names the linked external data source ("strava",
    "manual"); ``None`` means the user has nothing to sync from.
    """

    username: str
    email: str | None = None
    timezone: str | None = None
    activity_source: str | None = None
    created_at: datetime | None = None
    id: int | None = None

    @property
    def has_activity_source(self) -> bool:
        return self.activity_source is not None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "username": self.username,
            "email": self.email,
            "timezone": self.timezone,
            "activity_source": self.activity_source,
        }


class NotificationKind(str, Enum):
    """Events a participant is told about."""

    OPPONENT_JOINED = "opponent_joined"
    CHALLENGE_STARTED = "challenge_started"
    CHALLENGE_WON = "challenge_won"
    CHALLENGE_LOST = "challenge_lost"
    CHALLENGE_TIE = "challenge_tie"
    OPPONENT_FORFEITED = "opponent_forfeited"
    CHALLENGE_EXPIRED = "challenge_expired"


@dataclass
class Notification:
    """A stored notification for a user."""

    user_id: int
    kind: NotificationKind
    message: str
    challenge_id: int | None = None
    read: bool = False
    created_at: datetime | None = None
    id: int | None = None

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "kind": self.kind.value,
            "challenge_id": self.challenge_id,
            "message": self.message,
            "read": self.read,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }
