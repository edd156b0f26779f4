"""Database layer for pace-duel."""

from .engine import get_db_path, init_db
from .repositories import (
    ActivityRepository,
    ChallengeRepository,
    DailyProgressRepository,
    NotificationRepository,
    ParticipantRepository,
    UserRepository,
    WeekResultRepository,
)

__all__ = [
    "ActivityRepository",
    "ChallengeRepository",
    "DailyProgressRepository",
    "get_db_path",
    "init_db",
    "NotificationRepository",
    "ParticipantRepository",
    "UserRepository",
    "WeekResultRepository",
]
