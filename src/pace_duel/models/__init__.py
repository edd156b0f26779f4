"""Data models for pace-duel."""

from .challenge import (
    Challenge,
    ChallengeStatus,
    ChallengeView,
    Participant,
    SportType,
)
from .progress import (
    ChallengeProgress,
    DailyProgress,
    ParticipantProgress,
    ProgressBreakdown,
    WeekResult,
)
from .user import Notification, NotificationKind, User

__all__ = [
    "Challenge",
    "ChallengeProgress",
    "ChallengeStatus",
    "ChallengeView",
    "DailyProgress",
    "Notification",
    "NotificationKind",
    "Participant",
    "ParticipantProgress",
    "ProgressBreakdown",
    "SportType",
    "User",
    "WeekResult",
]
