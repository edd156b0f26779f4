"""Challenge lifecycle services."""

from .challenges import ChallengeService
from .goal_progress import calculate_progress, overall_percent, sport_percent
from .notifications import NotificationService, NotificationSink, StoredNotificationSink
from .reports import SweepReport
from .scheduler import (
    ChallengeScheduler,
    run_daily_status_sweep,
    run_sync_sweep,
    run_weekly_snapshot_sweep,
)
from .state_machine import TransitionEngine, Trigger, evaluate_transition
from .sync import SyncOrchestrator
from .weekly_snapshot import WeeklySnapshotEngine
from .winner import WinnerResolver, resolve_winner

__all__ = [
    "calculate_progress",
    "ChallengeScheduler",
    "ChallengeService",
    "evaluate_transition",
    "NotificationService",
    "NotificationSink",
    "overall_percent",
    "resolve_winner",
    "run_daily_status_sweep",
    "run_sync_sweep",
    "run_weekly_snapshot_sweep",
    "sport_percent",
    "StoredNotificationSink",
    "SweepReport",
    "SyncOrchestrator",
    "TransitionEngine",
    "Trigger",
    "WeeklySnapshotEngine",
    "WinnerResolver",
]
