"""Pytest configuration and fixtures."""

import tempfile
from datetime import date
from pathlib import Path

import pytest
import pytest_asyncio

from pace_duel.clients.base import ActivityRecord
from pace_duel.config import get_settings
from pace_duel.db import (
    ChallengeRepository,
    ParticipantRepository,
    UserRepository,
    init_db,
)
from pace_duel.exceptions import ActivitySourceError
from pace_duel.models.challenge import Challenge, ChallengeStatus, Participant, SportType
from pace_duel.models.user import NotificationKind, User
from pace_duel.services.challenges import ChallengeService, generate_invite_code
from pace_duel.timeutils import today_in


class FakeActivitySource:
    """In-memory activity source keyed by user id."""

    def __init__(self, name: str = "fake"):
        self.name = name
        self.activities: dict[int, list[ActivityRecord]] = {}
        self.failing_users: set[int] = set()
        self.calls: list[tuple[int, date, date]] = []

    @property
    def source_name(self) -> str:
        return self.name

    def add(self, user_id: int, record: ActivityRecord) -> None:
        self.activities.setdefault(user_id, []).append(record)

    async def fetch_activities(self, user: User, start: date, end: date) -> list[ActivityRecord]:
        self.calls.append((user.id, start, end))
        if user.id in self.failing_users:
            raise ActivitySourceError("source unavailable", source=self.name)
        return [
            r for r in self.activities.get(user.id, []) if start <= r.start_day <= end
        ]


class RecordingSink:
    """Notification sink that keeps every notification in a list."""

    def __init__(self):
        self.sent: list[tuple[int, NotificationKind, int | None, str]] = []

    async def notify(self, user_id, kind, challenge: Challenge | None, message: str) -> None:
        self.sent.append((user_id, kind, challenge.id if challenge else None, message))

    def kinds_for(self, user_id: int) -> list[NotificationKind]:
        return [kind for uid, kind, _, _ in self.sent if uid == user_id]


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    """No pause between activity source calls and no sync on plain reads."""
    monkeypatch.setenv("PACE_DUEL_SYNC_DELAY_SECONDS", "0")
    monkeypatch.setenv("PACE_DUEL_SYNC_ON_READ", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def temp_db_path():
    """Create a temporary database path."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir) / "test.db"


@pytest_asyncio.fixture
async def db_path(temp_db_path):
    """An initialized database."""
    await init_db(temp_db_path)
    return temp_db_path


@pytest_asyncio.fixture
async def users(db_path) -> dict[str, User]:
    """Two users syncing from the fake source, plus one with nothing linked."""
    repo = UserRepository(db_path)
    created = {}
    for username, source in (("alice", "fake"), ("bob", "fake"), ("carol", None)):
        user = User(username=username, timezone="UTC", activity_source=source)
        user.id = await repo.create(user)
        created[username] = user
    return created


@pytest.fixture
def source():
    return FakeActivitySource()


@pytest.fixture
def sink():
    return RecordingSink()


@pytest.fixture
def today() -> date:
    return today_in("UTC")


@pytest.fixture
def make_challenge(db_path):
    """Insert a challenge in any status, bypassing create-time validation."""

    async def factory(
        creator: User,
        start: date,
        end: date,
        status: ChallengeStatus = ChallengeStatus.PENDING,
        opponent: User | None = None,
        creator_goals: dict | None = None,
        opponent_goals: dict | None = None,
    ) -> Challenge:
        creator_goals = creator_goals or {SportType.RUN: 50}
        opponent_goals = opponent_goals or {SportType.RUN: 60}
        sports = set(creator_goals) | (set(opponent_goals) if opponent else set())
        repo = ChallengeRepository(db_path)
        challenge_id = await repo.create(
            Challenge(
                creator_id=creator.id,
                name="Test Duel",
                invite_code=generate_invite_code(8),
                start_date=start,
                end_date=end,
                sport_types=sports,
                status=status,
            ),
            Participant(challenge_id=0, user_id=creator.id, goals=creator_goals),
        )
        if opponent is not None:
            await ParticipantRepository(db_path).add(
                Participant(challenge_id=challenge_id, user_id=opponent.id, goals=opponent_goals),
                max_participants=2,
            )
        return await repo.get(challenge_id)

    return factory


@pytest.fixture
def service(db_path, sink, source):
    """Challenge service wired to the recording sink and the fake source."""
    return ChallengeService(db_path, sink=sink, sources={"fake": source})
