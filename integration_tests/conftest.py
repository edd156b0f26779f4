"""Pytest configuration for integration tests."""

import tempfile
from datetime import date
from pathlib import Path

import pytest
import pytest_asyncio

from pace_duel.clients.base import ActivityRecord
from pace_duel.config import get_settings
from pace_duel.db import UserRepository, init_db
from pace_duel.models.user import User


# Mark all tests in this directory as integration tests
def pytest_collection_modifyitems(items):
    """Add integration marker to all tests in this directory."""
    for item in items:
        if "integration_tests" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


class ScriptedSource:
    """Activity source that serves a fixed list per user."""

    def __init__(self):
        self.activities: dict[int, list[ActivityRecord]] = {}

    @property
    def source_name(self) -> str:
        return "scripted"

    async def fetch_activities(self, user: User, start: date, end: date) -> list[ActivityRecord]:
        return [r for r in self.activities.get(user.id, []) if start <= r.start_day <= end]


class InboxSink:
    def __init__(self):
        self.sent = []

    async def notify(self, user_id, kind, challenge, message) -> None:
        self.sent.append((user_id, kind))


@pytest.fixture(autouse=True)
def fast_settings(monkeypatch):
    monkeypatch.setenv("PACE_DUEL_SYNC_DELAY_SECONDS", "0")
    monkeypatch.setenv("PACE_DUEL_SYNC_ON_READ", "false")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def source():
    return ScriptedSource()


@pytest.fixture
def sink():
    return InboxSink()


@pytest_asyncio.fixture
async def db_path():
    with tempfile.TemporaryDirectory() as tmpdir:
        path = Path(tmpdir) / "pipeline.db"
        await init_db(path)
        yield path


@pytest_asyncio.fixture
async def pair(db_path) -> tuple[User, User]:
    """Two users syncing from the scripted source."""
    repo = UserRepository(db_path)
    users = []
    for name in ("maya", "theo"):
        user = User(username=name, timezone="Europe/Berlin", activity_source="scripted")
        user.id = await repo.create(user)
        users.append(user)
    return users[0], users[1]
