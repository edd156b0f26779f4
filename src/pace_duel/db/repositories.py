"""Data access layer for pace-duel."""

import json
from datetime import date, datetime, timezone
from pathlib import Path

import aiosqlite

from ..clients.base import ActivityRecord
from ..models.challenge import (
    Challenge,
    ChallengeStatus,
    Participant,
    SportType,
    goals_from_dict,
    goals_to_dict,
)
from ..models.progress import DailyProgress, WeekResult
from ..models.user import Notification, NotificationKind, User
from .engine import get_db_path


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_ts(value: str | None) -> datetime | None:
    """Parse a stored timestamp (ISO string or SQLite CURRENT_TIMESTAMP)."""
    if not value:
        return None
    return datetime.fromisoformat(value)


class UserRepository:
    """Repository for users and their activity source connections."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or get_db_path()

    async def create(self, user: User) -> int:
        """Create a new user."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                """
                INSERT INTO users (username, email, timezone, activity_source)
                VALUES (?, ?, ?, ?)
                """,
                (user.username, user.email, user.timezone, user.activity_source),
            )
            await db.commit()
            return cursor.lastrowid

    async def get(self, user_id: int) -> User | None:
        """Get a user by ID."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute("SELECT * FROM users WHERE id = ?", (user_id,))
            row = await cursor.fetchone()
            if row is None:
                return None
            return self._row_to_user(row)

    async def get_by_username(self, username: str) -> User | None:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM users WHERE username = ?", (username,)
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            return self._row_to_user(row)

    async def get_many(self, user_ids: list[int]) -> dict[int, User]:
        """Get several users keyed by ID."""
        if not user_ids:
            return {}
        placeholders = ",".join("?" for _ in user_ids)
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                f"SELECT * FROM users WHERE id IN ({placeholders})", tuple(user_ids)
            )
            rows = await cursor.fetchall()
            return {row["id"]: self._row_to_user(row) for row in rows}

    async def list_all(self) -> list[User]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute("SELECT * FROM users ORDER BY id")
            rows = await cursor.fetchall()
            return [self._row_to_user(row) for row in rows]

    async def update(self, user: User) -> None:
        """Update an existing user."""
        if user.id is None:
            raise ValueError("User must have an ID to update")

        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                UPDATE users SET email = ?, timezone = ?, activity_source = ?
                WHERE id = ?
                """,
                (user.email, user.timezone, user.activity_source, user.id),
            )
            await db.commit()

    async def save_connection(
        self,
        user_id: int,
        source: str,
        access_token: str,
        refresh_token: str | None = None,
        expires_at: datetime | None = None,
    ) -> None:
        """Store tokens for a user's external source and mark it linked."""
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO activity_connections
                (user_id, source, access_token, refresh_token, expires_at)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(user_id) DO UPDATE SET
                    source = excluded.source,
                    access_token = excluded.access_token,
                    refresh_token = excluded.refresh_token,
                    expires_at = excluded.expires_at
                """,
                (
                    user_id,
                    source,
                    access_token,
                    refresh_token,
                    expires_at.isoformat() if expires_at else None,
                ),
            )
            await db.execute(
                "UPDATE users SET activity_source = ? WHERE id = ?", (source, user_id)
            )
            await db.commit()

    async def get_access_token(self, user_id: int, source: str) -> str | None:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT access_token FROM activity_connections WHERE user_id = ? AND source = ?",
                (user_id, source),
            )
            row = await cursor.fetchone()
            return row[0] if row else None

    def _row_to_user(self, row: aiosqlite.Row) -> User:
        return User(
            id=row["id"],
            username=row["username"],
            email=row["email"],
            timezone=row["timezone"],
            activity_source=row["activity_source"],
            created_at=_parse_ts(row["created_at"]),
        )


_CHALLENGE_SELECT = """
    SELECT c.*, u.timezone AS creator_timezone
    FROM challenges c
    LEFT JOIN users u ON u.id = c.created_by
"""


class ChallengeRepository:
    """Repository for challenges.

    Status only changes through ``compare_and_set_status`` so two writers
    racing on the same row cannot both apply a transition.
    """

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or get_db_path()

    async def create(self, challenge: Challenge, creator: Participant) -> int:
        """Create a challenge and its creator's participant row together."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                """
                INSERT INTO challenges
                (created_by, name, invite_code, sport_types, start_date, end_date, status)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    challenge.creator_id,
                    challenge.name,
                    challenge.invite_code,
                    challenge.sport_types_to_str(),
                    challenge.start_date.isoformat(),
                    challenge.end_date.isoformat(),
                    challenge.status.value,
                ),
            )
            challenge_id = cursor.lastrowid
            await db.execute(
                """
                INSERT INTO challenge_participants (challenge_id, user_id, goals, joined_at)
                VALUES (?, ?, ?, ?)
                """,
                (
                    challenge_id,
                    creator.user_id,
                    json.dumps(goals_to_dict(creator.goals)),
                    utcnow().isoformat(),
                ),
            )
            await db.commit()
            return challenge_id

    async def get(self, challenge_id: int) -> Challenge | None:
        """Get a challenge by ID."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                _CHALLENGE_SELECT + " WHERE c.id = ?", (challenge_id,)
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            return self._row_to_challenge(row)

    async def get_by_invite_code(self, invite_code: str) -> Challenge | None:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                _CHALLENGE_SELECT + " WHERE c.invite_code = ?", (invite_code.upper(),)
            )
            row = await cursor.fetchone()
            if row is None:
                return None
            return self._row_to_challenge(row)

    async def invite_code_exists(self, invite_code: str) -> bool:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT 1 FROM challenges WHERE invite_code = ?", (invite_code,)
            )
            return await cursor.fetchone() is not None

    async def list_by_status(self, status: ChallengeStatus) -> list[Challenge]:
        """List every challenge currently in ``status``."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                _CHALLENGE_SELECT + " WHERE c.status = ? ORDER BY c.id",
                (status.value,),
            )
            rows = await cursor.fetchall()
            return [self._row_to_challenge(row) for row in rows]

    async def list_ended_between(
        self, status: ChallengeStatus, start: date, end: date
    ) -> list[Challenge]:
        """List challenges in ``status`` whose end date falls in ``start..end``."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                _CHALLENGE_SELECT
                + " WHERE c.status = ? AND c.end_date BETWEEN ? AND ? ORDER BY c.id",
                (status.value, start.isoformat(), end.isoformat()),
            )
            rows = await cursor.fetchall()
            return [self._row_to_challenge(row) for row in rows]

    async def list_for_user(
        self, user_id: int, status: ChallengeStatus | None = None
    ) -> list[Challenge]:
        """List challenges the user participates in, newest first."""
        query = (
            _CHALLENGE_SELECT
            + """
            JOIN challenge_participants p ON p.challenge_id = c.id
            WHERE p.user_id = ?
            """
        )
        params: tuple = (user_id,)
        if status is not None:
            query += " AND c.status = ?"
            params = (user_id, status.value)
        query += " ORDER BY c.created_at DESC, c.id DESC"

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, params)
            rows = await cursor.fetchall()
            return [self._row_to_challenge(row) for row in rows]

    async def compare_and_set_status(
        self,
        challenge_id: int,
        expected: ChallengeStatus,
        new: ChallengeStatus,
        winner_id: int | None = None,
        remove_user_id: int | None = None,
    ) -> bool:
        """Atomically move ``expected`` -> ``new``.

        The winner column is written by the same statement that flips the
        status. When ``remove_user_id`` is given, that participant and their
        progress are deleted in the same transaction, only if the status
        moved. Returns False if the row was no longer in ``expected``.
        """
        async with aiosqlite.connect(self.db_path, isolation_level=None) as db:
            await db.execute("BEGIN IMMEDIATE")
            try:
                cursor = await db.execute(
                    """
                    UPDATE challenges SET status = ?, winner_id = ?
                    WHERE id = ? AND status = ?
                    """,
                    (new.value, winner_id, challenge_id, expected.value),
                )
                moved = cursor.rowcount == 1
                if moved and remove_user_id is not None:
                    for table in ("daily_progress", "challenge_participants"):
                        await db.execute(
                            f"DELETE FROM {table} WHERE challenge_id = ? AND user_id = ?",
                            (challenge_id, remove_user_id),
                        )
                await db.execute("COMMIT")
                return moved
            except BaseException:
                await db.execute("ROLLBACK")
                raise

    async def update_name(self, challenge_id: int, name: str) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute("UPDATE challenges SET name = ? WHERE id = ?", (name, challenge_id))
            await db.commit()

    async def update_sport_types(self, challenge_id: int, sports: set[SportType]) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "UPDATE challenges SET sport_types = ? WHERE id = ?",
                (",".join(sorted(s.value for s in sports)), challenge_id),
            )
            await db.commit()

    async def delete(
        self, challenge_id: int, forbid_status: ChallengeStatus | None = None
    ) -> bool:
        """Delete a challenge with its participants, progress and week results.

        Nothing is deleted if the challenge is missing or currently in
        ``forbid_status``. Returns whether the challenge was deleted.
        """
        async with aiosqlite.connect(self.db_path, isolation_level=None) as db:
            await db.execute("BEGIN IMMEDIATE")
            try:
                cursor = await db.execute(
                    "SELECT status FROM challenges WHERE id = ?", (challenge_id,)
                )
                row = await cursor.fetchone()
                if row is None or (forbid_status and row[0] == forbid_status.value):
                    await db.execute("ROLLBACK")
                    return False

                for table in ("week_results", "daily_progress", "challenge_participants"):
                    await db.execute(
                        f"DELETE FROM {table} WHERE challenge_id = ?", (challenge_id,)
                    )
                await db.execute("DELETE FROM challenges WHERE id = ?", (challenge_id,))
                await db.execute("COMMIT")
                return True
            except BaseException:
                await db.execute("ROLLBACK")
                raise

    def _row_to_challenge(self, row: aiosqlite.Row) -> Challenge:
        """Convert a database row to a Challenge."""
        return Challenge(
            id=row["id"],
            creator_id=row["created_by"],
            name=row["name"],
            invite_code=row["invite_code"],
            sport_types=Challenge.sport_types_from_str(row["sport_types"]),
            start_date=date.fromisoformat(row["start_date"]),
            end_date=date.fromisoformat(row["end_date"]),
            status=ChallengeStatus(row["status"]),
            winner_id=row["winner_id"],
            created_at=_parse_ts(row["created_at"]),
            creator_timezone=row["creator_timezone"],
        )


class ParticipantRepository:
    """Repository for challenge participants."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or get_db_path()

    async def add(self, participant: Participant, max_participants: int) -> int | None:
        """Add a participant if the challenge has room.

        The count check and the insert run inside one ``BEGIN IMMEDIATE``
        transaction. Returns the new row id, or None when the challenge is
        full. A duplicate (challenge, user) raises ``aiosqlite.IntegrityError``.
        """
        async with aiosqlite.connect(self.db_path, isolation_level=None) as db:
            await db.execute("BEGIN IMMEDIATE")
            try:
                cursor = await db.execute(
                    "SELECT COUNT(*) FROM challenge_participants WHERE challenge_id = ?",
                    (participant.challenge_id,),
                )
                (count,) = await cursor.fetchone()
                if count >= max_participants:
                    await db.execute("ROLLBACK")
                    return None

                cursor = await db.execute(
                    """
                    INSERT INTO challenge_participants
                    (challenge_id, user_id, goals, joined_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (
                        participant.challenge_id,
                        participant.user_id,
                        json.dumps(goals_to_dict(participant.goals)),
                        utcnow().isoformat(),
                    ),
                )
                await db.execute("COMMIT")
                return cursor.lastrowid
            except BaseException:
                await db.execute("ROLLBACK")
                raise

    async def list_for_challenge(self, challenge_id: int) -> list[Participant]:
        """List participants in join order."""
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                """
                SELECT p.*, u.username AS username
                FROM challenge_participants p
                LEFT JOIN users u ON u.id = p.user_id
                WHERE p.challenge_id = ?
                ORDER BY p.id
                """,
                (challenge_id,),
            )
            rows = await cursor.fetchall()
            return [self._row_to_participant(row) for row in rows]

    async def get(self, challenge_id: int, user_id: int) -> Participant | None:
        for participant in await self.list_for_challenge(challenge_id):
            if participant.user_id == user_id:
                return participant
        return None

    async def mark_forfeited(
        self, challenge_id: int, user_id: int, when: datetime | None = None
    ) -> bool:
        """Set forfeited_at once. Returns False if already forfeited or absent."""
        when = when or utcnow()
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                """
                UPDATE challenge_participants SET forfeited_at = ?
                WHERE challenge_id = ? AND user_id = ? AND forfeited_at IS NULL
                """,
                (when.isoformat(), challenge_id, user_id),
            )
            await db.commit()
            return cursor.rowcount == 1

    def _row_to_participant(self, row: aiosqlite.Row) -> Participant:
        return Participant(
            id=row["id"],
            challenge_id=row["challenge_id"],
            user_id=row["user_id"],
            goals=goals_from_dict(json.loads(row["goals"])),
            joined_at=_parse_ts(row["joined_at"]),
            forfeited_at=_parse_ts(row["forfeited_at"]),
            username=row["username"],
        )


class DailyProgressRepository:
    """Repository for per-day participant progress."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or get_db_path()

    async def upsert(self, progress: DailyProgress) -> None:
        """Create or replace the record for (challenge, user, date)."""
        data = progress.to_dict()
        updated_at = progress.updated_at or utcnow()
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                """
                INSERT INTO daily_progress
                (challenge_id, user_id, date, distances, progress_percent, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT(challenge_id, user_id, date) DO UPDATE SET
                    distances = excluded.distances,
                    progress_percent = excluded.progress_percent,
                    updated_at = excluded.updated_at
                """,
                (
                    data["challenge_id"],
                    data["user_id"],
                    data["date"],
                    json.dumps(data["distances"]),
                    data["progress_percent"],
                    updated_at.isoformat(),
                ),
            )
            await db.commit()

    async def get_latest(
        self, challenge_id: int, user_id: int, as_of: date | None = None
    ) -> DailyProgress | None:
        """Most recent record for a participant, optionally on or before ``as_of``."""
        query = "SELECT * FROM daily_progress WHERE challenge_id = ? AND user_id = ?"
        params: tuple = (challenge_id, user_id)
        if as_of is not None:
            query += " AND date <= ?"
            params = (challenge_id, user_id, as_of.isoformat())
        query += " ORDER BY date DESC LIMIT 1"

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, params)
            row = await cursor.fetchone()
            if row is None:
                return None
            return self._row_to_progress(row)

    async def list_for_participant(self, challenge_id: int, user_id: int) -> list[DailyProgress]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                """
                SELECT * FROM daily_progress
                WHERE challenge_id = ? AND user_id = ?
                ORDER BY date
                """,
                (challenge_id, user_id),
            )
            rows = await cursor.fetchall()
            return [self._row_to_progress(row) for row in rows]

    def _row_to_progress(self, row: aiosqlite.Row) -> DailyProgress:
        data = dict(row)
        data["distances"] = json.loads(row["distances"])
        return DailyProgress.from_dict(data, id=row["id"])


class WeekResultRepository:
    """Repository for weekly snapshots. Rows are insert-only."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or get_db_path()

    async def exists(self, challenge_id: int, week_start: date) -> bool:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT 1 FROM week_results WHERE challenge_id = ? AND week_start = ?",
                (challenge_id, week_start.isoformat()),
            )
            return await cursor.fetchone() is not None

    async def create(self, result: WeekResult) -> bool:
        """Insert a snapshot. Returns False if one already exists for that week."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                """
                INSERT OR IGNORE INTO week_results
                (challenge_id, week_start, user_a_id, user_b_id,
                 user_a_percent, user_b_percent, winner_id)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    result.challenge_id,
                    result.week_start.isoformat(),
                    result.user_a_id,
                    result.user_b_id,
                    result.user_a_percent,
                    result.user_b_percent,
                    result.winner_id,
                ),
            )
            await db.commit()
            return cursor.rowcount == 1

    async def list_for_challenge(self, challenge_id: int) -> list[WeekResult]:
        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(
                "SELECT * FROM week_results WHERE challenge_id = ? ORDER BY week_start",
                (challenge_id,),
            )
            rows = await cursor.fetchall()
            return [
                WeekResult(
                    id=row["id"],
                    challenge_id=row["challenge_id"],
                    week_start=date.fromisoformat(row["week_start"]),
                    user_a_id=row["user_a_id"],
                    user_b_id=row["user_b_id"],
                    user_a_percent=row["user_a_percent"],
                    user_b_percent=row["user_b_percent"],
                    winner_id=row["winner_id"],
                    created_at=_parse_ts(row["created_at"]),
                )
                for row in rows
            ]


class ActivityRepository:
    """Repository for raw activities pulled from external sources."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or get_db_path()

    async def save_many(
        self, user_id: int, source: str, records: list[ActivityRecord]
    ) -> int:
        """Store activities, skipping ones already seen. Returns the number added."""
        added = 0
        async with aiosqlite.connect(self.db_path) as db:
            for record in records:
                cursor = await db.execute(
                    """
                    INSERT OR IGNORE INTO activities
                    (source, external_id, user_id, sport_type, distance_meters,
                     start_time, start_day)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        source,
                        record.external_id,
                        user_id,
                        record.sport_type.value,
                        max(0, int(record.distance_meters)),
                        record.start_time.isoformat(),
                        record.start_day.isoformat(),
                    ),
                )
                added += cursor.rowcount
            await db.commit()
        return added

    async def sum_distance_by_sport(
        self,
        user_id: int,
        start: date,
        end: date,
        sports: set[SportType] | None = None,
    ) -> dict[SportType, int]:
        """Total meters per sport for activities started between two days (inclusive)."""
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                """
                SELECT sport_type, COALESCE(SUM(distance_meters), 0)
                FROM activities
                WHERE user_id = ? AND start_day >= ? AND start_day <= ?
                GROUP BY sport_type
                """,
                (user_id, start.isoformat(), end.isoformat()),
            )
            rows = await cursor.fetchall()

        totals = {SportType(sport): int(total) for sport, total in rows}
        if sports is None:
            return totals
        return {sport: totals.get(sport, 0) for sport in sports}

    async def list_for_user(
        self, user_id: int, source: str | None = None, start: date | None = None, end: date | None = None
    ) -> list[ActivityRecord]:
        query = "SELECT * FROM activities WHERE user_id = ?"
        params: list = [user_id]
        if source:
            query += " AND source = ?"
            params.append(source)
        if start:
            query += " AND start_day >= ?"
            params.append(start.isoformat())
        if end:
            query += " AND start_day <= ?"
            params.append(end.isoformat())
        query += " ORDER BY start_time"

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, tuple(params))
            rows = await cursor.fetchall()
            return [
                ActivityRecord(
                    external_id=row["external_id"],
                    sport_type=SportType(row["sport_type"]),
                    distance_meters=row["distance_meters"],
                    start_time=datetime.fromisoformat(row["start_time"]),
                )
                for row in rows
            ]


class NotificationRepository:
    """Repository for stored notifications."""

    def __init__(self, db_path: Path | None = None):
        self.db_path = db_path or get_db_path()

    async def create(self, notification: Notification) -> int:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                """
                INSERT INTO notifications (user_id, kind, challenge_id, message)
                VALUES (?, ?, ?, ?)
                """,
                (
                    notification.user_id,
                    notification.kind.value,
                    notification.challenge_id,
                    notification.message,
                ),
            )
            await db.commit()
            return cursor.lastrowid

    async def list_for_user(self, user_id: int, unread_only: bool = False) -> list[Notification]:
        query = "SELECT * FROM notifications WHERE user_id = ?"
        if unread_only:
            query += " AND read = 0"
        query += " ORDER BY id DESC"

        async with aiosqlite.connect(self.db_path) as db:
            db.row_factory = aiosqlite.Row
            cursor = await db.execute(query, (user_id,))
            rows = await cursor.fetchall()
            return [
                Notification(
                    id=row["id"],
                    user_id=row["user_id"],
                    kind=NotificationKind(row["kind"]),
                    challenge_id=row["challenge_id"],
                    message=row["message"],
                    read=bool(row["read"]),
                    created_at=_parse_ts(row["created_at"]),
                )
                for row in rows
            ]

    async def count_unread(self, user_id: int) -> int:
        async with aiosqlite.connect(self.db_path) as db:
            cursor = await db.execute(
                "SELECT COUNT(*) FROM notifications WHERE user_id = ? AND read = 0",
                (user_id,),
            )
            (count,) = await cursor.fetchone()
            return count

    async def mark_all_read(self, user_id: int) -> None:
        async with aiosqlite.connect(self.db_path) as db:
            await db.execute(
                "UPDATE notifications SET read = 1 WHERE user_id = ? AND read = 0",
                (user_id,),
            )
            await db.commit()
