"""Database engine setup and initialization."""

from pathlib import Path

import aiosqlite

from ..config import get_settings


def get_db_path(data_dir: Path | None = None) -> Path:
    """Get the database file path."""
    settings = get_settings()
    if data_dir is None:
        db_path = settings.db_path
    else:
        db_path = data_dir / "pace_duel.db"
    db_path.parent.mkdir(parents=True, exist_ok=True)
    return db_path


async def _run_migrations(db: aiosqlite.Connection) -> None:
    """Run database migrations for schema updates."""
    cursor = await db.execute("PRAGMA table_info(users)")
    columns = await cursor.fetchall()
    user_columns = {col[1] for col in columns}

    for col in ["timezone", "activity_source"]:
        if col not in user_columns:
            await db.execute(f"ALTER TABLE users ADD COLUMN {col} TEXT")

    cursor = await db.execute("PRAGMA table_info(challenges)")
    columns = await cursor.fetchall()
    challenge_columns = {col[1] for col in columns}

    # Single-sport databases predate the winner column
    if "winner_id" not in challenge_columns:
        await db.execute("ALTER TABLE challenges ADD COLUMN winner_id INTEGER")

    await db.commit()


async def init_db(db_path: Path | None = None) -> None:
    """Initialize the database schema."""
    if db_path is None:
        db_path = get_db_path()

    async with aiosqlite.connect(db_path) as db:
        await db.execute("PRAGMA journal_mode=WAL")

        await db.execute("""
            CREATE TABLE IF NOT EXISTS users (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                username TEXT UNIQUE NOT NULL,
                email TEXT,
                timezone TEXT,
                activity_source TEXT,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
            )
        """)

        # Access tokens obtained by the (external) OAuth flow
        await db.execute("""
            CREATE TABLE IF NOT EXISTS activity_connections (
                user_id INTEGER PRIMARY KEY,
                source TEXT NOT NULL,
                access_token TEXT NOT NULL,
                refresh_token TEXT,
                expires_at TIMESTAMP,
                FOREIGN KEY (user_id) REFERENCES users(id) ON DELETE CASCADE
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS challenges (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                created_by INTEGER NOT NULL,
                name TEXT NOT NULL,
                invite_code TEXT UNIQUE NOT NULL,
                sport_types TEXT NOT NULL DEFAULT '',
                start_date DATE NOT NULL,
                end_date DATE NOT NULL,
                status TEXT NOT NULL DEFAULT 'PENDING',
                winner_id INTEGER,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (created_by) REFERENCES users(id),
                FOREIGN KEY (winner_id) REFERENCES users(id)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS challenge_participants (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                challenge_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                goals TEXT NOT NULL DEFAULT '{}',
                joined_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                forfeited_at TIMESTAMP,
                UNIQUE (challenge_id, user_id),
                FOREIGN KEY (challenge_id) REFERENCES challenges(id) ON DELETE CASCADE,
                FOREIGN KEY (user_id) REFERENCES users(id)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS daily_progress (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                challenge_id INTEGER NOT NULL,
                user_id INTEGER NOT NULL,
                date DATE NOT NULL,
                distances TEXT NOT NULL DEFAULT '{}',
                progress_percent INTEGER NOT NULL DEFAULT 0,
                updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (challenge_id, user_id, date),
                FOREIGN KEY (challenge_id) REFERENCES challenges(id) ON DELETE CASCADE
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS week_results (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                challenge_id INTEGER NOT NULL,
                week_start DATE NOT NULL,
                user_a_id INTEGER NOT NULL,
                user_b_id INTEGER NOT NULL,
                user_a_percent INTEGER NOT NULL,
                user_b_percent INTEGER NOT NULL,
                winner_id INTEGER,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (challenge_id, week_start),
                FOREIGN KEY (challenge_id) REFERENCES challenges(id) ON DELETE CASCADE
            )
        """)

        # Raw activities, deduplicated by the source's own id
        await db.execute("""
            CREATE TABLE IF NOT EXISTS activities (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                source TEXT NOT NULL,
                external_id TEXT NOT NULL,
                user_id INTEGER NOT NULL,
                sport_type TEXT NOT NULL,
                distance_meters INTEGER NOT NULL DEFAULT 0,
                start_time TIMESTAMP NOT NULL,
                start_day DATE NOT NULL,
                imported_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                UNIQUE (source, external_id),
                FOREIGN KEY (user_id) REFERENCES users(id)
            )
        """)

        await db.execute("""
            CREATE TABLE IF NOT EXISTS notifications (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                user_id INTEGER NOT NULL,
                kind TEXT NOT NULL,
                challenge_id INTEGER,
                message TEXT NOT NULL,
                read INTEGER NOT NULL DEFAULT 0,
                created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                FOREIGN KEY (user_id) REFERENCES users(id)
            )
        """)

        # Create indexes for common queries
        await db.execute("""
            CREATE INDEX IF NOT EXISTS idx_challenges_status
            ON challenges(status)
        """)
        await db.execute("""
            CREATE INDEX IF NOT EXISTS idx_participants_user
            ON challenge_participants(user_id)
        """)
        await db.execute("""
            CREATE INDEX IF NOT EXISTS idx_daily_progress_lookup
            ON daily_progress(challenge_id, user_id, date)
        """)
        await db.execute("""
            CREATE INDEX IF NOT EXISTS idx_activities_user_day
            ON activities(user_id, sport_type, start_day)
        """)
        await db.execute("""
            CREATE INDEX IF NOT EXISTS idx_notifications_user
            ON notifications(user_id, read)
        """)

        await db.commit()

        # Run migrations for existing databases
        await _run_migrations(db)
