"""Configuration settings for pace-duel."""

import logging
import sys
from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict

# src/pace_duel/config.py -> project root
PROJECT_ROOT = Path(__file__).parent.parent.parent


class Settings(BaseSettings):
    """Application settings loaded from environment variables (PACE_DUEL_*)."""

    model_config = SettingsConfigDict(
        env_prefix="PACE_DUEL_",
        env_file=str(PROJECT_ROOT / ".env"),
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage
    data_dir: Path = PROJECT_ROOT / "data"
    db_path: Path | None = None

    # Challenge rules
    default_timezone: str = "UTC"
    max_participants: int = 2
    invite_code_length: int = 8

    # Activity sync
    sync_on_read: bool = True
    sync_include_scheduled: bool = True
    sync_concurrency: int = 4
    sync_delay_seconds: float = 0.5
    strava_api_base_url: str = "https://www.strava.com/api/v3"
    strava_timeout: float = 30.0

    # Scheduler
    scheduler_enabled: bool = False
    sync_interval_minutes: int = 10
    daily_sweep_hour: int = 0
    weekly_sweep_hour: int = 0

    # Logging
    log_level: str = "INFO"

    def model_post_init(self, __context) -> None:
        """Derive the database path from the data directory."""
        if self.db_path is None:
            self.db_path = self.data_dir / "pace_duel.db"


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


def configure_logging(level: str | None = None) -> None:
    """Configure root logging once for CLI and web entry points."""
    level_name = (level or get_settings().log_level).upper()
    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(
            logging.Formatter(
                fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
        root.addHandler(handler)
    root.setLevel(getattr(logging, level_name, logging.INFO))
