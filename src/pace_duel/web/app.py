"""FastAPI application for the pace-duel JSON API."""

import logging
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI

from ..clients.base import ActivitySource
from ..config import configure_logging, get_settings
from ..db.engine import get_db_path, init_db
from ..services import ChallengeScheduler, ChallengeService, NotificationSink
from .errors import register_exception_handlers
from .routers import challenges, notifications

logger = logging.getLogger(__name__)


def create_app(
    db_path: Path | None = None,
    sink: NotificationSink | None = None,
    sources: dict[str, ActivitySource] | None = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()
    db_path = db_path or get_db_path()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Create the schema on startup and run the sweeps if enabled."""
        configure_logging()
        await init_db(db_path)
        job_runner = None
        if settings.scheduler_enabled:
            job_runner = ChallengeScheduler(db_path, sink=sink, sources=sources)
            job_runner.start()
        yield
        if job_runner is not None:
            job_runner.stop()

    app = FastAPI(
        title="pace-duel",
        description="Head-to-head distance challenges",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.challenge_service = ChallengeService(db_path, sink=sink, sources=sources)

    register_exception_handlers(app)
    app.include_router(challenges.router)
    app.include_router(notifications.router)

    @app.get("/health")
    async def health():
        """Health check endpoint."""
        return {"status": "healthy", "version": "0.1.0"}

    return app
