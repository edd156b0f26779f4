"""CLI commands for pace-duel."""

from .activities import activities
from .challenges import challenge
from .init import init
from .scheduler import scheduler
from .serve import serve
from .sweep import sweep
from .users import users

__all__ = [
    "activities",
    "challenge",
    "init",
    "scheduler",
    "serve",
    "sweep",
    "users",
]
