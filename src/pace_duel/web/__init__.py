"""Web API for pace-duel."""

from .app import create_app

__all__ = ["create_app"]
