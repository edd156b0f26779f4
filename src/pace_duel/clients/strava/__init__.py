"""Strava activity source."""

from .client import StravaActivitySource, parse_activity

__all__ = ["StravaActivitySource", "parse_activity"]
