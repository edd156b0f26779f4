"""Activity data sources."""

from .base import (
    ActivityRecord,
    ActivitySource,
    BaseActivitySource,
    map_sport_name,
)

__all__ = [
    "ActivityRecord",
    "ActivitySource",
    "BaseActivitySource",
    "map_sport_name",
]
