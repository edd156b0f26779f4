"""Base protocol for activity data sources."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime
from typing import Protocol, runtime_checkable

from ..models.challenge import SportType
from ..models.user import User

# Provider sport names -> challenge sports. Anything unlisted is not counted.
SPORT_NAME_MAP = {
    "run": SportType.RUN,
    "trailrun": SportType.RUN,
    "virtualrun": SportType.RUN,
    "ride": SportType.RIDE,
    "virtualride": SportType.RIDE,
    "ebikeride": SportType.RIDE,
    "mountainbikeride": SportType.RIDE,
    "gravelride": SportType.RIDE,
    "swim": SportType.SWIM,
    "walk": SportType.WALK,
    "hike": SportType.WALK,
}


def map_sport_name(name: str | None) -> SportType | None:
    """Map a provider's sport name to a SportType, or None if not tracked."""
    if not name:
        return None
    key = name.replace("_", "").replace(" ", "").lower()
    return SPORT_NAME_MAP.get(key)


@dataclass
class ActivityRecord:
    """A single activity as reported by a source."""

    external_id: str
    sport_type: SportType
    distance_meters: float
    start_time: datetime  # local start time when the source provides one

    @property
    def start_day(self) -> date:
        return self.start_time.date()


@runtime_checkable
class ActivitySource(Protocol):
    """Protocol for external activity data sources."""

    @property
    def source_name(self) -> str:
        """Return the name of this data source."""
        ...

    async def fetch_activities(self, user: User, start: date, end: date) -> list[ActivityRecord]:
        """Return the user's activities that started between two days (inclusive).

        Raises:
            ActivitySourceError: If the source cannot be reached or refuses
        """
        ...


class BaseActivitySource(ABC):
    """Base class for activity sources with common functionality."""

    @property
    @abstractmethod
    def source_name(self) -> str:
        """Return the name of this data source."""
        pass

    @abstractmethod
    async def fetch_activities(self, user: User, start: date, end: date) -> list[ActivityRecord]:
        """Return the user's activities between two days (inclusive)."""
        pass

    @staticmethod
    def total_by_sport(records: list[ActivityRecord]) -> dict[SportType, int]:
        """Sum meters per sport, counting each external id once."""
        seen: set[str] = set()
        totals: dict[SportType, int] = {}
        for record in records:
            if record.external_id in seen:
                continue
            seen.add(record.external_id)
            totals[record.sport_type] = totals.get(record.sport_type, 0) + max(
                0, int(record.distance_meters)
            )
        return totals
