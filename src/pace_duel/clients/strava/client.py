"""Strava activity source.

Reads a user's activities through the Strava REST API using an access token
that an external OAuth flow has stored in ``activity_connections``.
"""

import logging
from datetime import date, datetime, time, timedelta, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable

import httpx

from ...config import get_settings
from ...exceptions import ActivitySourceError
from ...models.user import User
from ..base import ActivityRecord, BaseActivitySource, map_sport_name

logger = logging.getLogger(__name__)

TokenProvider = Callable[[int], Awaitable[str | None]]

PAGE_SIZE = 100
MAX_PAGES = 10


def _parse_start_time(data: dict[str, Any]) -> datetime:
    """Prefer the athlete-local start time so days line up with the user's calendar."""
    raw = data.get("start_date_local") or data["start_date"]
    return datetime.fromisoformat(raw.replace("Z", "+00:00")).replace(tzinfo=None)


def parse_activity(data: dict[str, Any]) -> ActivityRecord | None:
    """Convert one API activity to a record, or None for untracked sports."""
    sport = map_sport_name(data.get("sport_type") or data.get("type"))
    if sport is None:
        return None
    return ActivityRecord(
        external_id=str(data["id"]),
        sport_type=sport,
        distance_meters=float(data.get("distance") or 0.0),
        start_time=_parse_start_time(data),
    )


class StravaActivitySource(BaseActivitySource):
    """Fetch activities from Strava for a date window."""

    def __init__(
        self,
        token_provider: TokenProvider | None = None,
        db_path: Path | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = get_settings()
        if token_provider is None:
            from ...db.repositories import UserRepository

            repo = UserRepository(db_path)

            async def token_provider(user_id: int) -> str | None:
                return await repo.get_access_token(user_id, self.source_name)

        self._token_provider = token_provider
        self.base_url = (base_url or settings.strava_api_base_url).rstrip("/")
        self.timeout = timeout or settings.strava_timeout
        self._transport = transport

    @property
    def source_name(self) -> str:
        return "strava"

    async def fetch_activities(self, user: User, start: date, end: date) -> list[ActivityRecord]:
        """Fetch the user's tracked activities whose local start day is in [start, end]."""
        token = await self._token_provider(user.id)
        if not token:
            raise ActivitySourceError(
                f"No Strava token stored for user {user.id}", source=self.source_name
            )

        # Widen the UTC window by a day each side; local days are filtered below
        after = datetime.combine(start - timedelta(days=1), time.min, tzinfo=timezone.utc)
        before = datetime.combine(end + timedelta(days=2), time.min, tzinfo=timezone.utc)

        records: list[ActivityRecord] = []
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={"Authorization": f"Bearer {token}"},
        ) as client:
            for page in range(1, MAX_PAGES + 1):
                batch = await self._get_page(client, after, before, page)
                for data in batch:
                    try:
                        record = parse_activity(data)
                    except (KeyError, ValueError) as e:
                        logger.debug(f"Skipping malformed Strava activity: {e}")
                        continue
                    if record and start <= record.start_day <= end:
                        records.append(record)
                if len(batch) < PAGE_SIZE:
                    break

        logger.info(
            f"Fetched {len(records)} Strava activities for user {user.id} ({start} to {end})"
        )
        return records

    async def _get_page(
        self,
        client: httpx.AsyncClient,
        after: datetime,
        before: datetime,
        page: int,
    ) -> list[dict[str, Any]]:
        params = {
            "after": int(after.timestamp()),
            "before": int(before.timestamp()),
            "page": page,
            "per_page": PAGE_SIZE,
        }
        try:
            response = await client.get("/athlete/activities", params=params)
        except httpx.HTTPError as e:
            raise ActivitySourceError(
                f"Strava request failed: {e}", source=self.source_name
            ) from e

        if response.status_code == 429:
            retry_after = int(response.headers.get("Retry-After", "900"))
            raise ActivitySourceError(
                "Strava rate limit exceeded",
                source=self.source_name,
                retry_after=retry_after,
            )
        if response.status_code == 401:
            raise ActivitySourceError(
                "Strava token expired or invalid", source=self.source_name
            )
        if response.status_code != 200:
            raise ActivitySourceError(
                f"Strava API error: HTTP {response.status_code}", source=self.source_name
            )

        data = response.json()
        return data if isinstance(data, list) else []
