"""Manually logged activities: CSV import and an interactive questionnaire."""

import csv
import hashlib
from datetime import date, datetime
from pathlib import Path

import questionary
from questionary import Style

from ...models.challenge import SportType
from ...models.user import User
from ..base import ActivityRecord, BaseActivitySource, map_sport_name

# Custom style for questionnaire
custom_style = Style(
    [
        ("qmark", "fg:#673ab7 bold"),
        ("question", "bold"),
        ("answer", "fg:#f44336 bold"),
        ("pointer", "fg:#673ab7 bold"),
        ("highlighted", "fg:#673ab7 bold"),
        ("selected", "fg:#cc5454"),
        ("instruction", ""),
        ("text", ""),
    ]
)


def _parse_timestamp(value: str) -> datetime:
    """Parse the start time column."""
    value = value.strip()
    for fmt in ("%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d %H:%M", "%Y-%m-%d"):
        try:
            return datetime.strptime(value[:19], fmt)
        except ValueError:
            continue
    raise ValueError(f"Cannot parse timestamp: {value}")


def _derived_id(user_id: int, sport: SportType, start_time: datetime, meters: float) -> str:
    """Stable id for rows without one, so re-importing a file adds nothing."""
    key = f"{user_id}|{sport.value}|{start_time.isoformat()}|{meters:.1f}"
    return "manual-" + hashlib.sha1(key.encode()).hexdigest()[:16]


def parse_activity_csv(path: Path, user_id: int) -> list[ActivityRecord]:
    """Parse activities from a CSV file.

    Expected columns: ``sport``, ``start_time`` and either ``distance_km`` or
    ``distance_m``. An optional ``id`` column is used as the external id.
    Rows with an untracked sport are skipped.

    Raises:
        ValueError: If a row is missing a required column or has bad values
    """
    records: list[ActivityRecord] = []
    with open(path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        for line_no, row in enumerate(reader, start=2):
            sport = map_sport_name(row.get("sport"))
            if sport is None:
                continue
            try:
                start_time = _parse_timestamp(row["start_time"])
                if row.get("distance_m"):
                    meters = float(row["distance_m"])
                else:
                    meters = float(row["distance_km"]) * 1000
            except (KeyError, TypeError, ValueError) as e:
                raise ValueError(f"Line {line_no}: {e}") from e
            if meters < 0:
                raise ValueError(f"Line {line_no}: distance cannot be negative")

            external_id = (row.get("id") or "").strip() or _derived_id(
                user_id, sport, start_time, meters
            )
            records.append(
                ActivityRecord(
                    external_id=external_id,
                    sport_type=sport,
                    distance_meters=meters,
                    start_time=start_time,
                )
            )
    return records


class ManualActivitySource(BaseActivitySource):
    """Serves activities that were logged by hand or imported from CSV."""

    def __init__(self, db_path: Path | None = None):
        from ...db.repositories import ActivityRepository

        self.repo = ActivityRepository(db_path)

    @property
    def source_name(self) -> str:
        return "manual"

    async def fetch_activities(self, user: User, start: date, end: date) -> list[ActivityRecord]:
        return await self.repo.list_for_user(user.id, source=self.source_name, start=start, end=end)


class ManualEntryClient:
    """Interactive prompts for goals and hand-logged activities."""

    async def collect_goals(self, sports: list[SportType] | None = None) -> dict[SportType, float]:
        """Ask which sports to compete in and the goal distance for each."""
        if sports is None:
            sports = await questionary.checkbox(
                "Which sports do you want to count? (Select all that apply)",
                choices=[questionary.Choice(s.value.title(), s) for s in SportType],
                style=custom_style,
            ).ask_async()

        goals: dict[SportType, float] = {}
        for sport in sports or []:
            answer = await questionary.text(
                f"Goal distance for {sport.value.title()} (km):",
                validate=lambda v: _is_positive_number(v) or "Enter a distance above 0",
                style=custom_style,
            ).ask_async()
            if answer is None:
                break
            goals[sport] = float(answer)
        return goals

    async def collect_activity(self, user_id: int) -> ActivityRecord | None:
        """Prompt for a single activity. Returns None if cancelled."""
        sport = await questionary.select(
            "Sport:",
            choices=[questionary.Choice(s.value.title(), s) for s in SportType],
            style=custom_style,
        ).ask_async()
        if sport is None:
            return None

        distance = await questionary.text(
            "Distance (km):",
            validate=lambda v: _is_positive_number(v) or "Enter a distance above 0",
            style=custom_style,
        ).ask_async()
        if distance is None:
            return None

        when = await questionary.text(
            "Start time (YYYY-MM-DD HH:MM):",
            default=datetime.now().strftime("%Y-%m-%d %H:%M"),
            style=custom_style,
        ).ask_async()
        if when is None:
            return None

        start_time = _parse_timestamp(when)
        meters = float(distance) * 1000
        return ActivityRecord(
            external_id=_derived_id(user_id, sport, start_time, meters),
            sport_type=sport,
            distance_meters=meters,
            start_time=start_time,
        )


def _is_positive_number(value: str) -> bool:
    try:
        return float(value) > 0
    except ValueError:
        return False
