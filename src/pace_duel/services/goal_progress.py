"""Turn per-sport distance totals and goals into completion percentages."""

from decimal import ROUND_FLOOR, Decimal

from ..models.challenge import SportType
from ..models.progress import ProgressBreakdown

MAX_PERCENT = 100


def sport_percent(meters: int | float, goal_km: float | None) -> int:
    """Completion of one sport goal, floored and capped at 100.

    A missing or non-positive goal counts as 0. Negative distances are
    treated as 0.
    """
    if not goal_km or goal_km <= 0:
        return 0
    meters_dec = max(Decimal(0), Decimal(str(meters)))
    goal_meters = Decimal(str(goal_km)) * 1000
    percent = (meters_dec * 100 / goal_meters).to_integral_value(rounding=ROUND_FLOOR)
    return min(MAX_PERCENT, int(percent))


def overall_percent(
    distances: dict[SportType, int], goals: dict[SportType, float]
) -> int:
    """Integer mean of sport percents over sports with a positive goal."""
    percents = [
        sport_percent(distances.get(sport, 0), km)
        for sport, km in goals.items()
        if km and km > 0
    ]
    if not percents:
        return 0
    return sum(percents) // len(percents)


def calculate_progress(
    distances: dict[SportType, int],
    goals: dict[SportType, float],
    sports: set[SportType] | None = None,
) -> ProgressBreakdown:
    """Build a participant's progress breakdown.

    Args:
        distances: Meters per sport over the challenge window
        goals: The participant's goals in kilometers
        sports: Sports to report distances for (defaults to the goal sports);
            distances are reported for every challenge sport even without a goal

    Returns:
        Clamped distances, per-goal percents and the overall percent
    """
    reported = set(goals) | (sports or set())
    clamped = {sport: max(0, int(distances.get(sport, 0))) for sport in reported}
    return ProgressBreakdown(
        distances=clamped,
        sport_percents={
            sport: sport_percent(clamped.get(sport, 0), km) for sport, km in goals.items()
        },
        overall_percent=overall_percent(clamped, goals),
    )
