from __future__ import annotations

from datetime import date, datetime

from .models import Season, Seasonality, TransportType
from .planning_errors import PlanningError

# Calendar windows of the navigation / ice-road year (month, day), inclusive.
SUMMER_START = (6, 1)
SUMMER_END = (10, 18)
WINTER_START = (11, 1)
WINTER_END = (4, 15)


def _month_day(day: date) -> tuple[int, int]:
    return (day.month, day.day)


def is_summer(day: date) -> bool:
    return SUMMER_START <= _month_day(day) <= SUMMER_END


def is_winter(day: date) -> bool:
    md = _month_day(day)
    return md >= WINTER_START or md <= WINTER_END


def season_for_date(day: date) -> Season:
    """Bucket a calendar date into summer, winter or transition."""
    if is_summer(day):
        return "summer"
    if is_winter(day):
        return "winter"
    return "transition"


def is_season_available(
    season: Season,
    day: date,
    *,
    period: tuple[date, date] | None = None,
) -> bool:
    if season == "all":
        return True
    if period is not None:
        start, end = period
        return start <= day <= end
    return season_for_date(day) == season


def seasonality_for(season: Season, day: date, *, period: tuple[date, date] | None = None) -> Seasonality:
    return Seasonality(
        season=season,
        available=is_season_available(season, day, period=period),
        period_start=period[0] if period else None,
        period_end=period[1] if period else None,
    )


def is_transport_available_in_season(transport_type: TransportType, season: Season) -> bool:
    if transport_type == "ferry":
        return season in ("summer", "all")
    if transport_type == "winter_road":
        return season in ("winter", "all")
    return True


def parse_travel_date(value: str | date | datetime) -> datetime:
    """Parse a request date; malformed input is a fatal request error."""
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day, 12, 0)
    text = str(value or "").strip()
    if not text:
        raise PlanningError(reason_code="invalid_date", message="Travel date is required.")
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as exc:
        raise PlanningError(
            reason_code="invalid_date",
            message=f"Invalid travel date: {value!r}",
            details={"value": str(value)},
        ) from exc
    if len(text) <= 10:
        # Date-only input: assume a midday departure.
        parsed = parsed.replace(hour=12)
    return parsed
