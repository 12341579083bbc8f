from __future__ import annotations

from datetime import date, datetime

import pytest

from smartroute.planning_errors import PlanningError
from smartroute.seasons import (
    is_season_available,
    is_transport_available_in_season,
    parse_travel_date,
    season_for_date,
    seasonality_for,
)


@pytest.mark.parametrize(
    ("day", "season"),
    [
        (date(2025, 7, 15), "summer"),
        (date(2025, 6, 1), "summer"),
        (date(2025, 10, 18), "summer"),
        (date(2025, 10, 19), "transition"),
        (date(2025, 11, 1), "winter"),
        (date(2025, 1, 15), "winter"),
        (date(2025, 4, 15), "winter"),
        (date(2025, 4, 16), "transition"),
        (date(2025, 5, 20), "transition"),
    ],
)
def test_season_boundaries(day: date, season: str) -> None:
    assert season_for_date(day) == season


def test_season_availability_with_and_without_period() -> None:
    july = date(2024, 7, 10)
    assert is_season_available("all", july)
    assert is_season_available("summer", july)
    assert not is_season_available("winter", july)
    assert is_season_available("winter", july, period=(date(2024, 7, 1), date(2024, 7, 31)))

    info = seasonality_for("summer", july, period=(date(2024, 6, 1), date(2024, 6, 30)))
    assert not info.available
    assert info.period_end == date(2024, 6, 30)


def test_mode_availability_by_season() -> None:
    assert is_transport_available_in_season("ferry", "summer")
    assert not is_transport_available_in_season("ferry", "winter")
    assert is_transport_available_in_season("winter_road", "winter")
    assert not is_transport_available_in_season("winter_road", "transition")
    assert is_transport_available_in_season("airplane", "transition")


def test_parse_travel_date_forms() -> None:
    assert parse_travel_date("2025-07-15") == datetime(2025, 7, 15, 12, 0)
    assert parse_travel_date("2025-07-15T08:30:00") == datetime(2025, 7, 15, 8, 30)
    assert parse_travel_date(date(2025, 1, 2)) == datetime(2025, 1, 2, 12, 0)
    assert parse_travel_date("2025-07-15T08:30:00Z").utcoffset() is not None


@pytest.mark.parametrize("value", ["", "tomorrow", "2025-13-40"])
def test_parse_travel_date_rejects_garbage(value: str) -> None:
    with pytest.raises(PlanningError) as exc:
        parse_travel_date(value)
    assert exc.value.reason_code == "invalid_date"
