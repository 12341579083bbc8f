from __future__ import annotations

from datetime import date, datetime

from smartroute.models import AdditionalCosts, Connection
from smartroute.pricing import (
    AIRPORT_FEE,
    REGISTRATION_FEE,
    TAXI_MIN_FARE,
    PriceParams,
    calculate_additional_costs,
    calculate_base_price,
    calculate_segment_price,
    calculate_taxi_price,
    calculate_total_price,
    date_coefficient,
    hub_coefficient,
    make_price_model,
    price_display,
    service_class_coefficient,
    time_coefficient,
)


def test_base_price_is_rate_times_distance() -> None:
    assert calculate_base_price("bus", PriceParams(distance_km=100, season="summer")) == 400
    assert calculate_base_price("bus", PriceParams(distance_km=100, season="summer", region="yakutia")) == 520


def test_out_of_season_modes_cost_nothing() -> None:
    assert calculate_base_price("ferry", PriceParams(distance_km=300, season="winter")) == 0
    assert calculate_base_price("winter_road", PriceParams(distance_km=300, season="summer")) == 0


def test_date_coefficient_rewards_early_booking() -> None:
    today = date(2025, 7, 1)
    assert date_coefficient(None) == 1.0
    assert date_coefficient(date(2025, 8, 20), today=today) == 0.9
    assert date_coefficient(date(2025, 7, 20), today=today) == 1.0
    assert date_coefficient(date(2025, 7, 10), today=today) == 1.1
    assert date_coefficient(date(2025, 7, 2), today=today) == 1.2
    assert date_coefficient(date(2025, 7, 1), today=today) == 1.3
    assert date_coefficient(datetime(2025, 8, 20, 9, 0), today=today) == 0.9


def test_time_of_day_coefficient() -> None:
    assert time_coefficient(datetime(2025, 7, 1, 8)) == 1.0
    assert time_coefficient(datetime(2025, 7, 1, 14)) == 1.05
    assert time_coefficient(datetime(2025, 7, 1, 20)) == 1.1
    assert time_coefficient(datetime(2025, 7, 1, 3)) == 0.95


def test_hub_and_service_class_coefficients_only_touch_their_modes() -> None:
    assert hub_coefficient("airplane", 0) == 1.0
    assert hub_coefficient("airplane", 1) == 1.1
    assert hub_coefficient("airplane", 3) == 1.2
    assert hub_coefficient("bus", 2) == 1.0
    assert service_class_coefficient("train", "business") == 2.0
    assert service_class_coefficient("bus", "business") == 1.0
    assert service_class_coefficient("airplane", None) == 1.0


def test_catalog_fare_replaces_rate_and_adds_air_extras() -> None:
    connection = Connection(
        id="yak-ver",
        type="airplane",
        from_city_id="yakutsk",
        to_city_id="verkhoyansk",
        distance_km=700,
        duration_min=110,
        base_price=1000,
    )
    price = calculate_segment_price(
        "airplane",
        PriceParams(distance_km=700, season="summer", region="yakutia"),
        connection=connection,
        city_id="yakutsk",
    )
    assert price.base == 1300
    assert price.additional.taxi == 645
    assert price.additional.fees == AIRPORT_FEE + REGISTRATION_FEE
    assert price.total == 1300 + 645 + 1500
    assert price.display == "3445₽ (+645₽ такси +1500₽ сборы)"


def test_train_extras_include_meal_and_fee_floor() -> None:
    params = PriceParams(distance_km=100, season="summer", needs_meal=True)
    extras = calculate_additional_costs("train", params, base_price=150, city_id="irkutsk")
    assert extras.baggage == 1_000
    assert extras.fees == 200
    assert extras.taxi == calculate_taxi_price(5.0, "irkutsk")


def test_transfers_are_charged_per_change() -> None:
    params = PriceParams(distance_km=100, season="summer", transfers_count=2)
    assert calculate_additional_costs("bus", params, base_price=400).transfer == 1_500


def test_taxi_has_minimum_fare() -> None:
    assert calculate_taxi_price(1.0) == TAXI_MIN_FARE
    assert calculate_taxi_price(10.0, "moscow") == 425


def test_totals_sum_every_component() -> None:
    a = make_price_model(1_000, AdditionalCosts(taxi=100, fees=50))
    b = make_price_model(2_000, AdditionalCosts(transfer=750, baggage=20))
    total = calculate_total_price([a, b])
    assert total.base == 3_000
    assert total.additional == AdditionalCosts(taxi=100, transfer=750, baggage=20, fees=50)
    assert total.total == a.total + b.total


def test_price_display_without_extras() -> None:
    assert price_display(900, AdditionalCosts()) == "900₽"
