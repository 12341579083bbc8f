from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime

from .models import AdditionalCosts, Connection, PriceModel, Region, Season, ServiceClass, TransportType

BASE_RATES_PER_KM: dict[TransportType, float] = {
    "airplane": 5.0,
    "train": 1.5,
    "bus": 4.0,
    "ferry": 6.0,
    "winter_road": 7.5,
    "taxi": 15.0,
}
DEFAULT_RATE_PER_KM = 5.0

# 0.0 means the mode does not run in that season.
SEASON_COEFFICIENTS: dict[Season, dict[TransportType, float]] = {
    "summer": {"airplane": 1.0, "train": 1.0, "bus": 1.0, "ferry": 1.0, "winter_road": 0.0, "taxi": 1.0},
    "winter": {"airplane": 1.2, "train": 1.0, "bus": 1.1, "ferry": 0.0, "winter_road": 1.0, "taxi": 1.1},
    "transition": {"airplane": 1.1, "train": 1.0, "bus": 1.0, "ferry": 0.5, "winter_road": 0.5, "taxi": 1.0},
    "all": {"airplane": 1.0, "train": 1.0, "bus": 1.0, "ferry": 1.0, "winter_road": 1.0, "taxi": 1.0},
}

REGION_COEFFICIENTS: dict[Region, float] = {"russia": 1.0, "yakutia": 1.3, "arctic": 1.5}
SERVICE_CLASS_COEFFICIENTS: dict[ServiceClass, float] = {"economy": 1.0, "business": 2.0, "first": 3.5}

TAXI_RATE_PER_KM: dict[str, float] = {"yakutsk": 35.0, "moscow": 25.0, "irkutsk": 30.0, "mirny": 40.0}
TAXI_BOARDING_FEE: dict[str, float] = {"yakutsk": 120.0, "moscow": 175.0, "irkutsk": 125.0, "mirny": 145.0}
DEFAULT_TAXI_RATE_PER_KM = 30.0
DEFAULT_TAXI_BOARDING_FEE = 120.0
TAXI_MIN_FARE = 200
# Typical ride to the stop when the caller does not know it.
DEFAULT_TAXI_KM: dict[TransportType, float] = {"airplane": 15.0, "train": 5.0}

AIR_FREE_BAGGAGE_KG = 20.0
AIR_BAGGAGE_FEE = 2_500
AIR_EXCESS_BAGGAGE_PER_KG = 150
RAIL_FREE_BAGGAGE_KG = 36.0
RAIL_EXCESS_BAGGAGE_PER_KG = 50
RAIL_MEAL_PRICE = 1_000
AIRPORT_FEE = 750
REGISTRATION_FEE = 750
TRANSFER_FEE = 750


@dataclass(frozen=True)
class PriceParams:
    distance_km: float
    season: Season
    region: Region = "russia"
    demand_coefficient: float = 1.0
    travel_date: date | None = None
    departure_time: datetime | None = None
    # Defaults to today; injected so results are reproducible.
    booking_date: date | None = None
    service_class: ServiceClass | None = None
    transfers_count: int = 0
    taxi_distance_km: float | None = None
    has_baggage: bool = False
    baggage_weight_kg: float | None = None
    needs_meal: bool = False
    needs_insurance: bool = False


def season_coefficient(transport_type: TransportType, season: Season) -> float:
    return SEASON_COEFFICIENTS.get(season, SEASON_COEFFICIENTS["all"]).get(transport_type, 1.0)


def region_coefficient(region: Region | None) -> float:
    return REGION_COEFFICIENTS.get(region or "russia", 1.0)


def date_coefficient(travel_date: date | None, *, today: date | None = None) -> float:
    """Closer trips cost more: 0.9 a month ahead up to 1.3 on the day."""
    if travel_date is None:
        return 1.0
    if isinstance(travel_date, datetime):
        travel_date = travel_date.date()
    days = (travel_date - (today or date.today())).days
    if days >= 30:
        return 0.9
    if days >= 14:
        return 1.0
    if days >= 7:
        return 1.1
    if days >= 1:
        return 1.2
    return 1.3


def time_coefficient(departure_time: datetime | None) -> float:
    if departure_time is None:
        return 1.0
    hour = departure_time.hour
    if 6 <= hour < 12:
        return 1.0
    if 12 <= hour < 18:
        return 1.05
    if 18 <= hour < 24:
        return 1.1
    return 0.95


def hub_coefficient(transport_type: TransportType, via_hubs_count: int = 0) -> float:
    if transport_type != "airplane" or via_hubs_count <= 0:
        return 1.0
    if via_hubs_count == 1:
        return 1.1
    return 1.2


def service_class_coefficient(transport_type: TransportType, service_class: ServiceClass | None) -> float:
    if service_class is None or transport_type not in ("airplane", "train"):
        return 1.0
    return SERVICE_CLASS_COEFFICIENTS.get(service_class, 1.0)


def _coefficient_product(transport_type: TransportType, params: PriceParams, via_hubs_count: int) -> float:
    return (
        season_coefficient(transport_type, params.season)
        * region_coefficient(params.region)
        * (params.demand_coefficient if params.demand_coefficient > 0 else 1.0)
        * date_coefficient(params.travel_date, today=params.booking_date)
        * time_coefficient(params.departure_time)
        * hub_coefficient(transport_type, via_hubs_count)
        * service_class_coefficient(transport_type, params.service_class)
    )


def calculate_base_price(transport_type: TransportType, params: PriceParams, via_hubs_count: int = 0) -> int:
    if season_coefficient(transport_type, params.season) == 0.0:
        return 0
    rate = BASE_RATES_PER_KM.get(transport_type, DEFAULT_RATE_PER_KM)
    return int(round(rate * float(params.distance_km) * _coefficient_product(transport_type, params, via_hubs_count)))


def calculate_taxi_price(distance_km: float, city_id: str | None = None) -> int:
    key = city_id or ""
    rate = TAXI_RATE_PER_KM.get(key, DEFAULT_TAXI_RATE_PER_KM)
    boarding = TAXI_BOARDING_FEE.get(key, DEFAULT_TAXI_BOARDING_FEE)
    return max(TAXI_MIN_FARE, int(round(boarding + distance_km * rate)))


def calculate_additional_costs(
    transport_type: TransportType,
    params: PriceParams,
    base_price: int,
    city_id: str | None = None,
) -> AdditionalCosts:
    taxi = 0
    transfer = 0
    baggage = 0
    fees = 0

    if params.taxi_distance_km is not None and params.taxi_distance_km > 0:
        taxi = calculate_taxi_price(params.taxi_distance_km, city_id)
    elif transport_type in DEFAULT_TAXI_KM:
        taxi = calculate_taxi_price(DEFAULT_TAXI_KM[transport_type], city_id)

    if transport_type == "airplane" and params.has_baggage:
        weight = params.baggage_weight_kg or AIR_FREE_BAGGAGE_KG
        if weight > AIR_FREE_BAGGAGE_KG:
            baggage = int(round((weight - AIR_FREE_BAGGAGE_KG) * AIR_EXCESS_BAGGAGE_PER_KG))
        else:
            baggage = AIR_BAGGAGE_FEE

    if transport_type == "train":
        weight = params.baggage_weight_kg or 0.0
        if params.has_baggage and weight > RAIL_FREE_BAGGAGE_KG:
            baggage = int(round((weight - RAIL_FREE_BAGGAGE_KG) * RAIL_EXCESS_BAGGAGE_PER_KG))
        # Meals are booked under baggage.
        if params.needs_meal:
            baggage += RAIL_MEAL_PRICE

    if params.needs_insurance:
        fees += max(500, int(round(base_price * 0.015)))
    if transport_type == "airplane":
        fees += AIRPORT_FEE + REGISTRATION_FEE
    if transport_type == "train":
        fees += max(200, int(round(base_price * 0.02)))

    if params.transfers_count > 0:
        transfer = params.transfers_count * TRANSFER_FEE

    return AdditionalCosts(taxi=taxi, transfer=transfer, baggage=baggage, fees=fees)


def price_display(total: int, additional: AdditionalCosts) -> str:
    parts: list[str] = []
    if additional.taxi > 0:
        parts.append(f"+{additional.taxi}₽ такси")
    if additional.transfer > 0:
        parts.append(f"+{additional.transfer}₽ пересадки")
    if additional.baggage > 0:
        parts.append(f"+{additional.baggage}₽ багаж")
    if additional.fees > 0:
        parts.append(f"+{additional.fees}₽ сборы")
    if not parts:
        return f"{total}₽"
    return f"{total}₽ ({' '.join(parts)})"


def make_price_model(base: int, additional: AdditionalCosts | None = None) -> PriceModel:
    additional = additional or AdditionalCosts()
    total = int(base) + additional.total
    return PriceModel(base=int(base), additional=additional, total=total, display=price_display(total, additional))


def calculate_segment_price(
    transport_type: TransportType,
    params: PriceParams,
    *,
    connection: Connection | None = None,
    via_hubs_count: int = 0,
    city_id: str | None = None,
) -> PriceModel:
    """Fare for one leg.

    A catalogued connection with a positive base price replaces
    ``rate * distance``; every coefficient applies either way.
    """
    if connection is not None and connection.base_price > 0:
        if season_coefficient(transport_type, params.season) == 0.0:
            base = 0
        else:
            base = int(round(float(connection.base_price) * _coefficient_product(transport_type, params, via_hubs_count)))
    else:
        base = calculate_base_price(transport_type, params, via_hubs_count)
    additional = calculate_additional_costs(transport_type, params, base, city_id)
    return make_price_model(base, additional)


def calculate_total_price(prices: Iterable[PriceModel]) -> PriceModel:
    base = 0
    taxi = transfer = baggage = fees = 0
    for price in prices:
        base += price.base
        taxi += price.additional.taxi
        transfer += price.additional.transfer
        baggage += price.additional.baggage
        fees += price.additional.fees
    return make_price_model(base, AdditionalCosts(taxi=taxi, transfer=transfer, baggage=baggage, fees=fees))
