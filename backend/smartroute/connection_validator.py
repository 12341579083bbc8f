from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass

from .geo import distance_between
from .models import City, Connection

MAX_BUS_DISTANCE_KM = 1_500.0
MAX_SMALL_AIRPORT_DIRECT_KM = 500.0
MAX_CONNECTION_DISTANCE_KM = 10_000.0
MIN_SPEED_KMH = 20.0
MAX_SPEED_KMH = 1_000.0


@dataclass(frozen=True)
class ConnectionValidation:
    valid: bool
    reason: str | None = None
    recommendations: tuple[str, ...] = ()


@dataclass(frozen=True)
class InvalidConnection:
    connection: Connection
    reason: str
    recommendations: tuple[str, ...] = ()


@dataclass(frozen=True)
class ConnectionPartition:
    valid: tuple[Connection, ...]
    invalid: tuple[InvalidConnection, ...]


def _invalid(reason: str, *recommendations: str) -> ConnectionValidation:
    return ConnectionValidation(valid=False, reason=reason, recommendations=tuple(recommendations))


def _air_span_km(connection: Connection, cities: Mapping[str, City]) -> float:
    # The longer of the catalogued and great-circle distance; either one over
    # the ceiling is enough to reject the edge.
    span = float(connection.distance_km)
    origin = cities.get(connection.from_city_id)
    dest = cities.get(connection.to_city_id)
    if origin is not None and dest is not None:
        span = max(span, distance_between(origin.coordinates, dest.coordinates))
    return span


def _check_small_airports(connection: Connection, cities: Mapping[str, City]) -> ConnectionValidation | None:
    if connection.type != "airplane" or not connection.is_direct:
        return None
    origin = cities.get(connection.from_city_id)
    dest = cities.get(connection.to_city_id)
    if origin is None or dest is None:
        return None
    span_km = _air_span_km(connection, cities)
    if span_km <= MAX_SMALL_AIRPORT_DIRECT_KM:
        return None

    if origin.is_small_airport and dest.is_small_airport:
        return _invalid(
            f"Direct flight between small airports {origin.id} and {dest.id} covers {span_km:.0f} km "
            f"(limit {MAX_SMALL_AIRPORT_DIRECT_KM:.0f} km for class D airports)",
            "Route the flight through the nearest regional hub",
            "Split the trip into feeder flights to and from a hub",
        )
    if (origin.is_small_airport and not dest.is_tiered_hub) or (dest.is_small_airport and not origin.is_tiered_hub):
        small = origin if origin.is_small_airport else dest
        return _invalid(
            f"Direct flight from small airport {small.id} to a non-hub city covers {span_km:.0f} km "
            f"(limit {MAX_SMALL_AIRPORT_DIRECT_KM:.0f} km unless the other end is a hub)",
            "Route the flight through the nearest regional hub",
        )
    return None


def validate_connection(connection: Connection, cities: Mapping[str, City]) -> ConnectionValidation:
    """Check one catalog edge against the physical plausibility rules.

    Rules run in a fixed order and the first failure wins, so the reported
    reason is stable across runs.
    """
    distance = float(connection.distance_km)
    duration = float(connection.duration_min)

    if connection.type == "bus" and distance > MAX_BUS_DISTANCE_KM:
        return _invalid(
            f"Bus connection {connection.id} is {distance:.0f} km long; "
            f"the limit for bus routes is {MAX_BUS_DISTANCE_KM:.0f} km",
            "Use rail or air for this distance",
            "Split the trip at an intermediate city with a bus station",
        )

    small_airport_result = _check_small_airports(connection, cities)
    if small_airport_result is not None:
        return small_airport_result

    if distance <= 0:
        return _invalid(f"Connection {connection.id} has non-positive distance {distance}")
    if distance > MAX_CONNECTION_DISTANCE_KM:
        return _invalid(
            f"Connection {connection.id} distance {distance:.0f} km exceeds {MAX_CONNECTION_DISTANCE_KM:.0f} km",
            "Check the distance units of the source record",
        )
    if float(connection.base_price) <= 0:
        return _invalid(f"Connection {connection.id} has non-positive base price {connection.base_price}")
    if duration <= 0:
        return _invalid(f"Connection {connection.id} has non-positive duration {duration}")

    speed_kmh = distance / duration * 60.0
    if speed_kmh < MIN_SPEED_KMH or speed_kmh > MAX_SPEED_KMH:
        return _invalid(
            f"Connection {connection.id} implies {speed_kmh:.1f} km/h, outside "
            f"[{MIN_SPEED_KMH:.0f}, {MAX_SPEED_KMH:.0f}] km/h",
            "Check the duration (minutes) and distance (km) of the source record",
        )
    return ConnectionValidation(valid=True)


def validate_and_filter_connections(
    connections: Iterable[Connection],
    cities: Mapping[str, City],
) -> ConnectionPartition:
    valid: list[Connection] = []
    invalid: list[InvalidConnection] = []
    for connection in connections:
        result = validate_connection(connection, cities)
        if result.valid:
            valid.append(connection)
        else:
            invalid.append(
                InvalidConnection(
                    connection=connection,
                    reason=result.reason or "invalid connection",
                    recommendations=result.recommendations,
                )
            )
    return ConnectionPartition(valid=tuple(valid), invalid=tuple(invalid))


def find_problematic_connections(
    connections: Iterable[Connection],
    cities: Mapping[str, City],
) -> tuple[InvalidConnection, ...]:
    return validate_and_filter_connections(connections, cities).invalid
