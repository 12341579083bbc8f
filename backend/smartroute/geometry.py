from __future__ import annotations

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass

from .distance import river_sinuosity
from .geo import KM_PER_DEGREE, bearing_rad, distance_between, is_valid_lon_lat
from .models import Connection, Coordinates, GeoJSONLineString, Hub, TransportType
from .planning_errors import PlanningError
from .registry import NetworkRegistry
from .road_routing import RoadRouter, simplified_road_path

RIVER_STEP_KM = 20.0
RAIL_STEP_KM = 80.0
WINTER_ROAD_STEP_KM = 40.0
RAIL_WOBBLE = 0.025
WINTER_ROAD_AMPLITUDE = 0.12
RIVER_AMPLITUDE_SCALE = 0.6


@dataclass(frozen=True)
class PathGeometry:
    coordinates: tuple[tuple[float, float], ...]  # (lon, lat)
    # Set when the shape is a substitute for the real one.
    degraded_reason: str | None = None

    def to_geojson(self) -> GeoJSONLineString:
        return GeoJSONLineString(coordinates=list(self.coordinates))

    def __len__(self) -> int:
        return len(self.coordinates)


def validate_path_geometry(points: Iterable[Sequence[float]], *, degraded_reason: str | None = None) -> PathGeometry:
    """Drop non-finite or out-of-range points; fewer than two survivors is an error."""
    valid: list[tuple[float, float]] = []
    for pt in points:
        if len(pt) != 2:
            continue
        try:
            lon, lat = float(pt[0]), float(pt[1])
        except (TypeError, ValueError):
            continue
        if is_valid_lon_lat(lon, lat):
            valid.append((lon, lat))
    if len(valid) < 2:
        raise PlanningError(
            reason_code="invalid_path_geometry",
            message=f"Path geometry has {len(valid)} valid point(s); at least 2 are required.",
        )
    return PathGeometry(coordinates=tuple(valid), degraded_reason=degraded_reason)


def straight_line(start: Coordinates, end: Coordinates, *, degraded_reason: str | None = None) -> PathGeometry:
    return validate_path_geometry([start.as_lon_lat(), end.as_lon_lat()], degraded_reason=degraded_reason)


def _wave_leg(
    start: Coordinates,
    end: Coordinates,
    *,
    n: int,
    amplitude_km: float,
    harmonics: Sequence[tuple[float, float]],
) -> list[tuple[float, float]]:
    """Interior points of a chord displaced sideways by a sum of sines.

    ``harmonics`` are (frequency in multiples of pi, weight) pairs.
    """
    perp = bearing_rad(start, end) + math.pi / 2.0
    out: list[tuple[float, float]] = []
    for i in range(1, n):
        t = i / n
        lat = start.latitude + (end.latitude - start.latitude) * t
        lon = start.longitude + (end.longitude - start.longitude) * t
        wave = sum(weight * math.sin(t * math.pi * freq) for freq, weight in harmonics)
        offset = wave * amplitude_km / KM_PER_DEGREE
        out.append((lon + offset * math.cos(perp), lat + offset * math.sin(perp)))
    return out


def _ensure_bend(points: list[tuple[float, float]], start: Coordinates, end: Coordinates, share: float) -> None:
    if len(points) >= 3:
        return
    d = distance_between(start, end)
    offset = share * d / KM_PER_DEGREE
    mid = ((start.longitude + end.longitude) / 2.0 + offset, (start.latitude + end.latitude) / 2.0 + offset)
    points.insert(1, mid)


def air_path(start: Coordinates, end: Coordinates, via_hubs: Sequence[Hub] = ()) -> PathGeometry:
    points: list[tuple[float, float]] = []
    for pt in (start.as_lon_lat(), *(hub.coordinates.as_lon_lat() for hub in via_hubs), end.as_lon_lat()):
        # Hubs at either end coincide with the airport itself.
        if not points or points[-1] != pt:
            points.append(pt)
    if len(points) < 2:
        points.append(end.as_lon_lat())
    return validate_path_geometry(points)


def river_path(
    start: Coordinates,
    end: Coordinates,
    *,
    piers: Sequence[Coordinates] = (),
    river: str | None = None,
) -> PathGeometry:
    amplitude = (river_sinuosity(river) - 1.0) * RIVER_AMPLITUDE_SCALE
    points: list[tuple[float, float]] = [start.as_lon_lat()]
    for a, b in zip([start, *piers], [*piers, end]):
        d = distance_between(a, b)
        n = max(5, math.ceil(d / RIVER_STEP_KM))
        points.extend(_wave_leg(a, b, n=n, amplitude_km=amplitude * d, harmonics=((4.0, 1.0), (6.0, 0.5), (8.0, 0.3))))
        points.append(b.as_lon_lat())
    _ensure_bend(points, start, end, 0.03)
    return validate_path_geometry(points)


def rail_path(start: Coordinates, end: Coordinates, *, stations: Sequence[Coordinates] = ()) -> PathGeometry:
    points: list[tuple[float, float]] = [start.as_lon_lat()]
    if stations:
        points.extend(station.as_lon_lat() for station in stations)
    else:
        d = distance_between(start, end)
        n = max(3, math.ceil(d / RAIL_STEP_KM))
        for i in range(1, n):
            t = i / n
            lat = start.latitude + (end.latitude - start.latitude) * t
            lon = start.longitude + (end.longitude - start.longitude) * t
            offset = math.sin(t * math.pi * 1.2) * RAIL_WOBBLE * d / KM_PER_DEGREE
            points.append((lon + offset * math.sin(t * math.pi * 2.2), lat + offset * math.cos(t * math.pi * 2.2)))
    points.append(end.as_lon_lat())
    _ensure_bend(points, start, end, 0.02)
    return validate_path_geometry(points)


def winter_road_path(start: Coordinates, end: Coordinates, *, waypoints: Sequence[Coordinates] = ()) -> PathGeometry:
    points: list[tuple[float, float]] = [start.as_lon_lat()]
    for a, b in zip([start, *waypoints], [*waypoints, end]):
        d = distance_between(a, b)
        n = max(5, math.ceil(d / WINTER_ROAD_STEP_KM))
        points.extend(
            _wave_leg(a, b, n=n, amplitude_km=WINTER_ROAD_AMPLITUDE * d, harmonics=((1.5, 1.0), (3.0, 0.5), (4.5, 0.3)))
        )
        points.append(b.as_lon_lat())
    _ensure_bend(points, start, end, 0.06)
    return validate_path_geometry(points)


class GeometrySynthesizer:
    """Display polylines shaped like each mode's real course."""

    def __init__(self, registry: NetworkRegistry, road_router: RoadRouter | None = None) -> None:
        self._registry = registry
        self._road = road_router

    def waypoints(self, connection: Connection | None) -> list[Coordinates]:
        if connection is None:
            return []
        out: list[Coordinates] = []
        for item in connection.intermediate_cities:
            if isinstance(item, Coordinates):
                out.append(item)
                continue
            city = self._registry.city(item)
            if city is not None:
                out.append(city.coordinates)
        return out

    async def road_path(self, start: Coordinates, end: Coordinates, *, via: Sequence[Coordinates] = ()) -> PathGeometry:
        if self._road is None:
            road = simplified_road_path(start, end, via=via)
            return validate_path_geometry(road.coordinates, degraded_reason="road service not configured")
        result = await self._road.route_with_federal_priority(start, end, via=via)
        if result.route is None:
            road = simplified_road_path(start, end, via=via)
            return validate_path_geometry(road.coordinates, degraded_reason=result.reason or "road service failed")
        return validate_path_geometry(result.route.coordinates, degraded_reason=result.reason)

    async def path_for_segment(
        self,
        transport_type: TransportType,
        start: Coordinates,
        end: Coordinates,
        *,
        connection: Connection | None = None,
        via_hubs: Sequence[Hub] = (),
    ) -> PathGeometry:
        via = self.waypoints(connection)
        if transport_type == "airplane":
            return air_path(start, end, via_hubs)
        if transport_type == "bus":
            return await self.road_path(start, end, via=via)
        if transport_type == "taxi":
            return await self.road_path(start, end)
        if transport_type == "train":
            return rail_path(start, end, stations=via)
        if transport_type == "ferry":
            return river_path(start, end, piers=via, river=connection.river if connection is not None else None)
        if transport_type == "winter_road":
            return winter_road_path(start, end, waypoints=via)
        return straight_line(start, end)
