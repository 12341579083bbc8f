from __future__ import annotations

from .geo import distance_between
from .models import Connection, Coordinates, DistanceMethod, DistanceModel, TransportType
from .road_routing import RoadRouter
from .settings import settings

RIVER_SINUOSITY: dict[str, float] = {"Лена": 1.18, "Вилюй": 1.18, "Алдан": 1.25}
DEFAULT_RIVER_SINUOSITY = 1.2
WINTER_ROAD_WINDING = 1.2

_CATALOG_METHOD: dict[TransportType, DistanceMethod] = {
    "airplane": "haversine",
    "train": "rail_path",
    "bus": "osrm",
    "ferry": "river_path",
}


def river_sinuosity(river: str | None) -> float:
    if not river:
        return DEFAULT_RIVER_SINUOSITY
    return RIVER_SINUOSITY.get(river, DEFAULT_RIVER_SINUOSITY)


def make_distance_model(
    value_km: float,
    method: DistanceMethod,
    transport_type: TransportType | None = None,
) -> DistanceModel:
    value = round(max(0.0, float(value_km)), 1)
    breakdown = {transport_type: value} if transport_type is not None else {}
    return DistanceModel(value=value, method=method, breakdown=breakdown)


class DistanceCalculator:
    """Per-mode distance estimates.

    Only road legs touch the network (through ``RoadRouter``); every other
    mode is computed from coordinates or the catalog.
    """

    def __init__(self, road_router: RoadRouter | None = None, *, rail_detour: float | None = None) -> None:
        self._road = road_router
        self._rail_detour = float(rail_detour if rail_detour is not None else settings.rail_detour_coefficient)

    @staticmethod
    def haversine(start: Coordinates, end: Coordinates) -> float:
        return distance_between(start, end)

    async def road_distance(self, start: Coordinates, end: Coordinates) -> tuple[float, DistanceMethod]:
        """Routed distance, or great-circle distance when routing fails."""
        if self._road is not None:
            result = await self._road.route(start, end)
            if result.ok and result.route is not None:
                return result.route.distance_km, "osrm"
        return distance_between(start, end), "haversine"

    @staticmethod
    def river_distance(
        start: Coordinates,
        end: Coordinates,
        river: str | None = None,
        connection: Connection | None = None,
    ) -> float:
        if connection is not None and connection.distance_km > 0:
            return float(connection.distance_km)
        return distance_between(start, end) * river_sinuosity(river)

    def rail_distance(self, start: Coordinates, end: Coordinates, detour: float | None = None) -> float:
        return distance_between(start, end) * (detour if detour is not None else self._rail_detour)

    @staticmethod
    def winter_road_distance(start: Coordinates, end: Coordinates) -> float:
        return distance_between(start, end) * WINTER_ROAD_WINDING

    async def distance_for_segment(
        self,
        transport_type: TransportType,
        start: Coordinates,
        end: Coordinates,
        connection: Connection | None = None,
    ) -> DistanceModel:
        if connection is not None and connection.distance_km > 0:
            method = _CATALOG_METHOD.get(transport_type, "manual")
            return make_distance_model(connection.distance_km, method, transport_type)

        if transport_type == "airplane":
            return make_distance_model(distance_between(start, end), "haversine", transport_type)
        if transport_type in ("bus", "taxi"):
            km, method = await self.road_distance(start, end)
            return make_distance_model(km, method, transport_type)
        if transport_type == "train":
            return make_distance_model(self.rail_distance(start, end), "rail_path", transport_type)
        if transport_type == "ferry":
            river = connection.river if connection is not None else None
            return make_distance_model(self.river_distance(start, end, river, connection), "river_path", transport_type)
        if transport_type == "winter_road":
            return make_distance_model(self.winter_road_distance(start, end), "manual", transport_type)
        return make_distance_model(distance_between(start, end), "haversine", transport_type)
