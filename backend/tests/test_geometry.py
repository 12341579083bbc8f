from __future__ import annotations

import asyncio
import math
from typing import Any

import pytest

from smartroute.geometry import (
    GeometrySynthesizer,
    air_path,
    rail_path,
    river_path,
    straight_line,
    validate_path_geometry,
    winter_road_path,
)
from smartroute.models import Coordinates
from smartroute.planning_errors import PlanningError
from smartroute.registry import default_registry
from smartroute.road_routing import RoadRouter, RoadRouteResult
from smartroute.route_cache import RouteCacheStore

YAKUTSK = Coordinates(latitude=62.0278, longitude=129.7042)
MIRNY = Coordinates(latitude=62.5353, longitude=113.9611)
VERKHOYANSK = Coordinates(latitude=67.55, longitude=133.3833)


class TwoPointOSRM:
    async def fetch_routes(self, **kwargs: Any) -> list[dict[str, Any]]:
        return [
            {
                "distance": 1_000_000.0,
                "duration": 43_200.0,
                "geometry": {
                    "type": "LineString",
                    "coordinates": [[kwargs["origin_lon"], kwargs["origin_lat"]], [kwargs["dest_lon"], kwargs["dest_lat"]]],
                },
            }
        ]


def test_validate_drops_bad_points_and_needs_two() -> None:
    geometry = validate_path_geometry([(129.7, 62.0), (math.nan, 62.0), (500.0, 10.0), (1.0,), (113.9, 62.5)])
    assert geometry.coordinates == ((129.7, 62.0), (113.9, 62.5))

    with pytest.raises(PlanningError) as exc:
        validate_path_geometry([(129.7, 62.0), (math.inf, 1.0)])
    assert exc.value.reason_code == "invalid_path_geometry"


def test_air_path_skips_hubs_that_coincide_with_endpoints() -> None:
    hub = default_registry().hub("yakutsk-hub")
    assert hub is not None
    path = air_path(YAKUTSK, VERKHOYANSK, [hub])
    assert path.coordinates == (YAKUTSK.as_lon_lat(), VERKHOYANSK.as_lon_lat())

    mirny_hub = default_registry().hub("mirny-hub")
    assert mirny_hub is not None
    via = air_path(VERKHOYANSK, MIRNY, [hub, mirny_hub])
    assert len(via) == 3

    same = air_path(YAKUTSK, YAKUTSK)
    assert len(same) == 2


def test_surface_modes_are_never_straight() -> None:
    river = river_path(YAKUTSK, MIRNY, river="Лена")
    rail = rail_path(YAKUTSK, MIRNY)
    winter = winter_road_path(YAKUTSK, VERKHOYANSK)
    for path in (river, rail, winter):
        assert len(path) >= 4
        assert path.coordinates[0] == YAKUTSK.as_lon_lat()
    assert river.coordinates[-1] == MIRNY.as_lon_lat()
    assert winter.coordinates[-1] == VERKHOYANSK.as_lon_lat()


def test_rail_path_follows_stations_and_short_legs_still_bend() -> None:
    station = Coordinates(latitude=62.3, longitude=121.0)
    path = rail_path(YAKUTSK, MIRNY, stations=[station])
    assert path.coordinates[1] == station.as_lon_lat()

    nearby = Coordinates(latitude=62.03, longitude=129.71)
    assert len(river_path(YAKUTSK, nearby)) >= 3


def test_straight_line_and_geojson() -> None:
    line = straight_line(YAKUTSK, MIRNY, degraded_reason="test")
    geojson = line.to_geojson()
    assert geojson.type == "LineString"
    assert geojson.coordinates == [YAKUTSK.as_lon_lat(), MIRNY.as_lon_lat()]
    assert line.degraded_reason == "test"


def test_bus_without_road_service_uses_catalog_waypoints() -> None:
    registry = default_registry()
    synthesizer = GeometrySynthesizer(registry)
    connection = registry.connections_between("yakutsk", "mirny", "bus")[0]

    path = asyncio.run(synthesizer.path_for_segment("bus", YAKUTSK, MIRNY, connection=connection))
    assert path.degraded_reason == "road service not configured"
    assert path.coordinates[1] == registry.require_city("pokrovsk").coordinates.as_lon_lat()
    assert len(path) == 4


def test_two_point_road_answer_is_replaced() -> None:
    router = RoadRouter(TwoPointOSRM(), cache=RouteCacheStore(ttl_s=60, max_entries=8))
    path = asyncio.run(GeometrySynthesizer(default_registry(), router).path_for_segment("taxi", YAKUTSK, MIRNY))
    assert len(path) >= 4
    assert path.degraded_reason == "degenerate road geometry"


class NoRouteRouter:
    async def route_with_federal_priority(self, start: Coordinates, end: Coordinates, **_: Any) -> RoadRouteResult:
        return RoadRouteResult(route=None, reason="road service down")


def test_router_without_any_route_still_yields_a_road_shape() -> None:
    synthesizer = GeometrySynthesizer(default_registry(), NoRouteRouter())  # type: ignore[arg-type]
    path = asyncio.run(synthesizer.path_for_segment("bus", YAKUTSK, MIRNY))
    assert len(path) >= 3
    assert path.degraded_reason == "road service down"


def test_ferry_waypoints_accept_raw_coordinates() -> None:
    registry = default_registry()
    connection = registry.connections_between("khandyga", "yakutsk", "ferry")[0]
    waypoints = GeometrySynthesizer(registry).waypoints(connection)
    assert waypoints and isinstance(waypoints[0], Coordinates)
