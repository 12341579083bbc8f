from __future__ import annotations

import asyncio
from datetime import date, datetime
from typing import Any

import httpx
import pytest

import smartroute.route_builder as route_builder
from smartroute.models import Connection, RouteRequest
from smartroute.planning_errors import PlanningError
from smartroute.registry import default_registry
from smartroute.road_routing import RoadRouter
from smartroute.route_builder import RouteBuilder, format_duration
from smartroute.route_cache import RouteCacheStore
from smartroute.routing_osrm import OSRMClient
from smartroute.seasons import season_for_date

BOOKED = date(2025, 6, 1)


class FakeOSRM:
    def __init__(self) -> None:
        self.calls = 0

    async def fetch_routes(self, **kwargs: Any) -> list[dict[str, Any]]:
        self.calls += 1
        return [
            {
                "distance": 1_010_000.0,
                "duration": 43_000.0,
                "geometry": {
                    "type": "LineString",
                    "coordinates": [
                        [kwargs["origin_lon"], kwargs["origin_lat"]],
                        [129.15, 61.48],
                        [kwargs["dest_lon"], kwargs["dest_lat"]],
                    ],
                },
            }
        ]


def _builder(**kwargs: Any) -> RouteBuilder:
    kwargs.setdefault("booking_date", BOOKED)
    return RouteBuilder(default_registry(), **kwargs)


def _build(builder: RouteBuilder, **payload: Any):
    return asyncio.run(builder.build_route(RouteRequest(**payload)))


def test_direct_bus_route_within_yakutia() -> None:
    result = _build(_builder(), from_city_id="yakutsk", to_city_id="mirny", date="2025-07-15")
    assert result is not None
    route = result.route

    assert route.transport_types == ["bus"]
    (segment,) = route.segments
    assert segment.from_stop.id == "yakutsk-bus-station"
    assert segment.to_stop.id == "mirny-bus-station"
    assert segment.connection_id == "bus-yakutsk-mirny"
    assert segment.distance.value == 1000
    assert segment.duration.value == 720
    assert segment.duration.display == "12 часов"
    assert segment.metadata["route_number"] == "101"
    assert len(segment.geometry.coordinates) >= 4
    assert "geometry: road service not configured" in segment.degraded

    assert route.season == "summer"
    assert route.total_distance.value == 1000
    assert route.total_price.base == segment.price.base
    assert route.validation.is_valid, route.validation.errors
    assert route.from_city_name == "Якутск"
    assert [m.type for m in route.visualization.markers] == ["start", "end"]


def test_route_ids_and_prices_are_reproducible() -> None:
    first = _build(_builder(), from_city_id="yakutsk", to_city_id="mirny", date="2025-07-15")
    second = _build(_builder(), from_city_id="yakutsk", to_city_id="mirny", date="2025-07-15")
    assert first is not None and second is not None
    assert first.route.id == second.route.id
    assert first.route.id.startswith("route-yakutsk-mirny-")
    assert first.route.total_price == second.route.total_price


def test_road_service_geometry_is_used_when_available() -> None:
    osrm = FakeOSRM()
    router = RoadRouter(osrm, cache=RouteCacheStore(ttl_s=60, max_entries=16))
    result = _build(_builder(road_router=router), from_city_id="yakutsk", to_city_id="mirny", date="2025-07-15")
    assert result is not None
    (segment,) = result.route.segments
    assert segment.degraded == []
    assert len(segment.geometry.coordinates) == 3
    # Catalog distance wins over the routed one.
    assert segment.distance.value == 1000
    assert osrm.calls >= 1


def test_long_haul_flies_through_regional_hub_with_surface_alternative() -> None:
    result = _build(_builder(), from_city_id="moscow", to_city_id="mirny", date="2025-07-15")
    assert result is not None
    route = result.route

    assert route.transport_types == ["airplane", "airplane"]
    assert [s.to_stop.city_id for s in route.segments] == ["yakutsk", "mirny"]
    assert route.segments[0].from_stop.id == "moscow-airport"
    assert route.total_duration.transfers == 30
    assert route.total_duration.value == 390 + 90 + 30
    assert route.total_price.additional.transfer >= 750
    assert route.validation.is_valid, route.validation.errors
    assert [m.type for m in route.visualization.markers] == ["start", "transfer", "end"]

    assert any(alt.transport_types == ["airplane", "bus"] for alt in result.alternatives)
    assert all(alt.id != route.id for alt in result.alternatives)


def test_alternatives_can_be_switched_off() -> None:
    result = _build(
        _builder(),
        from_city_id="moscow",
        to_city_id="mirny",
        date="2025-07-15",
        include_alternatives=False,
    )
    assert result is not None
    assert result.alternatives == []


def test_winter_road_preference_in_summer_falls_back_to_air() -> None:
    result = _build(
        _builder(),
        from_city_id="yakutsk",
        to_city_id="verkhoyansk",
        date="2025-07-15",
        preferred_transport="winter_road",
    )
    assert result is not None
    assert "winter_road" not in result.route.transport_types
    assert result.route.transport_types == ["airplane"]
    assert result.route.validation.is_valid
    assert any("small airport" in w for w in result.route.validation.warnings)


def test_winter_road_preference_in_january() -> None:
    result = _build(
        _builder(),
        from_city_id="yakutsk",
        to_city_id="verkhoyansk",
        date="2025-01-15",
        preferred_transport="winter_road",
    )
    assert result is not None
    route = result.route
    assert route.transport_types == ["winter_road"]
    assert route.season == "winter"
    assert route.segments[0].from_stop.type == "winter_road_point"
    assert len(route.segments[0].geometry.coordinates) > 2
    assert route.validation.is_valid, route.validation.errors


def test_summer_ferry_route_on_the_lena() -> None:
    result = _build(
        _builder(),
        from_city_id="yakutsk",
        to_city_id="lensk",
        date="2025-07-15",
        preferred_transport="ferry",
    )
    assert result is not None
    route = result.route
    assert route.transport_types == ["ferry"]
    (segment,) = route.segments
    assert segment.from_stop.type == "ferry_pier"
    assert segment.to_stop.type == "ferry_pier"
    assert segment.connection_id == "ferry-yakutsk-lensk"
    assert len(segment.geometry.coordinates) > 2
    assert route.validation.is_valid, route.validation.errors


@pytest.mark.parametrize("travel_date", ["2025-01-15", "2025-05-01"])
def test_no_ferry_outside_summer(travel_date: str) -> None:
    result = _build(
        _builder(),
        from_city_id="yakutsk",
        to_city_id="lensk",
        date=travel_date,
        preferred_transport="ferry",
    )
    assert result is not None
    assert "ferry" not in result.route.transport_types
    assert result.route.season != "summer"


def _trip(builder: RouteBuilder, origin: str, dest: str, when: datetime, **kwargs: Any) -> route_builder._Trip:
    return route_builder._Trip(
        origin=builder.registry.require_city(origin),
        dest=builder.registry.require_city(dest),
        when=when,
        season=season_for_date(when.date()),
        preferred=kwargs.get("preferred", "ferry"),
        max_transfers=kwargs.get("max_transfers", 3),
        priority=kwargs.get("priority", "price"),
    )


def test_two_sailings_through_a_shared_pier() -> None:
    upstream = Connection(
        id="ferry-olekminsk-yakutsk",
        type="ferry",
        from_city_id="olekminsk",
        to_city_id="yakutsk",
        distance_km=300,
        duration_min=540,
        base_price=2000,
        season="summer",
        metadata={"river": "Лена"},
    )
    builder = RouteBuilder(default_registry().with_connections([upstream]), booking_date=BOOKED)

    route = asyncio.run(builder._route_via_rivers(_trip(builder, "lensk", "yakutsk", datetime(2025, 7, 15, 12))))
    assert route is not None
    assert route.transport_types == ["ferry", "ferry"]
    assert [s.connection_id for s in route.segments] == ["ferry-lensk-olekminsk", "ferry-olekminsk-yakutsk"]
    assert [s.to_stop.city_id for s in route.segments] == ["olekminsk", "yakutsk"]
    assert route.total_distance.value == 350
    assert route.validation.is_valid, route.validation.errors

    winter = _trip(builder, "lensk", "yakutsk", datetime(2025, 1, 15, 12))
    assert asyncio.run(builder._route_via_rivers(winter)) is None


def test_malformed_road_service_payload_degrades_the_segment() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(
            200,
            json={
                "code": "Ok",
                "routes": [{"distance": 80_000, "duration": 4_800, "geometry": {"coordinates": [[None, None], ["x", "y"]]}}],
            },
        )

    async def _run() -> Any:
        client = OSRMClient(base_url="http://osrm.test", transport=httpx.MockTransport(handler))
        try:
            router = RoadRouter(client, cache=RouteCacheStore(ttl_s=60, max_entries=16), max_retries=1)
            return await _builder(road_router=router).build_route(
                RouteRequest(from_city_id="yakutsk", to_city_id="mirny", date="2025-07-15", preferred_transport="bus")
            )
        finally:
            await client.aclose()

    result = asyncio.run(_run())
    assert result is not None
    (segment,) = result.route.segments
    assert segment.type == "bus"
    assert any(reason.startswith("geometry: ") for reason in segment.degraded)
    assert len(segment.geometry.coordinates) >= 3


def test_rail_only_trip_respects_transfer_ceiling() -> None:
    builder = _builder()
    blocked = _build(
        builder,
        from_city_id="nizhny-bestyakh",
        to_city_id="moscow",
        date="2025-07-15",
        preferred_transport="train",
        max_transfers=3,
    )
    assert blocked is None

    result = _build(
        builder,
        from_city_id="nizhny-bestyakh",
        to_city_id="moscow",
        date="2025-07-15",
        preferred_transport="train",
        max_transfers=4,
    )
    assert result is not None
    route = result.route
    assert route.transport_types == ["train"] * 5
    assert [s.to_stop.city_id for s in route.segments][-1] == "moscow"
    assert route.total_duration.transfers == 4 * 30
    assert route.validation.is_valid, route.validation.errors


def test_unknown_city_and_bad_date_are_errors() -> None:
    builder = _builder()
    with pytest.raises(PlanningError) as missing:
        _build(builder, from_city_id="atlantis", to_city_id="mirny", date="2025-07-15")
    assert missing.value.reason_code == "city_not_found"

    with pytest.raises(PlanningError) as bad_date:
        _build(builder, from_city_id="yakutsk", to_city_id="mirny", date="2025-13-45")
    assert bad_date.value.reason_code == "invalid_date"


def test_same_city_has_no_route() -> None:
    assert _build(_builder(), from_city_id="yakutsk", to_city_id="yakutsk", date="2025-07-15") is None


def test_every_segment_failing_is_reported(monkeypatch: pytest.MonkeyPatch) -> None:
    def _boom(*_args: Any, **_kwargs: Any):
        raise PlanningError(reason_code="invalid_request", message="pricing unavailable")

    monkeypatch.setattr(route_builder, "calculate_segment_price", _boom)
    with pytest.raises(PlanningError) as exc:
        _build(_builder(), from_city_id="yakutsk", to_city_id="mirny", date="2025-07-15")
    assert exc.value.reason_code == "route_segments_failed"
    assert exc.value.details["attempted"] >= 1


def test_legacy_camel_case_request_fields() -> None:
    request = RouteRequest(fromCityId="yakutsk", toCityId="mirny", date="2025-07-15", preferredTransport="bus")
    assert request.from_city_id == "yakutsk"
    assert request.preferred_transport == "bus"


@pytest.mark.parametrize(
    ("minutes", "text"),
    [
        (0, "0 минут"),
        (1, "1 минута"),
        (22, "22 минуты"),
        (11, "11 минут"),
        (60, "1 час"),
        (125, "2 часа 5 минут"),
        (300, "5 часов"),
        (1261, "21 час 1 минута"),
    ],
)
def test_format_duration(minutes: int, text: str) -> None:
    assert format_duration(minutes) == text
