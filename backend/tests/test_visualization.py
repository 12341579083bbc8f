from __future__ import annotations

from smartroute.models import (
    Coordinates,
    DistanceModel,
    DurationModel,
    GeoJSONLineString,
    RouteSegment,
    Seasonality,
    Stop,
)
from smartroute.pricing import make_price_model
from smartroute.visualization import COLORS, bounds_for, build_visualization, markers_for


def _stop(stop_id: str, stop_type: str, lat: float, lon: float, *, is_hub: bool = False) -> Stop:
    return Stop(
        id=stop_id,
        name=stop_id.title(),
        type=stop_type,
        coordinates=Coordinates(latitude=lat, longitude=lon),
        city_id=stop_id.split("-")[0],
        is_hub=is_hub,
    )


def _segment(mode: str, a: Stop, b: Stop) -> RouteSegment:
    mid = ((a.coordinates.longitude + b.coordinates.longitude) / 2, (a.coordinates.latitude + b.coordinates.latitude) / 2)
    return RouteSegment(
        id=f"seg-{a.id}-{b.id}",
        type=mode,
        from_stop=a,
        to_stop=b,
        distance=DistanceModel(value=100, method="manual"),
        duration=DurationModel(value=60, display="1 час"),
        price=make_price_model(500),
        seasonality=Seasonality(season="all", available=True),
        geometry=GeoJSONLineString(coordinates=[a.coordinates.as_lon_lat(), mid, b.coordinates.as_lon_lat()]),
    )


def _trip() -> list[RouteSegment]:
    moscow = _stop("moscow-airport", "airport", 55.75, 37.61, is_hub=True)
    yakutsk_air = _stop("yakutsk-airport", "airport", 62.03, 129.70, is_hub=True)
    yakutsk_bus = _stop("yakutsk-bus-station", "bus_station", 62.03, 129.70, is_hub=True)
    mirny = _stop("mirny-bus-station", "bus_station", 62.53, 113.96)
    return [_segment("airplane", moscow, yakutsk_air), _segment("bus", yakutsk_bus, mirny)]


def test_polylines_carry_mode_styles() -> None:
    viz = build_visualization(_trip())
    air, bus = viz.polylines
    assert air.color == COLORS["airplane"]
    assert air.style == "dashed"
    assert air.dash_array == "10, 10"
    assert bus.style == "solid"
    assert bus.dash_array is None
    assert bus.weight == 2
    assert len(bus.geometry) == 3


def test_markers_start_transfer_end() -> None:
    markers = markers_for(_trip())
    assert [m.type for m in markers] == ["start", "transfer", "end"]
    assert markers[0].icon == "airport"
    assert markers[1].icon == "hub"
    assert markers[2].icon == "bus_station"
    assert markers[2].label == "Mirny-Bus-Station"
    assert markers_for([]) == []


def test_bounds_cover_every_point() -> None:
    bounds = build_visualization(_trip()).bounds
    assert bounds.north == 62.53
    assert bounds.south == 55.75
    assert bounds.east == 129.70
    assert bounds.west == 37.61


def test_empty_bounds_are_zero() -> None:
    bounds = bounds_for([])
    assert (bounds.north, bounds.south, bounds.east, bounds.west) == (0.0, 0.0, 0.0, 0.0)
