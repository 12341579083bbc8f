from __future__ import annotations

from collections.abc import Sequence

from .models import (
    Coordinates,
    LineStyle,
    MapBounds,
    MarkerIcon,
    RouteSegment,
    Stop,
    TransportType,
    Visualization,
    VisualizationMarker,
    VisualizationPolyline,
)

COLORS: dict[TransportType, str] = {
    "airplane": "#0066CC",
    "train": "#FF6600",
    "bus": "#00CC00",
    "ferry": "#00CCFF",
    "winter_road": "#CCCCCC",
    "taxi": "#FF9900",
}
DEFAULT_COLOR = "#000000"

STYLES: dict[TransportType, LineStyle] = {
    "airplane": "dashed",
    "train": "solid",
    "ferry": "wavy",
    "winter_road": "dotted",
}
DASH_ARRAYS: dict[LineStyle, str] = {"dashed": "10, 10", "dotted": "2, 6"}


def line_style(transport_type: TransportType) -> LineStyle:
    return STYLES.get(transport_type, "solid")


def line_weight(transport_type: TransportType) -> int:
    return 3 if transport_type == "train" else 2


def stop_icon(stop: Stop) -> MarkerIcon:
    return stop.type


def polyline_for(segment: RouteSegment) -> VisualizationPolyline:
    style = line_style(segment.type)
    return VisualizationPolyline(
        transport_type=segment.type,
        geometry=list(segment.geometry.coordinates),
        color=COLORS.get(segment.type, DEFAULT_COLOR),
        weight=line_weight(segment.type),
        style=style,
        dash_array=DASH_ARRAYS.get(style),
    )


def markers_for(segments: Sequence[RouteSegment]) -> list[VisualizationMarker]:
    if not segments:
        return []
    first = segments[0].from_stop
    last = segments[-1].to_stop
    markers = [VisualizationMarker(coordinates=first.coordinates, icon=stop_icon(first), label=first.name, type="start")]
    for segment in segments[:-1]:
        stop = segment.to_stop
        markers.append(
            VisualizationMarker(
                coordinates=stop.coordinates,
                icon="hub" if stop.is_hub else "transfer",
                label=stop.name,
                type="transfer",
            )
        )
    markers.append(VisualizationMarker(coordinates=last.coordinates, icon=stop_icon(last), label=last.name, type="end"))
    return markers


def bounds_for(points: Sequence[tuple[float, float]], fallback: Sequence[Coordinates] = ()) -> MapBounds:
    """Bounding box of (lon, lat) points."""
    lons = [p[0] for p in points] + [c.longitude for c in fallback]
    lats = [p[1] for p in points] + [c.latitude for c in fallback]
    if not lons:
        return MapBounds(north=0.0, south=0.0, east=0.0, west=0.0)
    return MapBounds(north=max(lats), south=min(lats), east=max(lons), west=min(lons))


def build_visualization(segments: Sequence[RouteSegment]) -> Visualization:
    polylines = [polyline_for(segment) for segment in segments]
    markers = markers_for(segments)
    points = [pt for line in polylines for pt in line.geometry]
    return Visualization(
        polylines=polylines,
        markers=markers,
        bounds=bounds_for(points, [m.coordinates for m in markers]),
    )
