from __future__ import annotations

from collections.abc import Sequence
from datetime import date

from .models import (
    STOP_TYPE_BY_TRANSPORT,
    DistanceModel,
    PriceModel,
    RouteSegment,
    RouteValidation,
    SegmentValidation,
)
from .pricing import BASE_RATES_PER_KM, DEFAULT_RATE_PER_KM
from .registry import NetworkRegistry
from .seasons import is_season_available, season_for_date

MAX_BUS_DISTANCE_KM = 1_500.0
MAX_BUS_DURATION_H = 24.0
MAX_SMALL_AIRPORT_DIRECT_KM = 500.0
PRICE_TOLERANCE = 0.20
NON_STRAIGHT_MODES = frozenset({"bus", "ferry", "train", "winter_road"})


class RouteValidator:
    """Post-build checks on an assembled itinerary.

    Errors make the route invalid; warnings are informational. The route is
    returned either way so callers can show the diagnostics.
    """

    def __init__(self, registry: NetworkRegistry) -> None:
        self._registry = registry

    def validate_segment(self, segment: RouteSegment, travel_date: date) -> SegmentValidation:
        errors: list[str] = []
        warnings: list[str] = []
        season = season_for_date(travel_date)
        seasonality = segment.seasonality

        period = None
        if seasonality.period_start is not None and seasonality.period_end is not None:
            period = (seasonality.period_start, seasonality.period_end)
        if not is_season_available(seasonality.season, travel_date, period=period):
            errors.append(f"Segment {segment.id} is not available in season {season}")
        if segment.type == "ferry" and season == "winter":
            errors.append(f"Ferry routes do not run in winter: {segment.id}")
        if segment.type == "winter_road" and season == "summer":
            errors.append(f"Winter roads are closed in summer: {segment.id}")
        if not seasonality.available:
            warnings.append(f"Segment {segment.id} is marked unavailable for season {seasonality.season}")

        distance = segment.distance.value
        if segment.type == "bus":
            if distance > MAX_BUS_DISTANCE_KM:
                errors.append(f"Bus segment is too long: {distance} km (limit {MAX_BUS_DISTANCE_KM:.0f} km)")
            hours = segment.duration.value / 60.0
            if hours > MAX_BUS_DURATION_H:
                errors.append(f"Bus travel time is too long: {hours:.1f} h (limit {MAX_BUS_DURATION_H:.0f} h)")

        if segment.type == "airplane" and segment.is_direct and distance > MAX_SMALL_AIRPORT_DIRECT_KM:
            small = [
                city_id
                for city_id in (segment.from_stop.city_id, segment.to_stop.city_id)
                if (city := self._registry.city(city_id)) is not None and city.is_small_airport
            ]
            if small:
                warnings.append(
                    f"Direct flight of {distance} km touches small airport(s) {', '.join(small)}; "
                    "a route through a hub is recommended"
                )

        required = STOP_TYPE_BY_TRANSPORT.get(segment.type, "bus_station")
        if segment.from_stop.type != required:
            errors.append(f"Departure stop of {segment.id} must be {required}, got {segment.from_stop.type}")
        if segment.to_stop.type != required:
            errors.append(f"Arrival stop of {segment.id} must be {required}, got {segment.to_stop.type}")

        if segment.type in NON_STRAIGHT_MODES and len(segment.geometry.coordinates) <= 2:
            errors.append(f"{segment.type} segment {segment.id} must not be drawn as a straight line")

        if segment.price.base <= 0:
            errors.append(f"Segment {segment.id} has non-positive price {segment.price.base}")
        else:
            expected = BASE_RATES_PER_KM.get(segment.type, DEFAULT_RATE_PER_KM) * distance
            if expected > 0 and abs(segment.price.base - expected) / expected > PRICE_TOLERANCE:
                warnings.append(
                    f"Price of {segment.id} deviates from the distance estimate by more than "
                    f"{PRICE_TOLERANCE:.0%}: {segment.price.base}₽ vs {expected:.0f}₽"
                )

        return SegmentValidation(segment_id=segment.id, is_valid=not errors, errors=errors, warnings=warnings)

    def validate_route(
        self,
        *,
        segments: Sequence[RouteSegment],
        from_city_id: str,
        to_city_id: str,
        travel_date: date,
        total_distance: DistanceModel | None = None,
        total_price: PriceModel | None = None,
    ) -> RouteValidation:
        errors: list[str] = []
        warnings: list[str] = []
        segment_validations: list[SegmentValidation] = []

        for segment in segments:
            check = self.validate_segment(segment, travel_date)
            segment_validations.append(check)
            errors.extend(check.errors)
            warnings.extend(check.warnings)

        if not segments:
            errors.append("Route must contain at least one segment")
            return RouteValidation(is_valid=False, errors=errors, warnings=warnings)

        for idx, (current, nxt) in enumerate(zip(segments, segments[1:]), start=1):
            if current.to_stop.city_id != nxt.from_stop.city_id:
                errors.append(
                    f"Segments are not connected: segment {idx + 1} starts in {nxt.from_stop.city_id} "
                    f"but segment {idx} ends in {current.to_stop.city_id}"
                )
        if segments[0].from_stop.city_id != from_city_id:
            errors.append(f"Route starts in {segments[0].from_stop.city_id}, expected {from_city_id}")
        if segments[-1].to_stop.city_id != to_city_id:
            errors.append(f"Route ends in {segments[-1].to_stop.city_id}, expected {to_city_id}")

        if total_distance is not None:
            summed = round(sum(s.distance.value for s in segments), 1)
            if abs(total_distance.value - summed) > 0.5:
                errors.append(f"Total distance {total_distance.value} km does not match segment sum {summed} km")
        if total_price is not None:
            summed_base = sum(s.price.base for s in segments)
            if total_price.base != summed_base:
                errors.append(f"Total base price {total_price.base}₽ does not match segment sum {summed_base}₽")

        return RouteValidation(
            is_valid=not errors,
            errors=errors,
            warnings=warnings,
            segment_validations=segment_validations,
        )
