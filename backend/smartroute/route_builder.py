from __future__ import annotations

import hashlib
import time
from collections import deque
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import date, datetime

from .connection_validator import MAX_BUS_DISTANCE_KM
from .connectivity import AVERAGE_SPEED_KMH
from .distance import DistanceCalculator
from .geometry import GeometrySynthesizer, straight_line
from .hub_selector import HubSelector
from .logging_utils import log_event, log_warning
from .models import (
    STOP_TYPE_BY_TRANSPORT,
    BuildRouteResult,
    City,
    Connection,
    DistanceModel,
    DurationModel,
    Hub,
    RoutePriority,
    RouteRequest,
    RouteSegment,
    Season,
    SmartRoute,
    Stop,
    TransportType,
)
from .planning_errors import PlanningError
from .pricing import TRANSFER_FEE, PriceParams, calculate_segment_price, calculate_total_price, make_price_model
from .rail_graph import RailGraph
from .registry import NetworkRegistry
from .road_routing import RoadRouter
from .route_validator import RouteValidator
from .seasons import (
    is_season_available,
    is_transport_available_in_season,
    parse_travel_date,
    season_for_date,
    seasonality_for,
)
from .settings import settings
from .visualization import build_visualization

TRANSFER_MINUTES = 30
# Cheapest and most accessible first.
DIRECT_MODE_ORDER: tuple[TransportType, ...] = ("bus", "train", "ferry", "winter_road", "airplane")
FALLBACK_MODE_ORDER: tuple[TransportType, ...] = ("airplane", "train", "bus", "ferry", "winter_road")
MAX_VIA_CITIES = 30
MAX_FALLBACK_VIA_CITIES = 10
MAX_SEARCH_SEGMENTS = 5
MAX_SEARCH_ITERATIONS = 1_000


def _plural(n: int, one: str, few: str, many: str) -> str:
    if n % 10 == 1 and n % 100 != 11:
        return one
    if 2 <= n % 10 <= 4 and not 12 <= n % 100 <= 14:
        return few
    return many


def format_duration(minutes: int) -> str:
    """Russian display string, e.g. ``"2 часа 5 минут"``."""
    minutes = max(0, int(minutes))
    hours, mins = divmod(minutes, 60)
    if hours == 0:
        return f"{mins} {_plural(mins, 'минута', 'минуты', 'минут')}"
    text = f"{hours} {_plural(hours, 'час', 'часа', 'часов')}"
    if mins == 0:
        return text
    return f"{text} {mins} {_plural(mins, 'минута', 'минуты', 'минут')}"


def estimate_duration(transport_type: TransportType, distance_km: float) -> int:
    speed = AVERAGE_SPEED_KMH.get(transport_type, 60.0)
    return max(1, int(round(distance_km / speed * 60.0)))


def _priority_key(priority: RoutePriority):
    if priority == "time":
        return lambda route: route.total_duration.value
    if priority == "comfort":
        return lambda route: len(route.segments)
    return lambda route: route.total_price.total


@dataclass
class _Trip:
    """Per-request planning state. Counters track segment build failures."""

    origin: City
    dest: City
    when: datetime
    season: Season
    preferred: TransportType | None
    max_transfers: int
    priority: RoutePriority
    attempted: int = 0
    failed: int = 0

    @property
    def day(self) -> date:
        return self.when.date()

    def modes(self) -> tuple[TransportType, ...]:
        return (self.preferred,) if self.preferred is not None else DIRECT_MODE_ORDER

    def allows(self, transport_type: TransportType) -> bool:
        return self.preferred is None or self.preferred == transport_type


class RouteBuilder:
    """Multimodal itinerary planner over a ``NetworkRegistry``.

    Strategies run in order (direct, multi-segment, fallback) and the first
    one that assembles a route wins. Only road legs await the network; the
    registry is never mutated, so one builder may serve concurrent requests.
    """

    def __init__(
        self,
        registry: NetworkRegistry,
        *,
        road_router: RoadRouter | None = None,
        max_alternatives: int | None = None,
        booking_date: date | None = None,
    ) -> None:
        self._registry = registry
        self._hubs = HubSelector(registry)
        self._rail = RailGraph(registry.connections)
        self._distance = DistanceCalculator(road_router)
        self._geometry = GeometrySynthesizer(registry, road_router)
        self._validator = RouteValidator(registry)
        self._max_alternatives = int(max_alternatives if max_alternatives is not None else settings.max_alternatives)
        self._booking_date = booking_date

    @property
    def registry(self) -> NetworkRegistry:
        return self._registry

    async def build_route(self, request: RouteRequest) -> BuildRouteResult | None:
        """Plan a trip; None means no itinerary exists for the date."""
        t0 = time.perf_counter()
        origin = self._registry.require_city(request.from_city_id)
        dest = self._registry.require_city(request.to_city_id)
        when = parse_travel_date(request.date)
        max_transfers = request.max_transfers if request.max_transfers is not None else settings.default_max_transfers
        trip = _Trip(
            origin=origin,
            dest=dest,
            when=when,
            season=season_for_date(when.date()),
            preferred=request.preferred_transport,
            max_transfers=max_transfers,
            priority=request.priority,
        )

        route: SmartRoute | None = None
        strategy = None
        if origin.id != dest.id:
            for strategy, plan in (
                ("direct", self._direct_route),
                ("multi_segment", self._multi_segment_route),
                ("fallback", self._fallback_route),
            ):
                route = await plan(trip)
                if route is not None:
                    break

        if route is None:
            if trip.attempted and trip.failed == trip.attempted:
                raise PlanningError(
                    reason_code="route_segments_failed",
                    message=f"Every segment between {origin.id} and {dest.id} failed to build.",
                    details={"from_city_id": origin.id, "to_city_id": dest.id, "attempted": trip.attempted},
                )
            log_event(
                "route_not_found",
                from_city_id=origin.id,
                to_city_id=dest.id,
                date=trip.day.isoformat(),
                season=trip.season,
                preferred_transport=trip.preferred,
                duration_ms=round((time.perf_counter() - t0) * 1000, 2),
            )
            return None

        alternatives: list[SmartRoute] = []
        if request.include_alternatives:
            alternatives = await self._find_alternative_routes(trip, route)

        log_event(
            "route_built",
            route_id=route.id,
            strategy=strategy,
            from_city_id=origin.id,
            to_city_id=dest.id,
            date=trip.day.isoformat(),
            season=trip.season,
            transport_types=route.transport_types,
            segment_count=len(route.segments),
            is_valid=route.validation.is_valid,
            alternative_count=len(alternatives),
            duration_ms=round((time.perf_counter() - t0) * 1000, 2),
        )
        return BuildRouteResult(route=route, alternatives=alternatives)

    # -- alternatives ---------------------------------------------------

    async def _find_alternative_routes(self, trip: _Trip, main: SmartRoute) -> list[SmartRoute]:
        if self._max_alternatives <= 0:
            return []
        found: dict[str, SmartRoute] = {}

        def _keep(candidate: SmartRoute | None) -> None:
            if candidate is not None and candidate.id != main.id:
                found.setdefault(candidate.id, candidate)

        if "airplane" in main.transport_types and trip.preferred is None:
            for mode in ("bus", "train"):
                _keep(await self._route_via_cities(replace(trip, preferred=mode), allow_search=False))

        # Only worth offering when it changes the stopovers or the modes.
        other = await self._route_via_cities(trip, allow_search=False)
        if other is not None and (_stopovers(other), other.transport_types) != (_stopovers(main), main.transport_types):
            _keep(other)

        ranked = sorted(found.values(), key=_priority_key(trip.priority))
        return ranked[: self._max_alternatives]

    # -- strategies -----------------------------------------------------

    async def _direct_route(self, trip: _Trip) -> SmartRoute | None:
        modes = trip.modes()
        if "airplane" in modes and not self._hubs.can_build_direct_route(trip.origin, trip.dest):
            modes = tuple(m for m in modes if m != "airplane")
        for mode in modes:
            route = await self._direct_leg(trip, mode)
            if route is not None:
                return route
        return None

    async def _direct_leg(self, trip: _Trip, mode: TransportType) -> SmartRoute | None:
        if not is_transport_available_in_season(mode, trip.season):
            return None
        connection = self._first_connection(trip.origin.id, trip.dest.id, mode)
        if connection is None:
            return None
        if mode == "bus" and connection.distance_km > MAX_BUS_DISTANCE_KM:
            return None
        if not self._runs(connection, trip) or not self._has_stops(trip.origin, trip.dest, mode):
            return None
        via_hubs: list[Hub] = []
        if mode == "airplane":
            via_hubs = [h for h in (self._registry.hub_for_city(trip.origin.id), self._registry.hub_for_city(trip.dest.id)) if h]
        segment = await self._build_segment(trip, mode, trip.origin, trip.dest, connection, via_hubs=via_hubs)
        if segment is None:
            return None
        return self._create_route(trip, [segment])

    async def _multi_segment_route(self, trip: _Trip) -> SmartRoute | None:
        if not (trip.origin.infrastructure.has_airport and trip.dest.infrastructure.has_airport):
            route = await self._route_via_cities(trip)
            if route is not None:
                return route
        if trip.allows("airplane"):
            route = await self._route_via_hubs(trip)
            if route is not None:
                return route
        if trip.allows("train"):
            route = await self._route_via_rail(trip)
            if route is not None:
                return route
        if trip.allows("ferry"):
            route = await self._route_via_rivers(trip)
            if route is not None:
                return route
        if trip.allows("winter_road"):
            if is_transport_available_in_season("winter_road", trip.season):
                route = await self._direct_leg(trip, "winter_road")
            else:
                route = await self._winter_road_closed_alternative(trip)
            if route is not None:
                return route
        return await self._route_via_cities(trip)

    async def _route_via_hubs(self, trip: _Trip) -> SmartRoute | None:
        origin, dest = trip.origin, trip.dest
        path = self._hubs.find_path_via_hubs(origin, dest, travel_date=trip.day)
        if not path:
            return None

        if len(path) == 1:
            connection = self._first_connection(origin.id, dest.id, "airplane")
            if connection is None or not self._runs(connection, trip):
                return None
            segment = await self._build_segment(trip, "airplane", origin, dest, connection, via_hubs=path)
            return self._create_route(trip, [segment]) if segment is not None else None

        # origin -> first hub -> ... -> last hub -> destination
        stops = [origin.id]
        for hub in path:
            if hub.city_id != stops[-1]:
                stops.append(hub.city_id)
        if stops[-1] != dest.id:
            stops.append(dest.id)

        segments: list[RouteSegment] = []
        for a, b in zip(stops, stops[1:]):
            connection = self._first_connection(a, b, "airplane")
            start = self._registry.city(a)
            end = self._registry.city(b)
            if connection is None or start is None or end is None or not self._runs(connection, trip):
                return None
            segment = await self._build_segment(trip, "airplane", start, end, connection)
            if segment is None:
                return None
            segments.append(segment)
        return self._create_route(trip, segments)

    async def _route_via_rail(self, trip: _Trip) -> SmartRoute | None:
        if not self._has_stops(trip.origin, trip.dest, "train"):
            return None
        direct = self._first_connection(trip.origin.id, trip.dest.id, "train")
        if direct is not None and self._runs(direct, trip):
            segment = await self._build_segment(trip, "train", trip.origin, trip.dest, direct)
            if segment is not None:
                return self._create_route(trip, [segment])

        path = self._rail.find_shortest_path(trip.origin.id, trip.dest.id, max_transfers=trip.max_transfers)
        if path is None or len(path.path) < 2:
            return None
        return await self._chain(trip, path.connections)

    async def _route_via_rivers(self, trip: _Trip) -> SmartRoute | None:
        if not is_transport_available_in_season("ferry", trip.season):
            return None
        if not self._has_stops(trip.origin, trip.dest, "ferry"):
            return None
        direct = self._first_connection(trip.origin.id, trip.dest.id, "ferry")
        if direct is not None and self._runs(direct, trip):
            segment = await self._build_segment(trip, "ferry", trip.origin, trip.dest, direct)
            if segment is not None:
                return self._create_route(trip, [segment])

        # Two sailings through a shared pier, shortest total first.
        pairs: list[tuple[float, Connection, Connection]] = []
        for first in self._registry.connections_from(trip.origin.id):
            if first.type != "ferry" or first.to_city_id == trip.dest.id or not self._runs(first, trip):
                continue
            second = self._first_connection(first.to_city_id, trip.dest.id, "ferry")
            if second is not None and self._runs(second, trip):
                pairs.append((first.distance_km + second.distance_km, first, second))
        for _, first, second in sorted(pairs, key=lambda item: item[0]):
            route = await self._chain(trip, (first, second))
            if route is not None:
                return route
        return None

    async def _winter_road_closed_alternative(self, trip: _Trip) -> SmartRoute | None:
        for mode in ("bus", "train"):
            route = await self._direct_leg(trip, mode)
            if route is not None:
                return route
        if trip.season == "summer":
            route = await self._route_via_rivers(trip)
            if route is not None:
                return route
        if is_transport_available_in_season("winter_road", trip.season):
            route = await self._direct_leg(trip, "winter_road")
            if route is not None:
                return route
        return await self._route_via_hubs(trip)

    async def _route_via_cities(self, trip: _Trip, *, allow_search: bool = True) -> SmartRoute | None:
        modes = [m for m in trip.modes() if is_transport_available_in_season(m, trip.season)]
        for mid in self._stopover_candidates(trip)[:MAX_VIA_CITIES]:
            for first_mode in modes:
                first = self._first_connection(trip.origin.id, mid.id, first_mode)
                if first is None or not self._runs(first, trip):
                    continue
                for second_mode in modes:
                    second = self._first_connection(mid.id, trip.dest.id, second_mode)
                    if second is None or not self._runs(second, trip):
                        continue
                    route = await self._chain(trip, (first, second))
                    if route is not None:
                        return route
        if allow_search and trip.max_transfers >= 2:
            return await self._route_via_network_search(trip)
        return None

    async def _route_via_network_search(self, trip: _Trip) -> SmartRoute | None:
        """Breadth-first search over every connection for three or more legs."""
        max_segments = trip.max_transfers + 1
        if max_segments < 3:
            return None
        max_depth = min(max_segments, MAX_SEARCH_SEGMENTS)

        queue: deque[tuple[str, tuple[Connection, ...]]] = deque([(trip.origin.id, ())])
        iterations = 0
        while queue and iterations < MAX_SEARCH_ITERATIONS:
            iterations += 1
            city_id, path = queue.popleft()
            if city_id == trip.dest.id and path:
                route = await self._chain(trip, path)
                if route is not None:
                    return route
                continue
            if len(path) >= max_depth:
                continue
            visited = {trip.origin.id, *(c.to_city_id for c in path)}
            for connection in self._registry.connections_from(city_id):
                if connection.to_city_id in visited:
                    continue
                if not trip.allows(connection.type) or not self._runs(connection, trip):
                    continue
                queue.append((connection.to_city_id, (*path, connection)))
        if iterations >= MAX_SEARCH_ITERATIONS:
            log_warning(
                "route_search_exhausted",
                from_city_id=trip.origin.id,
                to_city_id=trip.dest.id,
                iterations=iterations,
            )
        return None

    async def _fallback_route(self, trip: _Trip) -> SmartRoute | None:
        for mode in FALLBACK_MODE_ORDER:
            connection = self._first_connection(trip.origin.id, trip.dest.id, mode)
            if connection is None or not self._runs(connection, trip):
                continue
            route = await self._chain(trip, (connection,))
            if route is not None:
                return route

        for mid in self._stopover_candidates(trip)[:MAX_FALLBACK_VIA_CITIES]:
            first = next(
                (c for c in self._registry.connections_between(trip.origin.id, mid.id) if self._runs(c, trip)),
                None,
            )
            second = next(
                (c for c in self._registry.connections_between(mid.id, trip.dest.id) if self._runs(c, trip)),
                None,
            )
            if first is None or second is None:
                continue
            route = await self._chain(trip, (first, second))
            if route is not None:
                return route
        return None

    # -- helpers --------------------------------------------------------

    def _stopover_candidates(self, trip: _Trip) -> list[City]:
        others = [c for c in self._registry.cities if c.id not in (trip.origin.id, trip.dest.id)]
        return [c for c in others if c.is_hub] + [c for c in others if not c.is_hub]

    def _first_connection(self, from_city_id: str, to_city_id: str, mode: TransportType) -> Connection | None:
        found = self._registry.connections_between(from_city_id, to_city_id, mode)
        return found[0] if found else None

    @staticmethod
    def _runs(connection: Connection, trip: _Trip) -> bool:
        return is_season_available(connection.season, trip.day) and is_transport_available_in_season(
            connection.type, trip.season
        )

    def _has_stops(self, origin: City, dest: City, mode: TransportType) -> bool:
        stop_type = STOP_TYPE_BY_TRANSPORT[mode]
        return bool(self._registry.stops_for_city(origin.id, stop_type)) and bool(
            self._registry.stops_for_city(dest.id, stop_type)
        )

    def _endpoint_stop(self, city: City, mode: TransportType) -> tuple[Stop, bool]:
        """First stop of the mode's type; a stand-in at the city centre when the city has none."""
        stop_type = STOP_TYPE_BY_TRANSPORT[mode]
        stops = self._registry.stops_for_city(city.id, stop_type)
        if stops:
            return stops[0], False
        stand_in = Stop(
            id=f"{city.id}-{stop_type.replace('_', '-')}",
            name=city.name,
            type=stop_type,
            coordinates=city.coordinates,
            city_id=city.id,
            is_hub=city.is_hub,
        )
        return stand_in, True

    async def _chain(self, trip: _Trip, connections: Sequence[Connection]) -> SmartRoute | None:
        segments: list[RouteSegment] = []
        for connection in connections:
            start = self._registry.city(connection.from_city_id)
            end = self._registry.city(connection.to_city_id)
            if start is None or end is None or not self._runs(connection, trip):
                return None
            segment = await self._build_segment(trip, connection.type, start, end, connection)
            if segment is None:
                return None
            segments.append(segment)
        return self._create_route(trip, segments)

    async def _build_segment(
        self,
        trip: _Trip,
        mode: TransportType,
        start: City,
        end: City,
        connection: Connection | None,
        *,
        via_hubs: Sequence[Hub] = (),
    ) -> RouteSegment | None:
        trip.attempted += 1
        try:
            return await self._assemble_segment(trip, mode, start, end, connection, via_hubs)
        except PlanningError as exc:
            trip.failed += 1
            log_warning(
                "segment_failed",
                reason_code=exc.reason_code,
                detail=exc.message,
                transport_type=mode,
                from_city_id=start.id,
                to_city_id=end.id,
                connection_id=connection.id if connection is not None else None,
            )
            return None

    async def _assemble_segment(
        self,
        trip: _Trip,
        mode: TransportType,
        start: City,
        end: City,
        connection: Connection | None,
        via_hubs: Sequence[Hub],
    ) -> RouteSegment:
        degraded: list[str] = []
        from_stop, from_missing = self._endpoint_stop(start, mode)
        to_stop, to_missing = self._endpoint_stop(end, mode)
        if from_missing or to_missing:
            degraded.append("stop_missing")

        distance = await self._distance.distance_for_segment(mode, from_stop.coordinates, to_stop.coordinates, connection)
        if mode in ("bus", "taxi") and connection is None and distance.method == "haversine":
            degraded.append("road_distance_unavailable")

        params = PriceParams(
            distance_km=distance.value,
            season=trip.season,
            region="yakutia" if start.in_yakutia or end.in_yakutia else "russia",
            travel_date=trip.day,
            departure_time=trip.when,
            booking_date=self._booking_date,
        )
        price = calculate_segment_price(
            mode,
            params,
            connection=connection,
            via_hubs_count=len(via_hubs),
            city_id=start.id,
        )

        if connection is not None and connection.duration_min > 0:
            minutes = int(round(connection.duration_min))
        else:
            minutes = estimate_duration(mode, distance.value)

        try:
            path = await self._geometry.path_for_segment(
                mode,
                from_stop.coordinates,
                to_stop.coordinates,
                connection=connection,
                via_hubs=via_hubs,
            )
        except PlanningError as exc:
            path = straight_line(from_stop.coordinates, to_stop.coordinates, degraded_reason=exc.reason_code)
        if path.degraded_reason:
            degraded.append(f"geometry: {path.degraded_reason}")

        segment_id = f"seg-{from_stop.id}-{to_stop.id}-{connection.id if connection is not None else mode}"
        if degraded:
            log_warning(
                "segment_degraded",
                segment_id=segment_id,
                transport_type=mode,
                reasons=degraded,
            )

        metadata: dict[str, str] = {}
        if connection is not None:
            metadata = {k: v for k, v in connection.metadata.items() if k in ("route_number", "carrier")}

        return RouteSegment(
            id=segment_id,
            type=mode,
            from_stop=from_stop,
            to_stop=to_stop,
            connection_id=connection.id if connection is not None else None,
            distance=distance,
            duration=DurationModel(value=minutes, display=format_duration(minutes)),
            price=price,
            seasonality=seasonality_for(connection.season if connection is not None else "all", trip.day),
            geometry=path.to_geojson(),
            is_direct=connection.is_direct if connection is not None else True,
            via_hubs=[hub.id for hub in via_hubs],
            metadata=metadata,
            degraded=degraded,
        )

    def _create_route(self, trip: _Trip, segments: Sequence[RouteSegment]) -> SmartRoute | None:
        if not segments:
            return None
        segments = list(segments)

        breakdown: dict[str, float] = {}
        for segment in segments:
            breakdown[segment.type] = round(breakdown.get(segment.type, 0.0) + segment.distance.value, 1)
        total_distance = DistanceModel(
            value=round(sum(s.distance.value for s in segments), 1),
            method="manual",
            breakdown=breakdown,
        )

        transfers = len(segments) - 1
        travel = sum(s.duration.value for s in segments)
        transfer_minutes = transfers * TRANSFER_MINUTES
        total_duration = DurationModel(
            value=travel + transfer_minutes,
            display=format_duration(travel + transfer_minutes),
            travel=travel,
            transfers=transfer_minutes,
        )

        total_price = calculate_total_price(s.price for s in segments)
        if transfers > 0:
            additional = total_price.additional.model_copy(
                update={"transfer": total_price.additional.transfer + transfers * TRANSFER_FEE}
            )
            total_price = make_price_model(total_price.base, additional)

        validation = self._validator.validate_route(
            segments=segments,
            from_city_id=trip.origin.id,
            to_city_id=trip.dest.id,
            travel_date=trip.day,
            total_distance=total_distance,
            total_price=total_price,
        )

        digest = hashlib.sha1("|".join(s.id for s in segments).encode("utf-8")).hexdigest()[:10]
        return SmartRoute(
            id=f"route-{trip.origin.id}-{trip.dest.id}-{digest}",
            from_city_id=trip.origin.id,
            to_city_id=trip.dest.id,
            from_city_name=trip.origin.name,
            to_city_name=trip.dest.name,
            travel_date=trip.day,
            season=trip.season,
            segments=segments,
            total_distance=total_distance,
            total_duration=total_duration,
            total_price=total_price,
            validation=validation,
            visualization=build_visualization(segments),
        )


def _stopovers(route: SmartRoute) -> tuple[str, ...]:
    return tuple(segment.to_stop.city_id for segment in route.segments[:-1])
