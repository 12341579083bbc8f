from __future__ import annotations

import asyncio
import math
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from .geo import KM_PER_DEGREE, distance_between
from .logging_utils import log_event
from .models import Coordinates
from .route_cache import ROUTE_CACHE, RouteCacheStore, road_cache_key
from .routing_osrm import OSRMError
from .settings import settings

FEDERAL_ROADS_EXCLUDE = "ferry"
SIMPLIFIED_SPEED_KMH = 70.0
SIMPLIFIED_CURVATURE_VIA = 1.15
SIMPLIFIED_CURVATURE_DIRECT = 1.25
# Points on a simplified road path are spaced roughly this far apart.
SIMPLIFIED_STEP_KM = 30.0
# Two-point answers are only believable below this length.
DEGENERATE_MIN_KM = 1.0


class RoadClient(Protocol):
    async def fetch_routes(self, **kwargs: Any) -> list[dict[str, Any]]: ...


@dataclass(frozen=True)
class RoadRoute:
    coordinates: tuple[tuple[float, float], ...]  # (lon, lat)
    distance_km: float
    duration_min: float
    from_cache: bool = False

    def to_payload(self) -> dict[str, Any]:
        return {
            "coordinates": [list(pt) for pt in self.coordinates],
            "distance_m": self.distance_km * 1000.0,
            "duration_s": self.duration_min * 60.0,
        }

    @classmethod
    def from_payload(cls, payload: dict[str, Any], *, from_cache: bool = False) -> "RoadRoute":
        return cls(
            coordinates=tuple((float(lon), float(lat)) for lon, lat in payload["coordinates"]),
            distance_km=float(payload["distance_m"]) / 1000.0,
            duration_min=float(payload["duration_s"]) / 60.0,
            from_cache=from_cache,
        )


@dataclass(frozen=True)
class RoadRouteResult:
    """Outcome of a road lookup.

    ``route`` is None when the service failed and no substitute was built.
    A non-empty ``reason`` marks a degraded answer (service failure or a
    simplified substitute path).
    """

    route: RoadRoute | None
    reason: str | None = None

    @property
    def ok(self) -> bool:
        return self.route is not None and self.reason is None

    @property
    def degraded(self) -> bool:
        return not self.ok


def _route_from_osrm(raw: dict[str, Any]) -> RoadRoute:
    try:
        coords = raw["geometry"]["coordinates"]
        distance_m = float(raw["distance"])
        duration_s = float(raw["duration"])
    except (KeyError, TypeError, ValueError) as e:
        raise OSRMError(f"Malformed OSRM route: {e}") from e
    if not math.isfinite(distance_m) or distance_m < 0 or not math.isfinite(duration_s) or duration_s < 0:
        raise OSRMError("OSRM route has invalid distance/duration")
    if not coords:
        raise OSRMError("OSRM route has no geometry")
    return RoadRoute(
        coordinates=tuple((float(pt[0]), float(pt[1])) for pt in coords),
        distance_km=distance_m / 1000.0,
        duration_min=duration_s / 60.0,
    )


def simplified_road_path(
    start: Coordinates,
    end: Coordinates,
    *,
    via: Sequence[Coordinates] = (),
) -> RoadRoute:
    """Substitute road path used when the routing service is unavailable.

    Goes through ``via`` when given, otherwise bends the chord with a gentle
    sinusoidal offset so the result is never a straight line.
    """
    straight_km = distance_between(start, end)
    coords: list[tuple[float, float]] = [(start.longitude, start.latitude)]
    if via:
        coords.extend((pt.longitude, pt.latitude) for pt in via)
    else:
        n = max(3, math.ceil(straight_km / SIMPLIFIED_STEP_KM))
        for i in range(1, n):
            t = i / n
            lat = start.latitude + (end.latitude - start.latitude) * t
            lon = start.longitude + (end.longitude - start.longitude) * t
            offset = math.sin(t * math.pi * 1.5) * 0.03 * straight_km / KM_PER_DEGREE
            coords.append((lon + offset * math.sin(t * math.pi * 2.5), lat + offset * math.cos(t * math.pi * 2.5)))
    coords.append((end.longitude, end.latitude))

    curvature = SIMPLIFIED_CURVATURE_VIA if via else SIMPLIFIED_CURVATURE_DIRECT
    road_km = straight_km * curvature
    return RoadRoute(
        coordinates=tuple(coords),
        distance_km=road_km,
        duration_min=road_km / SIMPLIFIED_SPEED_KMH * 60.0,
    )


class RoadRouter:
    """Cache-first road lookups that never raise on service failure."""

    def __init__(
        self,
        client: RoadClient | None,
        *,
        cache: RouteCacheStore | None = None,
        profile: str | None = None,
        timeout_s: float | None = None,
        max_retries: int | None = None,
    ) -> None:
        self._client = client
        self._cache = cache if cache is not None else ROUTE_CACHE
        self._profile = profile or settings.osrm_profile
        self._timeout_s = float(timeout_s if timeout_s is not None else settings.osrm_timeout_s)
        self._max_retries = int(max_retries if max_retries is not None else settings.osrm_max_retries)

    async def route(
        self,
        start: Coordinates,
        end: Coordinates,
        *,
        via: Sequence[Coordinates] = (),
        exclude: str | None = None,
    ) -> RoadRouteResult:
        points = [(start.latitude, start.longitude), *[(p.latitude, p.longitude) for p in via], (end.latitude, end.longitude)]
        key = road_cache_key(self._profile, points, exclude)
        cached = self._cache.get(key)
        if cached is not None:
            return RoadRouteResult(route=RoadRoute.from_payload(cached, from_cache=True))

        if self._client is None:
            return RoadRouteResult(route=None, reason="road service not configured")

        try:
            routes = await asyncio.wait_for(
                self._client.fetch_routes(
                    origin_lat=start.latitude,
                    origin_lon=start.longitude,
                    dest_lat=end.latitude,
                    dest_lon=end.longitude,
                    exclude=exclude,
                    via=[(p.latitude, p.longitude) for p in via] or None,
                    max_retries=self._max_retries,
                ),
                timeout=self._timeout_s,
            )
            if not routes:
                raise OSRMError("OSRM returned no routes")
            road = _route_from_osrm(routes[0])
        except asyncio.TimeoutError:
            return self._failed("timeout", start, end, exclude)
        except (OSRMError, httpx.HTTPError) as e:
            return self._failed(str(e) or type(e).__name__, start, end, exclude)

        self._cache.set(key, road.to_payload())
        return RoadRouteResult(route=road)

    def _failed(self, reason: str, start: Coordinates, end: Coordinates, exclude: str | None) -> RoadRouteResult:
        log_event(
            "road_route_failed",
            reason=reason,
            origin=[start.latitude, start.longitude],
            destination=[end.latitude, end.longitude],
            exclude=exclude,
        )
        return RoadRouteResult(route=None, reason=reason)

    async def route_with_federal_priority(
        self,
        start: Coordinates,
        end: Coordinates,
        *,
        via: Sequence[Coordinates] = (),
    ) -> RoadRouteResult:
        """Plain lookup, then a retry without ferries, then a simplified path.

        A two-point answer over a non-trivial distance is treated like a
        failure, since a real road never runs as a single chord.
        """
        first = await self.route(start, end, via=via)
        if self._usable(first, start, end):
            return first
        second = await self.route(start, end, via=via, exclude=FEDERAL_ROADS_EXCLUDE)
        if self._usable(second, start, end):
            return second
        reason = second.reason or first.reason or "degenerate road geometry"
        return self._simplified(start, end, via, reason)

    @staticmethod
    def _usable(result: RoadRouteResult, start: Coordinates, end: Coordinates) -> bool:
        if result.route is None:
            return False
        if len(result.route.coordinates) <= 2 and distance_between(start, end) > DEGENERATE_MIN_KM:
            return False
        return True

    def _simplified(
        self,
        start: Coordinates,
        end: Coordinates,
        via: Sequence[Coordinates],
        reason: str,
    ) -> RoadRouteResult:
        road = simplified_road_path(start, end, via=via)
        log_event(
            "road_fallback_used",
            reason=reason,
            origin=[start.latitude, start.longitude],
            destination=[end.latitude, end.longitude],
            via_points=len(via),
            distance_km=round(road.distance_km, 1),
        )
        return RoadRouteResult(route=road, reason=reason)
