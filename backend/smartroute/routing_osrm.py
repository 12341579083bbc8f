from __future__ import annotations

import asyncio
import math
import os
from pathlib import Path
from typing import Any, Final
from urllib.parse import urlparse

import httpx


class OSRMError(RuntimeError):
    pass


class OSRMRetryableError(OSRMError):
    """An OSRM error that is likely transient and safe to retry."""

    pass


_RETRYABLE_STATUS: Final[set[int]] = {408, 425, 429, 500, 502, 503, 504}
_LOCALHOST_HOSTS: Final[set[str]] = {"localhost", "127.0.0.1"}
POLYLINE_PRECISION: Final[int] = 5


def _running_in_docker() -> bool:
    return Path("/.dockerenv").exists() or os.environ.get("RUNNING_IN_DOCKER") == "1"


def _format_osrm_error(resp: httpx.Response) -> str:
    """Best-effort decode of OSRM JSON error payloads."""
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict):
        code = data.get("code")
        message = data.get("message")
        if code and message:
            return f"OSRM {resp.status_code} {code}: {message}"
        if code:
            return f"OSRM {resp.status_code} {code}"
        if message:
            return f"OSRM {resp.status_code}: {message}"

    body = (resp.text or "").strip().replace("\n", " ")
    if len(body) > 240:
        body = body[:240] + "..."
    if body:
        return f"OSRM {resp.status_code}: {body}"
    return f"OSRM HTTP {resp.status_code}"


def decode_polyline(encoded: str, *, precision: int = POLYLINE_PRECISION) -> list[list[float]]:
    """Decode a Google encoded polyline into ``[lon, lat]`` pairs."""
    coordinates: list[list[float]] = []
    factor = float(10**precision)
    index = 0
    lat = 0
    lon = 0
    length = len(encoded)

    def _next_value() -> int:
        nonlocal index
        shift = 0
        result = 0
        while True:
            if index >= length:
                raise OSRMError("Truncated encoded polyline")
            byte = ord(encoded[index]) - 63
            index += 1
            result |= (byte & 0x1F) << shift
            shift += 5
            if byte < 0x20:
                break
        return ~(result >> 1) if result & 1 else result >> 1

    while index < length:
        lat += _next_value()
        lon += _next_value()
        coordinates.append([lon / factor, lat / factor])
    return coordinates


def _check_payload_shape(data: Any) -> dict[str, Any]:
    if not isinstance(data, dict) or not isinstance(data.get("code"), str):
        raise OSRMError("OSRM returned an invalid response structure")
    routes = data.get("routes")
    if routes is not None:
        if not isinstance(routes, list):
            raise OSRMError("OSRM returned an invalid response structure")
        if routes:
            first = routes[0]
            if not isinstance(first, dict) or not isinstance(first.get("distance"), (int, float)) or not isinstance(
                first.get("duration"), (int, float)
            ):
                raise OSRMError("OSRM route is missing distance/duration")
    waypoints = data.get("waypoints")
    if waypoints is not None and not isinstance(waypoints, list):
        raise OSRMError("OSRM returned an invalid response structure")
    return data


def _lon_lat(point: Any) -> list[float]:
    try:
        lon, lat = float(point[0]), float(point[1])
    except (TypeError, ValueError) as e:
        raise OSRMError(f"OSRM returned a non-numeric coordinate {point!r}") from e
    if not (math.isfinite(lon) and math.isfinite(lat)):
        raise OSRMError(f"OSRM returned a non-finite coordinate {point!r}")
    return [lon, lat]


def _normalise_geometry(route: dict[str, Any], waypoints: list[Any] | None) -> dict[str, Any]:
    """Rewrite ``route['geometry']`` as GeoJSON, using waypoints when it is missing."""
    geometry = route.get("geometry")
    coords: list[list[float]] = []
    if isinstance(geometry, dict) and isinstance(geometry.get("coordinates"), list):
        coords = [_lon_lat(pt) for pt in geometry["coordinates"] if isinstance(pt, (list, tuple)) and len(pt) >= 2]
    elif isinstance(geometry, str) and geometry:
        coords = decode_polyline(geometry)

    if not coords and waypoints:
        coords = [
            _lon_lat(wp["location"])
            for wp in waypoints
            if isinstance(wp, dict) and isinstance(wp.get("location"), (list, tuple)) and len(wp["location"]) >= 2
        ]
        if len(coords) < 2:
            coords = []

    out = dict(route)
    out["geometry"] = {"type": "LineString", "coordinates": coords}
    return out


class OSRMClient:
    def __init__(
        self,
        *,
        base_url: str,
        profile: str = "driving",
        timeout_s: float = 10.0,
        connect_timeout_s: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.profile = profile

        # trust_env=False keeps proxy env vars away from localhost / docker service names.
        self._client = httpx.AsyncClient(
            timeout=httpx.Timeout(timeout_s, connect=connect_timeout_s),
            trust_env=False,
            headers={"accept": "application/json"},
            transport=transport,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    async def fetch_routes(
        self,
        *,
        origin_lat: float,
        origin_lon: float,
        dest_lat: float,
        dest_lon: float,
        exclude: str | None = None,
        via: list[tuple[float, float]] | None = None,
        max_retries: int = 2,
    ) -> list[dict[str, Any]]:
        """Fetch road routes from OSRM.

        via:
          Optional list of (lat, lon) points routed in order between origin
          and destination.

        Every returned route carries a GeoJSON ``geometry``; encoded
        polylines are decoded and an absent geometry is rebuilt from the
        response waypoints (it may still come back empty).
        """
        coords_parts: list[str] = [f"{origin_lon},{origin_lat}"]
        if via:
            coords_parts.extend([f"{lon},{lat}" for (lat, lon) in via])
        coords_parts.append(f"{dest_lon},{dest_lat}")
        coords = ";".join(coords_parts)

        url = f"{self.base_url}/route/v1/{self.profile}/{coords}"
        params: dict[str, str] = {
            "overview": "full",
            "geometries": "geojson",
            "alternatives": "false",
            "steps": "false",
        }
        if exclude:
            params["exclude"] = exclude

        max_retries_i = max(1, int(max_retries))
        last_err: Exception | None = None

        for attempt in range(max_retries_i):
            try:
                resp = await self._client.get(url, params=params)

                if 400 <= resp.status_code < 500 and resp.status_code not in _RETRYABLE_STATUS:
                    raise OSRMError(_format_osrm_error(resp))
                if resp.status_code in _RETRYABLE_STATUS:
                    raise OSRMRetryableError(_format_osrm_error(resp))

                resp.raise_for_status()
                try:
                    raw = resp.json()
                except ValueError as e:
                    raise OSRMError("OSRM returned a non-JSON body") from e
                data = _check_payload_shape(raw)

                if data.get("code") != "Ok":
                    raise OSRMError(f"OSRM error code={data.get('code')} message={data.get('message')}")

                routes = data.get("routes") or []
                if not routes:
                    raise OSRMError("OSRM returned no routes")

                waypoints = data.get("waypoints")
                return [_normalise_geometry(route, waypoints) for route in routes]

            except OSRMRetryableError as e:
                last_err = e
            except (httpx.TimeoutException, httpx.NetworkError, httpx.TransportError) as e:
                last_err = e
            except httpx.HTTPStatusError as e:
                raise OSRMError(str(e)) from e

            if attempt < max_retries_i - 1:
                await asyncio.sleep(min(0.25 * (2**attempt), 2.0))

        if last_err is None:
            detail = "unknown error"
        else:
            msg = str(last_err).strip()
            detail = f"{type(last_err).__name__}: {msg}" if msg else f"{type(last_err).__name__}: {last_err!r}"

        hint = ""
        host = urlparse(self.base_url).hostname or ""
        if _running_in_docker() and host in _LOCALHOST_HOSTS:
            hint = (
                " Hint: you're running inside a container; `localhost` points to that container. "
                "In docker-compose, set OSRM_BASE_URL=http://osrm:5000."
            )
        elif (not _running_in_docker()) and host == "osrm":
            hint = (
                " Hint: `osrm` is the docker-compose service name. "
                "If you're running the planner directly on your host, set OSRM_BASE_URL=http://localhost:5000."
            )

        raise OSRMError(f"OSRM request failed after {max_retries_i} retries (base={self.base_url}): {detail}{hint}")
