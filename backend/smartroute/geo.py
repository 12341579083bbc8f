from __future__ import annotations

import math

from .models import Coordinates

EARTH_RADIUS_KM = 6_371.0
# Rough length of one degree of latitude, used to turn kilometre offsets into degrees.
KM_PER_DEGREE = 111.0


def haversine_km(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = phi2 - phi1
    dlambda = math.radians(lon2 - lon1)
    a = (
        math.sin(dphi / 2.0) ** 2
        + (math.cos(phi1) * math.cos(phi2) * (math.sin(dlambda / 2.0) ** 2))
    )
    return 2.0 * EARTH_RADIUS_KM * math.asin(min(1.0, math.sqrt(max(0.0, a))))


def distance_between(a: Coordinates, b: Coordinates) -> float:
    return haversine_km(a.latitude, a.longitude, b.latitude, b.longitude)


def bearing_rad(a: Coordinates, b: Coordinates) -> float:
    """Planar bearing of the a->b chord in lon/lat space (radians, atan2 convention)."""
    return math.atan2(b.latitude - a.latitude, b.longitude - a.longitude)


def interpolate(a: Coordinates, b: Coordinates, t: float) -> tuple[float, float]:
    """Linear interpolation, returned as (lat, lon)."""
    return (
        a.latitude + (b.latitude - a.latitude) * t,
        a.longitude + (b.longitude - a.longitude) * t,
    )


def is_valid_lon_lat(lon: float, lat: float) -> bool:
    if not (math.isfinite(lon) and math.isfinite(lat)):
        return False
    return -180.0 <= lon <= 180.0 and -90.0 <= lat <= 90.0
