"""
Great-circle distance and radius filtering. No I/O.
"""

from __future__ import annotations

import math
from typing import Iterable, TypeVar

EARTH_RADIUS_M = 6_371_000.0

T = TypeVar("T")


def haversine_m(lat1: float, lon1: float, lat2: float, lon2: float) -> float:
    """Distance in metres between two WGS84 points on a spherical Earth."""
    phi1 = math.radians(lat1)
    phi2 = math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlmb = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlmb / 2) ** 2
    return 2 * EARTH_RADIUS_M * math.asin(min(1.0, math.sqrt(a)))


def distance_m(a, b) -> int:
    """Rounded distance between two objects exposing ``lat`` / ``lon``."""
    return round(haversine_m(a.lat, a.lon, b.lat, b.lon))


def within_radius(
    items: Iterable[T],
    center,
    radius_m: float,
    *,
    key=lambda item: item,
) -> list[tuple[T, int]]:
    """Return ``(item, distance)`` pairs whose point lies inside the circle."""
    out: list[tuple[T, int]] = []
    for item in items:
        point = key(item)
        if point is None:
            continue
        d = distance_m(center, point)
        if d <= radius_m:
            out.append((item, d))
    return out


def bbox(lat: float, lon: float, buffer_deg: float) -> tuple[float, float, float, float]:
    """(min_lat, min_lon, max_lat, max_lon) square around a point."""
    return (lat - buffer_deg, lon - buffer_deg, lat + buffer_deg, lon + buffer_deg)
