"""Great-circle distance helpers."""

import math
from typing import Callable, Iterable, Optional, TypeVar

from .models import Location

T = TypeVar("T")

EARTH_RADIUS_MILES = 3959


def haversine_miles(lat1: Optional[float], lon1: Optional[float],
                    lat2: Optional[float], lon2: Optional[float]) -> Optional[float]:
    """Great-circle distance between two points in decimal degrees.

    Returns None (unknown) when any coordinate is missing or not finite.
    The result is not rounded.
    """
    coords = (lat1, lon1, lat2, lon2)
    if any(c is None for c in coords):
        return None
    try:
        if not all(math.isfinite(c) for c in coords):
            return None
    except TypeError:
        return None

    phi1, phi2 = math.radians(lat1), math.radians(lat2)
    dphi = math.radians(lat2 - lat1)
    dlambda = math.radians(lon2 - lon1)
    a = math.sin(dphi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(dlambda / 2) ** 2
    # rounding can push a just outside [0, 1]
    a = min(1.0, max(0.0, a))
    c = 2 * math.atan2(math.sqrt(a), math.sqrt(1 - a))
    return EARTH_RADIUS_MILES * c


def distance_between(a: Optional[Location], b: Optional[Location]) -> Optional[float]:
    """Distance in miles between two locations, or None if either is unknown."""
    if a is None or b is None:
        return None
    return haversine_miles(a.latitude, a.longitude, b.latitude, b.longitude)


def nearby(items: Iterable[T], origin: Optional[Location], max_miles: float,
           location_of: Callable[[T], Optional[Location]]) -> list[tuple[T, float]]:
    """Items within max_miles of origin, nearest first.

    Items whose distance is unknown are left out.
    """
    results = []
    for item in items:
        d = distance_between(origin, location_of(item))
        if d is not None and d <= max_miles:
            results.append((item, d))
    results.sort(key=lambda pair: pair[1])
    return results
