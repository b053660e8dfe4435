"""
Geographic helpers used by driver matching.
"""

from math import radians, cos, sin, asin, sqrt
from typing import Optional

EARTH_RADIUS_KM = 6371.0


def haversine_km(lat1, lon1, lat2, lon2) -> float:
    """Great-circle distance between two points in kilometres."""
    lat1, lon1, lat2, lon2 = (radians(float(v)) for v in (lat1, lon1, lat2, lon2))
    a = sin((lat2 - lat1) / 2) ** 2 + cos(lat1) * cos(lat2) * sin((lon2 - lon1) / 2) ** 2
    return 2 * EARTH_RADIUS_KM * asin(sqrt(a))


def distance_between(origin, destination) -> Optional[float]:
    """
    Distance in km between two (lat, lon) pairs.

    Returns None when either side is missing a coordinate, so callers can
    rank unknown locations separately.
    """
    if origin is None or destination is None:
        return None
    if None in origin or None in destination:
        return None
    return haversine_km(origin[0], origin[1], destination[0], destination[1])
