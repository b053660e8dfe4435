"""Common utility functions."""

from .geo import distance_between, haversine_km

__all__ = [
    "distance_between",
    "haversine_km",
]
