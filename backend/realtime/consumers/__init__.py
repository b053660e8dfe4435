"""Realtime consumers for WebSocket communication."""

from .base import BaseConsumer
from .driver_consumer import DriverConsumer
from .trip_consumer import TripConsumer

__all__ = [
    "BaseConsumer",
    "DriverConsumer",
    "TripConsumer",
]
