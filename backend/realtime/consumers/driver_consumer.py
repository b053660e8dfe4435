"""Driver WebSocket consumer for trip offers, trip events and live location."""

import logging
from typing import Dict, Any

from channels.db import database_sync_to_async

from .base import BaseConsumer
from drivers import services as driver_services
from realtime.notifications import driver_group
from services.trip_management import TripServiceError, update_live_location

logger = logging.getLogger(__name__)


class DriverConsumer(BaseConsumer):
    """
    WebSocket consumer for drivers.

    Handles:
        - Trip offer and trip event notifications (driver_<id> group)
        - Live location during an active trip
        - Availability changes (available/offline)
    """

    async def on_connect(self):
        """Set up driver-specific groups on connection."""
        if self.role != "driver":
            await self.send_error("This endpoint is for drivers only")
            await self.close()
            return

        # Join driver-specific group for targeted notifications
        await self._join_group(driver_group(self.user_id))

        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
            "message": "Driver connected successfully",
        })

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Handle driver-specific messages."""

        if msg_type == "driver_location_update":
            await self._handle_location_update(data)
        elif msg_type == "trip_location_update":
            await self._handle_trip_location_update(data)
        elif msg_type == "driver_status_update":
            await self._handle_status_update(data)
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Message Handlers ----------------------

    async def _handle_location_update(self, data: Dict[str, Any]):
        """Last known position while not on a trip."""
        lat = data.get("latitude")
        lon = data.get("longitude")

        if lat is None or lon is None:
            await self.send_error("driver_location_update requires latitude and longitude")
            return

        await self._update_driver_location_db(lat, lon)
        logger.debug("Driver %s location update: lat=%s, lon=%s", self.user_id, lat, lon)

    async def _handle_trip_location_update(self, data: Dict[str, Any]):
        """Position on an active trip; rebroadcast to trip_<id> by the service."""
        trip_id = data.get("trip_id")
        lat = data.get("latitude")
        lon = data.get("longitude")

        if trip_id is None or lat is None or lon is None:
            await self.send_error("trip_location_update requires trip_id, latitude, and longitude")
            return

        try:
            await self._update_trip_location(trip_id, lat, lon)
        except TripServiceError as e:
            await self.send_error(e.message, code=e.error_code)

    async def _handle_status_update(self, data: Dict[str, Any]):
        """Handle driver availability change (available/offline)."""
        status = data.get("status")

        try:
            await self._update_driver_status_db(status)
        except TripServiceError as e:
            await self.send_error(e.message, code=e.error_code)
            return

        await self.send_success("status_updated", status=status)

    # ---------------------- Database Helpers ----------------------

    @database_sync_to_async
    def _update_driver_location_db(self, lat, lon) -> int:
        return driver_services.update_driver_location(self.user_id, lat, lon)

    @database_sync_to_async
    def _update_trip_location(self, trip_id, lat, lon):
        return update_live_location(trip_id, self.user_id, lat, lon)

    @database_sync_to_async
    def _update_driver_status_db(self, status: str):
        return driver_services.update_driver_status(self.user_id, status)
