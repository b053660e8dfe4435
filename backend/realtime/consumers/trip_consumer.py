"""Trip tracking WebSocket consumer for office staff and drivers."""

import logging
from typing import Dict, Any, Set

from channels.db import database_sync_to_async

from .base import BaseConsumer
from realtime.notifications import franchise_group, trip_group

logger = logging.getLogger(__name__)


class TripConsumer(BaseConsumer):
    """
    WebSocket consumer for trip tracking.

    Office users join franchise_<id> on connect and receive every trip event
    of their franchise. Any authorised user can additionally follow single
    trips (trip_<id>) for live location.
    """

    async def on_connect(self):
        """Set up trip tracking connection."""
        # Track which trip groups this connection has joined
        self.joined_trips: Set[str] = set()

        franchise_id = getattr(self.user, "franchise_id", None)
        if getattr(self.user, "is_office_user", False) and franchise_id:
            await self._join_group(franchise_group(franchise_id))

        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
            "message": "Trip tracking connection established",
        })

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Handle trip tracking messages."""

        if msg_type == "start_tracking":
            await self._handle_start_tracking(data)
        elif msg_type == "stop_tracking":
            await self._handle_stop_tracking(data)
        else:
            await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Message Handlers ----------------------

    async def _handle_start_tracking(self, data: Dict[str, Any]):
        """Join trip_<trip_id> to receive its status and location updates."""
        trip_id = data.get("trip_id")

        if trip_id is None:
            await self.send_error("start_tracking requires trip_id")
            return

        is_valid = await self._can_track(trip_id)
        if not is_valid:
            await self.send_error("You are not authorized to track this trip")
            return

        group = trip_group(trip_id)
        await self._join_group(group)
        self.joined_trips.add(group)

        await self.send_success("tracking_started", trip_id=trip_id)

    async def _handle_stop_tracking(self, data: Dict[str, Any]):
        """Leave a trip tracking group."""
        trip_id = data.get("trip_id")

        if trip_id is None:
            return

        group = trip_group(trip_id)
        await self._leave_group(group)
        self.joined_trips.discard(group)

        await self.send_success("tracking_stopped", trip_id=trip_id)

    # ---------------------- Database Helpers ----------------------

    @database_sync_to_async
    def _can_track(self, trip_id) -> bool:
        """Assigned driver, office staff of the trip's franchise, or an admin."""
        from trips.models import Trip
        try:
            trip = Trip.objects.only("id", "driver_id", "franchise_id").get(id=trip_id)
        except (Trip.DoesNotExist, ValueError, TypeError):
            return False

        if self.role == "driver":
            return trip.driver_id == self.user_id
        if self.role == "admin":
            return True
        return bool(getattr(self.user, "is_office_user", False) and self.user.franchise_id == trip.franchise_id)
