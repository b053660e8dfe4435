"""Base WebSocket consumer with shared functionality for all consumers."""

import logging
from typing import Dict, Any, Set

from channels.generic.websocket import AsyncJsonWebsocketConsumer

logger = logging.getLogger(__name__)


class BaseConsumer(AsyncJsonWebsocketConsumer):
    """
    Base consumer with shared connection management and helper methods.

    Subclasses should override:
        - on_connect(): join groups, greet the client
        - handle_message(msg_type, data): handle incoming messages
    """

    async def connect(self):
        self.user = self.scope["user"]

        if self.user.is_anonymous:
            await self.close()
            return

        # Basic attributes available to all consumers
        self.user_id = getattr(self.user, "id", None)
        self.role = getattr(self.user, "role", None)

        # Track joined groups for cleanup
        self.joined_groups: Set[str] = set()

        await self.accept()
        await self.on_connect()

    async def on_connect(self):
        """Override in subclass for custom connect logic."""
        await self.send_json({
            "type": "connection_established",
            "user_id": self.user_id,
            "role": self.role,
        })

    async def disconnect(self, close_code):
        """Leave all joined groups on disconnect."""
        try:
            for group in list(getattr(self, "joined_groups", ())):
                await self._leave_group(group)
            await self.on_disconnect(close_code)
        except Exception:
            logger.exception("Error during disconnect for user %s", getattr(self, 'user_id', 'unknown'))

    async def on_disconnect(self, close_code):
        """Override in subclass for custom disconnect logic."""
        pass

    async def receive_json(self, data: Dict[str, Any]):
        """Route incoming messages to appropriate handlers."""
        msg_type = data.get("type")
        if not msg_type:
            await self.send_error("Message type is required")
            return

        try:
            await self.handle_message(msg_type, data)
        except Exception:
            logger.exception("Error handling message type %s", msg_type)
            await self.send_error(f"Error processing {msg_type}")

    async def handle_message(self, msg_type: str, data: Dict[str, Any]):
        """Override in subclass to handle specific message types."""
        await self.send_error(f"Unknown message type: {msg_type}")

    # ---------------------- Group Management Helpers ----------------------

    async def _join_group(self, group_name: str):
        """Join a channel group and track it."""
        await self.channel_layer.group_add(group_name, self.channel_name)
        self.joined_groups.add(group_name)

    async def _leave_group(self, group_name: str):
        """Leave a channel group and untrack it."""
        await self.channel_layer.group_discard(group_name, self.channel_name)
        self.joined_groups.discard(group_name)

    # ---------------------- Response Helpers ----------------------

    async def send_error(self, message: str, code: str = None):
        """Send an error message to the client."""
        payload = {"type": "error", "message": message}
        if code:
            payload["error"] = code
        await self.send_json(payload)

    async def send_success(self, event_type: str, **kwargs):
        """Send a success response to the client."""
        await self.send_json({
            "type": event_type,
            **kwargs,
        })

    # ---------------------- Trip Event Handlers ----------------------
    # group_send payloads from realtime.notifications are already shaped for
    # the client, so most handlers forward them unchanged.

    async def _forward(self, event):
        await self.send_json(event)

    async def trip_offer(self, event):
        """Sent to a driver when a trip is offered to them."""
        await self.send_json({
            **event,
            "type": "new_trip_request",
        })

    async def offer_expired(self, event):
        await self._forward(event)

    async def offer_accepted(self, event):
        await self._forward(event)

    async def offer_cancelled(self, event):
        """The trip went to someone else or was cancelled."""
        await self._forward(event)

    async def offer_rejected(self, event):
        await self._forward(event)

    async def trip_created(self, event):
        await self._forward(event)

    async def trip_assigned(self, event):
        await self._forward(event)

    async def trip_unassigned(self, event):
        await self._forward(event)

    async def trip_reassigned(self, event):
        await self._forward(event)

    async def trip_updated(self, event):
        await self._forward(event)

    async def trip_cancelled(self, event):
        await self._forward(event)

    async def trip_status_changed(self, event):
        await self._forward(event)

    async def trip_rejected(self, event):
        await self._forward(event)

    async def trip_started(self, event):
        await self._forward(event)

    async def trip_awaiting_payment(self, event):
        await self._forward(event)

    async def payment_collected(self, event):
        await self._forward(event)

    async def trip_completed(self, event):
        await self._forward(event)

    async def trip_location_update(self, event):
        """Latest position of the driver on an active trip."""
        await self.send_json({
            "type": "trip_location_update",
            "trip_id": event.get("trip_id"),
            "driver_id": event.get("driver_id"),
            "latitude": event.get("latitude"),
            "longitude": event.get("longitude"),
            "updated_at": event.get("updated_at"),
        })
