"""
Notification sink for trip events.

Service code never talks to the channel layer directly. It calls the
`notify_*` helpers below, which queue delivery until the surrounding
transaction commits and then hand the payload to a Celery task. Delivery is
best effort: failures are logged and dropped, never raised back into the
operation that produced the event.

Groups:
    driver_<user_id>       one driver's devices
    trip_<trip_id>         anyone tracking one trip
    franchise_<id>         office staff of one franchise
"""

from __future__ import annotations

import logging
from typing import Dict, Any, Optional

from asgiref.sync import async_to_sync
from channels.layers import get_channel_layer
from django.db import transaction

logger = logging.getLogger(__name__)


def driver_group(driver_id) -> str:
    return f"driver_{driver_id}"


def trip_group(trip_id) -> str:
    return f"trip_{trip_id}"


def franchise_group(franchise_id) -> str:
    return f"franchise_{franchise_id}"


# ---------------------- Delivery ----------------------

def publish(group: str, payload: Dict[str, Any]) -> bool:
    """
    Send one payload to a channel group right now.

    Returns:
        True if handed to the channel layer, False otherwise
    """
    channel_layer = get_channel_layer()
    if channel_layer is None:
        logger.warning("No channel layer available, dropping %s for %s", payload.get("type"), group)
        return False

    try:
        async_to_sync(channel_layer.group_send)(group, payload)
    except Exception:
        logger.exception("Failed to publish %s to %s", payload.get("type"), group)
        return False

    logger.debug("WS -> %s: %s", group, payload.get("type"))
    return True


def _enqueue(group: str, payload: Dict[str, Any]):
    from trips.tasks import deliver_trip_event
    try:
        deliver_trip_event.delay(group, payload)
    except Exception:
        logger.exception("Failed to enqueue %s for %s", payload.get("type"), group)


def publish_on_commit(group: str, payload: Dict[str, Any]):
    """Queue delivery for after the current transaction commits."""
    transaction.on_commit(lambda: _enqueue(group, payload))


# ---------------------- Trip Event Helpers ----------------------

def trip_payload(event_type: str, trip, message: str = "", extra: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    from trips.serializers import TripSerializer

    payload = {
        "type": event_type,
        "trip_id": trip.id,
        "status": trip.status,
        "trip_data": dict(TripSerializer(trip).data),
        **(extra or {}),
    }
    if message:
        payload["message"] = message
    return payload


def notify_driver_event(
    event_type: str,
    trip,
    driver_id: int | None,
    message: str = "",
    extra: Dict[str, Any] = None,
) -> bool:
    """
    Send an event to one driver through driver_<driver_id>.

    Args:
        event_type: consumer handler name (trip_offer, trip_assigned, trip_cancelled, ...)
        trip: Trip model instance
        driver_id: target driver's user id
        message: optional human readable text
        extra: additional payload data
    """
    if not driver_id:
        return False

    payload = trip_payload(event_type, trip, message, {"driver_id": driver_id, **(extra or {})})
    publish_on_commit(driver_group(driver_id), payload)
    return True


def notify_trip_event(
    event_type: str,
    trip,
    message: str = "",
    extra: Dict[str, Any] = None,
) -> bool:
    """Send an event to trip_<id> watchers and the trip's franchise office."""
    payload = trip_payload(event_type, trip, message, extra)
    publish_on_commit(trip_group(trip.id), payload)
    if trip.franchise_id:
        publish_on_commit(franchise_group(trip.franchise_id), payload)
    return True
