import logging

from django.db import transaction
from django.utils import timezone

from drivers.models import DriverProfile
from services.trip_management.exceptions import InvalidStateError, TripValidationError

logger = logging.getLogger(__name__)

SETTABLE_TRIP_STATUSES = (DriverProfile.TRIP_STATUS_AVAILABLE, DriverProfile.TRIP_STATUS_OFFLINE)


# DRIVER AVAILABILITY
@transaction.atomic
def update_driver_status(driver_id, new_status: str) -> DriverProfile:
    """
    Switch a driver between available and offline.
    on_trip is owned by the trip lifecycle and cannot be set or left here.
    """
    if new_status not in SETTABLE_TRIP_STATUSES:
        raise TripValidationError(f"Invalid status: {new_status}")

    profile = DriverProfile.objects.select_for_update().get(user_id=driver_id)
    if profile.trip_status == DriverProfile.TRIP_STATUS_ON_TRIP:
        raise InvalidStateError("Finish your current trip before changing status")

    if profile.trip_status != new_status:
        profile.trip_status = new_status
        profile.save(update_fields=["trip_status"])
        logger.info("Driver %s is now %s", driver_id, new_status)
    return profile


# ATTENDANCE
def set_checked_in(driver_id, checked_in: bool) -> DriverProfile:
    """Check in / out for franchises that track attendance."""
    profile = DriverProfile.objects.get(user_id=driver_id)
    profile.is_checked_in = checked_in
    profile.save(update_fields=["is_checked_in"])
    logger.info("Driver %s checked %s", driver_id, "in" if checked_in else "out")
    return profile


# LOCATION
def update_driver_location(driver_id, lat, lon) -> int:
    """
    Store the driver's last known position. Used by:
    - HTTP fallback
    - WebSocket driver_location_update messages
    """
    return DriverProfile.objects.filter(user_id=driver_id).update(
        current_latitude=lat,
        current_longitude=lon,
        last_location_update=timezone.now(),
    )
