"""
Driver binding shared by manual assignment, reassignment and offer acceptance.

Everything here runs inside the caller's transaction.
"""

import logging
from decimal import Decimal

from django.utils import timezone

from drivers.models import DriverProfile
from trips.models import TripOffer, TripOfferStatus, TripStatus
from activity.models import ActivityAction
from services.alerts import log_activity
from realtime.notifications import notify_driver_event, notify_trip_event
from .state_machine import guarded_update

logger = logging.getLogger(__name__)


def mark_driver_on_trip(driver_id):
    DriverProfile.objects.filter(user_id=driver_id).update(
        trip_status=DriverProfile.TRIP_STATUS_ON_TRIP,
    )


def release_driver(driver_id):
    """Put a driver back to available, unless they went offline meanwhile."""
    if not driver_id:
        return
    DriverProfile.objects.filter(
        user_id=driver_id,
        trip_status=DriverProfile.TRIP_STATUS_ON_TRIP,
    ).update(trip_status=DriverProfile.TRIP_STATUS_AVAILABLE)


def deduct_daily_limit(driver_id, amount):
    """Take `amount` off the driver's remaining daily limit, never below zero."""
    profile = (
        DriverProfile.objects.select_for_update()
        .filter(user_id=driver_id, remaining_daily_limit__isnull=False)
        .first()
    )
    if profile is None or amount is None:
        return
    profile.remaining_daily_limit = max(Decimal('0'), profile.remaining_daily_limit - Decimal(amount))
    profile.save(update_fields=['remaining_daily_limit'])


def has_accepted_offer(trip, exclude_offer_id=None) -> bool:
    """True once any offer of `trip` has been accepted, even if the driver later handed it back."""
    accepted = TripOffer.objects.filter(trip=trip, status=TripOfferStatus.ACCEPTED)
    if exclude_offer_id is not None:
        accepted = accepted.exclude(pk=exclude_offer_id)
    return accepted.exists()


def cancel_live_offers(trip, keep_offer_id=None):
    """
    Cancel every OFFERED row of `trip` except `keep_offer_id`.

    Returns:
        ids of the drivers whose offers were cancelled
    """
    now = timezone.now()
    live = TripOffer.objects.filter(trip=trip, status=TripOfferStatus.OFFERED)
    if keep_offer_id is not None:
        live = live.exclude(pk=keep_offer_id)
    driver_ids = list(live.values_list('driver_id', flat=True))
    if driver_ids:
        live.update(status=TripOfferStatus.CANCELLED, responded_at=now)
        logger.debug("Cancelled %d live offer(s) for trip %s", len(driver_ids), trip.pk)
    return driver_ids


def notify_offers_withdrawn(trip, driver_ids, message="This trip is no longer available."):
    for driver_id in driver_ids:
        notify_driver_event('offer_cancelled', trip, driver_id, message)


def bind_driver(trip, driver_id, actor=None, action=ActivityAction.TRIP_ASSIGNED,
                keep_offer_id=None, description=""):
    """
    Move an unassigned REQUESTED trip to ASSIGNED with `driver_id`.

    The UPDATE is conditional on the trip still being REQUESTED with no
    driver, so two concurrent binders cannot both win.

    Raises:
        InvalidStateError: the trip was assigned or cancelled in the meantime
    """
    guarded_update(
        trip,
        {TripStatus.REQUESTED},
        TripStatus.ASSIGNED,
        unassigned_only=True,
        driver_id=driver_id,
    )
    mark_driver_on_trip(driver_id)
    withdrawn = cancel_live_offers(trip, keep_offer_id=keep_offer_id)

    log_activity(
        action,
        trip=trip,
        driver_id=driver_id,
        actor=actor,
        description=description or f"Trip #{trip.pk} assigned to driver #{driver_id}",
        metadata={'offer_id': keep_offer_id} if keep_offer_id else {},
    )
    logger.info("Trip %s assigned to driver %s", trip.pk, driver_id)

    notify_driver_event('trip_assigned', trip, driver_id, "A trip has been assigned to you.")
    notify_trip_event('trip_assigned', trip, "Driver assigned", {'driver_id': driver_id})
    notify_offers_withdrawn(trip, withdrawn)
    return trip
