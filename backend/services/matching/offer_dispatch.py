"""
Trip offer protocol.

Offers fan out to many drivers at once; each carries its own expiry. The
first acceptance to commit wins:

1. Offer row moves OFFERED -> ACCEPTED with a conditional UPDATE
2. Trip moves REQUESTED (no driver) -> ASSIGNED with a conditional UPDATE
3. If step 2 finds the trip already taken, the offer ends CANCELLED

Both happen in one transaction, so two sibling accepts can never both win.
Expiry is checked on every read and accept; the periodic sweep in
offer_expiry only tidies up.

Lock order: any transaction that writes offer rows locks the trip row
first, then the offers. Accept, reject, dispatch, assignment, cancellation
and the sweep all follow it.

A trip keeps at most one ACCEPTED offer for its whole life. Once a driver
accepted and later handed the trip back, it is no longer offered and can
only be assigned directly.
"""

import logging
from datetime import timedelta
from typing import Iterable, List

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from activity.models import ActivityAction, ActivityEntityType
from drivers.models import DriverProfile
from trips.models import Trip, TripOffer, TripOfferStatus, TripStatus
from services.alerts import log_activity
from services.trip_management.assignment import bind_driver, has_accepted_offer
from services.trip_management.exceptions import (
    DriverIneligibleError,
    InvalidStateError,
    OfferNotFoundError,
    UnauthorizedError,
)
from services.trip_management.state_machine import ACTIVE_STATUSES, load_trip
from realtime.notifications import notify_driver_event, notify_trip_event
from .eligibility import check_driver_eligible, ineligibility_reason, rank_candidates

logger = logging.getLogger(__name__)


# ---------------------- Configuration ----------------------

def offer_ttl_seconds(franchise=None) -> int:
    if franchise is not None and franchise.offer_ttl_seconds:
        return franchise.offer_ttl_seconds
    return settings.TRIP_DISPATCH.get('OFFER_TTL_SECONDS', 300)


def max_offer_attempts(franchise=None) -> int:
    if franchise is not None and franchise.max_offer_attempts:
        return franchise.max_offer_attempts
    return settings.TRIP_DISPATCH.get('MAX_OFFER_ATTEMPTS', 25)


# ---------------------- Helpers ----------------------

def expire_overdue_offers(trip_ids=None, now=None) -> List[TripOffer]:
    """
    Mark OFFERED rows past their expiry as EXPIRED.

    Returns:
        the offers that were expired by this call
    """
    now = now or timezone.now()
    overdue = TripOffer.objects.filter(status=TripOfferStatus.OFFERED, expires_at__lte=now)
    if trip_ids is not None:
        overdue = overdue.filter(trip_id__in=list(trip_ids))
    else:
        # Sweeping every trip: take the trip locks first, in id order
        swept = sorted(set(overdue.values_list('trip_id', flat=True)))
        locked = Trip.objects.select_for_update().filter(pk__in=swept).order_by('pk')
        list(locked.values_list('pk', flat=True))
        overdue = overdue.filter(trip_id__in=swept)

    offers = list(overdue.select_related('trip'))
    if offers:
        TripOffer.objects.filter(
            pk__in=[offer.pk for offer in offers],
            status=TripOfferStatus.OFFERED,
        ).update(status=TripOfferStatus.EXPIRED, responded_at=now)
        for offer in offers:
            offer.status = TripOfferStatus.EXPIRED
            offer.responded_at = now
        logger.debug("Expired %d overdue offer(s)", len(offers))
    return offers


def _load_requestable_trip(trip_id) -> Trip:
    trip = load_trip(trip_id, for_update=True)
    if trip.status != TripStatus.REQUESTED or trip.driver_id is not None:
        raise InvalidStateError(f"Trip {trip.pk} is {trip.status} and cannot be offered")
    if has_accepted_offer(trip):
        raise InvalidStateError(f"Trip {trip.pk} was accepted once already; assign a driver directly")
    return trip


def _create_offers(trip: Trip, driver_ids: Iterable[int], actor=None, now=None) -> List[TripOffer]:
    """
    Create one offer per driver, skipping drivers that already hold a live
    offer for this trip and stopping at the attempt ceiling.
    """
    now = now or timezone.now()
    live = set(
        TripOffer.objects
        .filter(trip=trip, status=TripOfferStatus.OFFERED, expires_at__gt=now)
        .values_list('driver_id', flat=True)
    )
    remaining = max_offer_attempts(trip.franchise) - TripOffer.objects.filter(trip=trip).count()
    expires_at = now + timedelta(seconds=offer_ttl_seconds(trip.franchise))

    created = []
    for driver_id in driver_ids:
        if driver_id in live:
            logger.debug("Driver %s already holds a live offer for trip %s", driver_id, trip.pk)
            continue
        if remaining <= 0:
            logger.info("Trip %s reached the offer attempt limit", trip.pk)
            break

        offer = TripOffer.objects.create(
            trip=trip,
            driver_id=driver_id,
            status=TripOfferStatus.OFFERED,
            offered_at=now,
            expires_at=expires_at,
        )
        live.add(driver_id)
        remaining -= 1
        created.append(offer)

        log_activity(
            ActivityAction.TRIP_OFFERED,
            trip=trip,
            driver_id=driver_id,
            actor=actor,
            entity_type=ActivityEntityType.TRIP_OFFER,
            entity_id=offer.pk,
            description=f"Trip #{trip.pk} offered to driver #{driver_id}",
            metadata={'offer_id': offer.pk, 'expires_at': expires_at},
        )
        notify_driver_event(
            'trip_offer',
            trip,
            driver_id,
            "New trip request",
            {'offer_id': offer.pk, 'expires_at': expires_at.isoformat()},
        )

    if created:
        logger.info("Sent %d offer(s) for trip %s", len(created), trip.pk)
    return created


# ---------------------- Dispatch ----------------------

@transaction.atomic
def request_trip_to_all_eligible_drivers(trip_id, actor=None, exclude_driver_ids=None) -> int:
    """
    Offer a REQUESTED trip to every eligible driver who has never been
    offered it before.

    Returns:
        number of offers created
    """
    trip = _load_requestable_trip(trip_id)
    expire_overdue_offers([trip.pk])

    already_offered = set(TripOffer.objects.filter(trip=trip).values_list('driver_id', flat=True))
    excluded = already_offered | set(exclude_driver_ids or ())

    profiles = (
        DriverProfile.objects.select_related('user')
        .filter(franchise_id=trip.franchise_id, trip_status=DriverProfile.TRIP_STATUS_AVAILABLE)
        .exclude(user_id__in=excluded)
    )
    candidates = rank_candidates(trip, profiles)
    if not candidates:
        logger.info("No eligible drivers to offer trip %s", trip.pk)
        return 0

    return len(_create_offers(trip, [c.driver_id for c in candidates], actor=actor))


def _declined(trip, driver_ids) -> set:
    return set(
        TripOffer.objects
        .filter(trip=trip, driver_id__in=list(driver_ids), status=TripOfferStatus.REJECTED)
        .values_list('driver_id', flat=True)
    )


@transaction.atomic
def request_trip_to_eligible_driver_now(trip_id, driver_id, actor=None) -> int:
    """
    Offer a trip to one chosen driver.

    Returns:
        1 if an offer was created, 0 if the driver already holds a live one

    Raises:
        DriverIneligibleError: driver fails eligibility or declined this trip
    """
    trip = _load_requestable_trip(trip_id)
    expire_overdue_offers([trip.pk])

    check_driver_eligible(trip, driver_id)
    if _declined(trip, [driver_id]):
        raise DriverIneligibleError("Driver already declined this trip")

    return len(_create_offers(trip, [driver_id], actor=actor))


@transaction.atomic
def request_trip_to_eligible_drivers_now(trip_id, driver_ids, actor=None) -> int:
    """
    Offer a trip to a chosen set of drivers. Ineligible drivers and drivers
    who declined this trip are skipped.

    Returns:
        number of offers created
    """
    trip = _load_requestable_trip(trip_id)
    expire_overdue_offers([trip.pk])

    driver_ids = list(dict.fromkeys(driver_ids or []))
    declined = _declined(trip, driver_ids)
    profiles = {
        p.user_id: p
        for p in DriverProfile.objects.select_related('user').filter(user_id__in=driver_ids, user__role='driver')
    }

    targets = []
    for driver_id in driver_ids:
        if driver_id in declined:
            logger.debug("Driver %s declined trip %s before, skipping", driver_id, trip.pk)
            continue
        reason = ineligibility_reason(trip, profiles.get(driver_id))
        if reason:
            logger.debug("Driver %s skipped for trip %s: %s", driver_id, trip.pk, reason)
            continue
        targets.append(driver_id)

    return len(_create_offers(trip, targets, actor=actor))


# ---------------------- Driver Responses ----------------------

def _find_offer(offer_id, driver_id) -> TripOffer:
    try:
        offer = TripOffer.objects.only('trip', 'driver').get(pk=offer_id)
    except (TripOffer.DoesNotExist, ValueError, TypeError):
        raise OfferNotFoundError(f"Offer {offer_id} not found")
    if offer.driver_id != driver_id:
        raise UnauthorizedError("This offer does not belong to you")
    return offer


def _lock_offer(offer_pk) -> TripOffer:
    return TripOffer.objects.select_for_update(of=('self',)).get(pk=offer_pk)


def _lock_trip_and_offer(offer_id, driver_id) -> TripOffer:
    """
    Lock the offer's trip, then the offer itself. Siblings racing for the
    same trip queue on the trip row, so the offer locks never cross.
    """
    found = _find_offer(offer_id, driver_id)
    trip = load_trip(found.trip_id, for_update=True)
    offer = _lock_offer(found.pk)
    offer.trip = trip
    return offer


RESPONSE_FIELDS = ['status', 'responded_at', 'accepted_at', 'rejected_at']


def _finish_offer(offer: TripOffer, status, now, **fields) -> bool:
    """OFFERED -> `status` if the row is still OFFERED."""
    rows = TripOffer.objects.filter(pk=offer.pk, status=TripOfferStatus.OFFERED).update(
        status=status,
        responded_at=now,
        **fields,
    )
    offer.refresh_from_db(fields=RESPONSE_FIELDS)
    return rows == 1


@transaction.atomic
def accept_trip_offer(offer_id, driver_id) -> TripOffer:
    """
    Accept an offer. Returns the offer in its resulting state:

    - ACCEPTED: this driver now holds the trip (or already did)
    - EXPIRED: the offer ran out before the accept arrived
    - CANCELLED: the trip was taken, cancelled, or accepted once before
    - any other terminal status unchanged

    Raises:
        OfferNotFoundError, UnauthorizedError,
        DriverIneligibleError (driver is busy on another trip)
    """
    offer = _lock_trip_and_offer(offer_id, driver_id)
    trip = offer.trip
    if offer.status != TripOfferStatus.OFFERED:
        logger.debug("Offer %s already %s", offer.pk, offer.status)
        return offer

    now = timezone.now()
    if offer.expires_at <= now:
        _finish_offer(offer, TripOfferStatus.EXPIRED, now)
        logger.info("Offer %s expired before acceptance", offer.pk)
        return offer

    if trip.status != TripStatus.REQUESTED or trip.driver_id is not None:
        _finish_offer(offer, TripOfferStatus.CANCELLED, now)
        logger.info("Offer %s lost: trip %s is %s", offer.pk, trip.pk, trip.status)
        return offer

    if has_accepted_offer(trip, exclude_offer_id=offer.pk):
        _finish_offer(offer, TripOfferStatus.CANCELLED, now)
        logger.info("Offer %s refused: trip %s was accepted by another driver before", offer.pk, trip.pk)
        return offer

    busy = Trip.objects.filter(driver_id=driver_id, status__in=ACTIVE_STATUSES).exclude(pk=trip.pk)
    if busy.exists():
        raise DriverIneligibleError("Finish your current trip before accepting another")

    if not _finish_offer(offer, TripOfferStatus.ACCEPTED, now, accepted_at=now):
        return offer

    try:
        bind_driver(
            trip,
            driver_id,
            action=ActivityAction.TRIP_ACCEPTED,
            keep_offer_id=offer.pk,
            description=f"Driver #{driver_id} accepted trip #{trip.pk}",
        )
    except InvalidStateError:
        TripOffer.objects.filter(pk=offer.pk).update(status=TripOfferStatus.CANCELLED, accepted_at=None)
        offer.refresh_from_db(fields=RESPONSE_FIELDS)
        logger.info("Offer %s lost the race for trip %s", offer.pk, trip.pk)
        return offer

    notify_driver_event('offer_accepted', trip, driver_id, "Trip accepted. Navigate to pickup.",
                        {'offer_id': offer.pk})
    return offer


@transaction.atomic
def reject_trip_offer(offer_id, driver_id) -> TripOffer:
    """
    Decline an offer. Already terminal offers are returned unchanged and an
    offer past its expiry becomes EXPIRED instead.
    """
    offer = _lock_trip_and_offer(offer_id, driver_id)
    if offer.status != TripOfferStatus.OFFERED:
        return offer

    now = timezone.now()
    if offer.expires_at <= now:
        _finish_offer(offer, TripOfferStatus.EXPIRED, now)
        return offer

    if not _finish_offer(offer, TripOfferStatus.REJECTED, now, rejected_at=now):
        return offer

    trip = offer.trip
    log_activity(
        ActivityAction.TRIP_REJECTED,
        trip=trip,
        driver_id=driver_id,
        entity_type=ActivityEntityType.TRIP_OFFER,
        entity_id=offer.pk,
        description=f"Driver #{driver_id} declined trip #{trip.pk}",
        metadata={'offer_id': offer.pk},
    )
    logger.info("Driver %s rejected offer %s for trip %s", driver_id, offer.pk, trip.pk)
    notify_trip_event('offer_rejected', trip, "Driver declined the trip",
                      {'offer_id': offer.pk, 'driver_id': driver_id})

    if settings.TRIP_DISPATCH.get('REDISPATCH_ON_EXHAUSTION', True):
        still_live = TripOffer.objects.filter(
            trip=trip, status=TripOfferStatus.OFFERED, expires_at__gt=now,
        ).exists()
        if not still_live and trip.status == TripStatus.REQUESTED:
            trip_pk = trip.pk
            transaction.on_commit(lambda: _redispatch(trip_pk))

    return offer


def _redispatch(trip_id):
    from services.trip_management.trip_lifecycle import dispatch_best_effort
    dispatch_best_effort(trip_id)


# ---------------------- Queries ----------------------

def list_pending_offers_for_driver(driver_id, now=None):
    """Live offers for a driver. Offers past expires_at never show up, swept or not."""
    now = now or timezone.now()
    return (
        TripOffer.objects
        .filter(
            driver_id=driver_id,
            status=TripOfferStatus.OFFERED,
            expires_at__gt=now,
            trip__status=TripStatus.REQUESTED,
        )
        .select_related('trip', 'trip__trip_type', 'trip__franchise')
        .order_by('-offered_at')
    )
