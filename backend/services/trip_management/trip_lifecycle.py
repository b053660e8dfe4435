"""
Core trip lifecycle operations.

Every mutating operation runs in one transaction, locks the trip row where
the database supports it, and changes status through guarded_update so a
request that loses a race gets InvalidStateError.
"""

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Optional, Dict, Any

from django.conf import settings
from django.db import transaction
from django.utils import timezone
from django.utils.dateparse import parse_datetime

from activity.models import ActivityAction, ActivityLog
from drivers.models import DriverProfile
from franchises.models import Franchise
from trips.models import (
    CarCategory,
    CarGearType,
    Trip,
    TripStatus,
    TripType,
)
from services.alerts import log_activity
from realtime.notifications import notify_driver_event, notify_trip_event, publish_on_commit, trip_group
from .assignment import (
    bind_driver,
    cancel_live_offers,
    deduct_daily_limit,
    has_accepted_offer,
    mark_driver_on_trip,
    notify_offers_withdrawn,
    release_driver,
)
from .exceptions import (
    InvalidStateError,
    TripServiceError,
    TripValidationError,
    UnauthorizedError,
)
from .state_machine import (
    ACTIVE_STATUSES,
    ASSIGNABLE_STATUSES,
    CANCELLABLE_STATUSES,
    REASSIGNABLE_STATUSES,
    RESCHEDULABLE_STATUSES,
    guarded_update,
    load_trip,
    require_status,
)

logger = logging.getLogger(__name__)

REQUIRED_TRIP_FIELDS = ('franchise', 'trip_type', 'customer_name', 'customer_phone', 'pickup_address')

CANCELLED_BY = {
    'customer': TripStatus.CANCELLED_BY_CUSTOMER,
    'office': TripStatus.CANCELLED_BY_OFFICE,
}


@dataclass
class TripResult:
    """Result object for trip operations."""
    success: bool
    trip: Optional[Trip] = None
    message: str = ""
    error_code: Optional[str] = None
    extra: Optional[Dict[str, Any]] = None


# ===================== Parsing helpers =====================

def parse_decimal(value, name, required=True, minimum=Decimal('0')) -> Optional[Decimal]:
    if value in (None, ""):
        if required:
            raise TripValidationError(f"{name} is required")
        return None
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise TripValidationError(f"{name} must be a number")
    if not result.is_finite():
        raise TripValidationError(f"{name} must be a number")
    if minimum is not None and result < minimum:
        raise TripValidationError(f"{name} cannot be less than {minimum}")
    return result


def parse_when(value, name, required=False) -> Optional[datetime]:
    """Accept a datetime or an ISO 8601 string; naive values use the current time zone."""
    if value in (None, ""):
        if required:
            raise TripValidationError(f"{name} is required")
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        try:
            parsed = parse_datetime(str(value))
        except ValueError:
            parsed = None
        if parsed is None:
            raise TripValidationError(f"{name} must be a valid date and time")
    if timezone.is_naive(parsed):
        parsed = timezone.make_aware(parsed)
    return parsed


def ensure_assigned_driver(trip: Trip, driver_id):
    if trip.driver_id is None or trip.driver_id != driver_id:
        raise UnauthorizedError("This trip is not assigned to you")


# ===================== Fare =====================

def compute_trip_fare(trip: Trip, end_odometer: Decimal, end_time: datetime):
    """
    Distance, duration and fare for a trip ending at `end_odometer` / `end_time`.

    Returns:
        (distance_km, duration_hours, Quote)
    """
    if trip.start_odometer is None:
        raise InvalidStateError("Trip has no start odometer reading")
    if end_odometer < trip.start_odometer:
        raise TripValidationError("End odometer cannot be less than start odometer")

    distance = end_odometer - trip.start_odometer
    started = trip.start_time or trip.started_at
    if started is None:
        duration = Decimal('0')
    else:
        seconds = max((end_time - started).total_seconds(), 0)
        duration = (Decimal(str(seconds)) / Decimal('3600')).quantize(Decimal('0.01'), rounding=ROUND_HALF_UP)

    from services.pricing import get_rate_card

    quote = get_rate_card()(trip.trip_type, trip.car_category, distance=distance, duration=duration)
    return distance, duration, quote


def complete_trip(trip: Trip, expected_driver_id=None, actor=None, **fields) -> Trip:
    """
    IN_PROGRESS -> COMPLETED. Writes the final amount from the fare
    components, frees the driver and charges their daily limit.
    """
    now = timezone.now()
    base = fields.get('base_amount', trip.base_amount)
    extra = fields.get('extra_amount', trip.extra_amount)
    final_amount = base + extra

    guarded_update(
        trip,
        {TripStatus.IN_PROGRESS},
        TripStatus.COMPLETED,
        expected_driver_id=expected_driver_id,
        final_amount=final_amount,
        ended_at=now,
        **fields,
    )
    release_driver(trip.driver_id)
    deduct_daily_limit(trip.driver_id, final_amount)

    log_activity(
        ActivityAction.TRIP_ENDED,
        trip=trip,
        driver_id=trip.driver_id,
        actor=actor,
        description=f"Trip #{trip.pk} completed",
        metadata={
            'final_amount': final_amount,
            'distance_km': trip.distance_km,
            'duration_hours': trip.duration_hours,
            'payment_status': trip.payment_status,
        },
    )
    logger.info("Trip %s completed, final amount %s", trip.pk, final_amount)

    notify_driver_event('trip_completed', trip, trip.driver_id, "Trip completed.")
    notify_trip_event('trip_completed', trip, "Trip completed")
    return trip


# ===================== Office Operations =====================

def create_trip(data: Dict[str, Any], actor=None, dispatch: Optional[bool] = None) -> TripResult:
    """
    Create a REQUESTED trip priced from its rate card, then offer it to
    eligible drivers.

    Args:
        data: trip fields; franchise and trip_type may be ids or instances
        actor: office user creating the trip
        dispatch: override TRIP_DISPATCH['AUTO_DISPATCH_ON_CREATE']

    Returns:
        TripResult; extra['offers_sent'] is the number of offers created

    Raises:
        TripValidationError: missing or malformed fields
        PricingError: the rate card could not price the trip
    """
    missing = [name for name in REQUIRED_TRIP_FIELDS if data.get(name) in (None, "")]
    if missing:
        raise TripValidationError(f"Missing required fields: {', '.join(missing)}")

    franchise = data['franchise']
    if not isinstance(franchise, Franchise):
        franchise = Franchise.objects.filter(pk=franchise, is_active=True).first()
    if franchise is None or not franchise.is_active:
        raise TripValidationError("Franchise not found or inactive")

    trip_type = data['trip_type']
    if not isinstance(trip_type, TripType):
        trip_type = TripType.objects.filter(pk=trip_type, is_active=True).first()
    if trip_type is None or not trip_type.is_active:
        raise TripValidationError("Trip type not found or inactive")

    car_category = data.get('car_category') or CarCategory.NORMAL
    if car_category not in CarCategory.values:
        raise TripValidationError(f"Invalid car category: {car_category}")
    car_gear_type = data.get('car_gear_type') or None
    if car_gear_type is not None and car_gear_type not in CarGearType.values:
        raise TripValidationError(f"Invalid car gear type: {car_gear_type}")

    estimated_distance = parse_decimal(data.get('estimated_distance_km'), 'estimated_distance_km', required=False)
    estimated_duration = parse_decimal(data.get('estimated_duration_hours'), 'estimated_duration_hours', required=False)
    scheduled_at = parse_when(data.get('scheduled_at'), 'scheduled_at')

    from services.pricing import get_rate_card

    quote = get_rate_card()(trip_type, car_category, distance=estimated_distance, duration=estimated_duration)

    with transaction.atomic():
        trip = Trip.objects.create(
            franchise=franchise,
            trip_type=trip_type,
            customer_name=data['customer_name'],
            customer_phone=data['customer_phone'],
            customer_email=data.get('customer_email') or "",
            pickup_address=data['pickup_address'],
            pickup_latitude=data.get('pickup_latitude'),
            pickup_longitude=data.get('pickup_longitude'),
            drop_address=data.get('drop_address') or "",
            drop_latitude=data.get('drop_latitude'),
            drop_longitude=data.get('drop_longitude'),
            car_category=car_category,
            car_gear_type=car_gear_type,
            scheduled_at=scheduled_at,
            estimated_distance_km=estimated_distance,
            estimated_duration_hours=estimated_duration,
            base_amount=quote.base_amount,
            extra_amount=quote.extra_amount,
            status=TripStatus.REQUESTED,
            created_by=actor if getattr(actor, 'pk', None) else None,
        )
        log_activity(
            ActivityAction.TRIP_CREATED,
            trip=trip,
            actor=actor,
            description=f"Trip #{trip.pk} created for {trip.customer_name}",
            metadata={'estimated_fare': trip.estimated_fare},
        )
        notify_trip_event('trip_created', trip, "New trip created")

    logger.info("Trip %s created (franchise=%s, fare=%s)", trip.pk, franchise.pk, trip.estimated_fare)

    if dispatch is None:
        dispatch = settings.TRIP_DISPATCH.get('AUTO_DISPATCH_ON_CREATE', True)

    offers_sent = 0
    if dispatch:
        offers_sent = dispatch_best_effort(trip.pk)

    return TripResult(
        success=True,
        trip=trip,
        message="Trip created. Notifying eligible drivers..." if offers_sent else "Trip created.",
        extra={'offers_sent': offers_sent},
    )


def dispatch_best_effort(trip_id, exclude_driver_ids=None) -> int:
    """Offer a trip to all eligible drivers; failures are logged, never raised."""
    from services.matching import request_trip_to_all_eligible_drivers

    try:
        return request_trip_to_all_eligible_drivers(trip_id, exclude_driver_ids=exclude_driver_ids)
    except TripServiceError as e:
        logger.warning("Automatic dispatch skipped for trip %s: %s", trip_id, e)
    except Exception:
        logger.exception("Automatic dispatch failed for trip %s", trip_id)
    return 0


@transaction.atomic
def assign_driver(trip_id, driver_id, actor=None) -> TripResult:
    """
    Manually assign an eligible driver to a REQUESTED trip.

    Raises:
        TripNotFoundError, InvalidStateError, DriverIneligibleError
    """
    from services.matching.eligibility import check_driver_eligible

    trip = load_trip(trip_id, for_update=True)
    require_status(trip, ASSIGNABLE_STATUSES, "assign a driver")
    if trip.driver_id is not None:
        raise InvalidStateError("Trip already has a driver assigned")

    check_driver_eligible(trip, driver_id)
    bind_driver(trip, driver_id, actor=actor, action=ActivityAction.TRIP_ASSIGNED)

    return TripResult(success=True, trip=trip, message="Driver assigned successfully")


@transaction.atomic
def reassign_driver(trip_id, new_driver_id, actor=None, reason: str = "") -> TripResult:
    """
    Swap the driver of an ASSIGNED / DRIVER_ON_THE_WAY trip.

    Raises:
        TripNotFoundError, InvalidStateError, DriverIneligibleError,
        TripValidationError (same driver)
    """
    from services.matching.eligibility import check_driver_eligible

    trip = load_trip(trip_id, for_update=True)
    require_status(trip, REASSIGNABLE_STATUSES, "reassign")
    old_driver_id = trip.driver_id
    if old_driver_id == new_driver_id:
        raise TripValidationError("Trip is already assigned to this driver")

    check_driver_eligible(trip, new_driver_id)

    guarded_update(
        trip,
        REASSIGNABLE_STATUSES,
        TripStatus.ASSIGNED,
        expected_driver_id=old_driver_id,
        driver_id=new_driver_id,
    )
    release_driver(old_driver_id)
    mark_driver_on_trip(new_driver_id)

    metadata = {'from_driver_id': old_driver_id, 'to_driver_id': new_driver_id, 'reason': reason}
    log_activity(
        ActivityAction.TRIP_REASSIGNED,
        trip=trip,
        driver_id=old_driver_id,
        actor=actor,
        description=f"Trip #{trip.pk} taken from driver #{old_driver_id}",
        metadata=metadata,
    )
    log_activity(
        ActivityAction.TRIP_ASSIGNED,
        trip=trip,
        driver_id=new_driver_id,
        actor=actor,
        description=f"Trip #{trip.pk} reassigned to driver #{new_driver_id}",
        metadata=metadata,
    )
    logger.info("Trip %s reassigned from driver %s to %s", trip.pk, old_driver_id, new_driver_id)

    notify_driver_event('trip_unassigned', trip, old_driver_id, "This trip has been reassigned.")
    notify_driver_event('trip_assigned', trip, new_driver_id, "A trip has been assigned to you.")
    notify_trip_event('trip_reassigned', trip, "Driver changed", metadata)

    return TripResult(success=True, trip=trip, message="Driver reassigned successfully",
                      extra={'previous_driver_id': old_driver_id})


@transaction.atomic
def reschedule_trip(trip_id, scheduled_at, actor=None) -> TripResult:
    """Move the scheduled time of a trip that has not started yet."""
    new_time = parse_when(scheduled_at, 'scheduled_at', required=True)

    trip = load_trip(trip_id, for_update=True)
    require_status(trip, RESCHEDULABLE_STATUSES, "reschedule")
    old_time = trip.scheduled_at

    guarded_update(trip, RESCHEDULABLE_STATUSES, trip.status, scheduled_at=new_time)

    log_activity(
        ActivityAction.TRIP_RESCHEDULED,
        trip=trip,
        driver_id=trip.driver_id,
        actor=actor,
        description=f"Trip #{trip.pk} rescheduled",
        metadata={'from': old_time, 'to': new_time},
    )
    logger.info("Trip %s rescheduled to %s", trip.pk, new_time)

    notify_driver_event('trip_updated', trip, trip.driver_id, "Trip time changed.")
    notify_trip_event('trip_updated', trip, "Trip rescheduled")
    return TripResult(success=True, trip=trip, message="Trip rescheduled successfully")


@transaction.atomic
def cancel_trip(trip_id, cancelled_by: str = 'office', reason: str = "", actor=None) -> TripResult:
    """
    Cancel a trip that has not started. Cancelling an IN_PROGRESS trip is
    refused with InvalidStateError.

    Args:
        cancelled_by: 'customer' or 'office'
    """
    target = CANCELLED_BY.get(cancelled_by)
    if target is None:
        raise TripValidationError("cancelled_by must be 'customer' or 'office'")

    trip = load_trip(trip_id, for_update=True)
    require_status(trip, CANCELLABLE_STATUSES, "cancel")
    previous_driver_id = trip.driver_id

    guarded_update(
        trip,
        CANCELLABLE_STATUSES,
        target,
        driver_id=None,
        cancelled_at=timezone.now(),
        cancellation_reason=reason or "",
    )
    release_driver(previous_driver_id)
    withdrawn = cancel_live_offers(trip)

    log_activity(
        ActivityAction.TRIP_CANCELLED,
        trip=trip,
        driver_id=previous_driver_id,
        actor=actor,
        description=f"Trip #{trip.pk} cancelled by {cancelled_by}",
        metadata={'reason': reason, 'cancelled_by': cancelled_by},
    )
    logger.info("Trip %s cancelled by %s", trip.pk, cancelled_by)

    if previous_driver_id:
        notify_driver_event('trip_cancelled', trip, previous_driver_id, reason or "Trip cancelled.")
    notify_offers_withdrawn(trip, withdrawn, "Trip request cancelled.")
    notify_trip_event('trip_cancelled', trip, reason or "Trip cancelled")

    return TripResult(success=True, trip=trip, message="Trip cancelled successfully",
                      extra={'was_assigned': previous_driver_id is not None})


@transaction.atomic
def end_trip_direct(trip_id, end_odometer, actor=None, end_time=None) -> TripResult:
    """
    Complete an IN_PROGRESS trip from an end odometer reading without the
    OTP step. Priced the same way as a verified end.
    """
    end_odometer = parse_decimal(end_odometer, 'end_odometer')
    end_time = parse_when(end_time, 'end_time') or timezone.now()

    trip = load_trip(trip_id, for_update=True)
    require_status(trip, {TripStatus.IN_PROGRESS}, "end")

    distance, duration, quote = compute_trip_fare(trip, end_odometer, end_time)
    complete_trip(
        trip,
        actor=actor,
        end_odometer=end_odometer,
        end_time=end_time,
        distance_km=distance,
        duration_hours=duration,
        base_amount=quote.base_amount,
        extra_amount=quote.extra_amount,
    )
    return TripResult(success=True, trip=trip, message="Trip ended successfully")


# ===================== Driver Operations =====================

@transaction.atomic
def mark_driver_on_the_way(trip_id, driver_id) -> TripResult:
    trip = load_trip(trip_id, for_update=True)
    ensure_assigned_driver(trip, driver_id)
    require_status(trip, {TripStatus.ASSIGNED}, "mark on the way")

    guarded_update(trip, {TripStatus.ASSIGNED}, TripStatus.DRIVER_ON_THE_WAY, expected_driver_id=driver_id)
    log_activity(
        ActivityAction.TRIP_UPDATED,
        trip=trip,
        driver_id=driver_id,
        description=f"Driver on the way for trip #{trip.pk}",
    )
    notify_trip_event('trip_status_changed', trip, "Driver is on the way")
    return TripResult(success=True, trip=trip, message="Status updated. Drive safe!")


@transaction.atomic
def reject_assigned_trip(trip_id, driver_id, reason: str = "") -> TripResult:
    """
    Driver hands back an assigned trip that has not started. The trip
    returns to REQUESTED without a driver and is offered again after commit,
    unless it came from an accepted offer: then only the office can assign it.
    """
    trip = load_trip(trip_id, for_update=True)
    ensure_assigned_driver(trip, driver_id)
    require_status(trip, REASSIGNABLE_STATUSES, "reject")

    guarded_update(
        trip,
        REASSIGNABLE_STATUSES,
        TripStatus.REQUESTED,
        expected_driver_id=driver_id,
        driver_id=None,
    )
    release_driver(driver_id)

    log_activity(
        ActivityAction.TRIP_REJECTED,
        trip=trip,
        driver_id=driver_id,
        actor=None,
        description=f"Driver #{driver_id} rejected trip #{trip.pk}",
        metadata={'reason': reason},
    )
    logger.info("Driver %s rejected assigned trip %s", driver_id, trip.pk)
    notify_trip_event('trip_rejected', trip, reason or "Driver rejected the trip", {'driver_id': driver_id})

    redispatch = (
        settings.TRIP_DISPATCH.get('REDISPATCH_ON_EXHAUSTION', True)
        and not has_accepted_offer(trip)
    )
    if redispatch:
        trip_pk = trip.pk
        transaction.on_commit(lambda: dispatch_best_effort(trip_pk, exclude_driver_ids={driver_id}))
        message = "Trip rejected. It will be offered to other drivers."
    else:
        message = "Trip rejected. The office will assign another driver."

    return TripResult(success=True, trip=trip, message=message, extra={'redispatch': redispatch})


def update_live_location(trip_id, driver_id, latitude, longitude) -> TripResult:
    """Store the latest point for an active trip. No history is kept."""
    lat = parse_decimal(latitude, 'latitude', minimum=Decimal('-90'))
    lon = parse_decimal(longitude, 'longitude', minimum=Decimal('-180'))
    if lat > 90 or lon > 180:
        raise TripValidationError("Coordinates out of range")
    lat = lat.quantize(Decimal('0.000001'))
    lon = lon.quantize(Decimal('0.000001'))

    now = timezone.now()
    with transaction.atomic():
        rows = Trip.objects.filter(
            pk=trip_id,
            driver_id=driver_id,
            status__in=ACTIVE_STATUSES,
        ).update(live_latitude=lat, live_longitude=lon, live_location_updated_at=now)

        if rows != 1:
            trip = load_trip(trip_id)
            ensure_assigned_driver(trip, driver_id)
            raise InvalidStateError(f"Cannot update location - trip is {trip.status}")

        DriverProfile.objects.filter(user_id=driver_id).update(
            current_latitude=lat,
            current_longitude=lon,
            last_location_update=now,
        )
        publish_on_commit(trip_group(trip_id), {
            'type': 'trip_location_update',
            'trip_id': int(trip_id),
            'driver_id': driver_id,
            'latitude': float(lat),
            'longitude': float(lon),
            'updated_at': now.isoformat(),
        })

    trip = load_trip(trip_id)
    return TripResult(success=True, trip=trip, message="Location updated")


# ===================== Queries =====================

def get_trip(trip_id) -> Trip:
    return load_trip(trip_id)


def get_trip_activity(trip_id):
    """Activity entries of one trip, oldest first."""
    trip = load_trip(trip_id)
    return (
        ActivityLog.objects
        .filter(trip=trip)
        .select_related('actor', 'driver')
        .order_by('created_at', 'id')
    )


def get_current_driver_trip(driver_id) -> Optional[Trip]:
    """Driver's current active trip, if any."""
    return (
        Trip.objects
        .filter(driver_id=driver_id, status__in=ACTIVE_STATUSES)
        .select_related('franchise', 'trip_type')
        .order_by('-updated_at')
        .first()
    )
