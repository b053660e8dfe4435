"""
Trip status graph and the compare-and-swap helper every mutation goes through.

A status change is a single conditional UPDATE filtered on the expected
source status. Zero affected rows means another request got there first and
the caller gets InvalidStateError instead of a half-applied trip.
"""

import logging
from typing import Iterable

from django.utils import timezone

from trips.models import Trip, TripStatus
from .exceptions import InvalidStateError, TripNotFoundError

logger = logging.getLogger(__name__)


ACTIVE_STATUSES = frozenset({
    TripStatus.ASSIGNED,
    TripStatus.DRIVER_ON_THE_WAY,
    TripStatus.IN_PROGRESS,
})

TERMINAL_STATUSES = frozenset({
    TripStatus.COMPLETED,
    TripStatus.CANCELLED_BY_CUSTOMER,
    TripStatus.CANCELLED_BY_OFFICE,
})

# Statuses that carry a driver
DRIVER_BOUND_STATUSES = ACTIVE_STATUSES | {TripStatus.COMPLETED}

ASSIGNABLE_STATUSES = frozenset({TripStatus.REQUESTED})
REASSIGNABLE_STATUSES = frozenset({TripStatus.ASSIGNED, TripStatus.DRIVER_ON_THE_WAY})
STARTABLE_STATUSES = frozenset({TripStatus.ASSIGNED, TripStatus.DRIVER_ON_THE_WAY})
RESCHEDULABLE_STATUSES = frozenset({
    TripStatus.REQUESTED,
    TripStatus.ASSIGNED,
    TripStatus.DRIVER_ON_THE_WAY,
})
# Cancelling is refused once the trip is in progress
CANCELLABLE_STATUSES = RESCHEDULABLE_STATUSES

ALLOWED_TRANSITIONS = {
    TripStatus.REQUESTED: {
        TripStatus.REQUESTED,  # reschedule
        TripStatus.ASSIGNED,
        TripStatus.CANCELLED_BY_CUSTOMER,
        TripStatus.CANCELLED_BY_OFFICE,
    },
    TripStatus.ASSIGNED: {
        TripStatus.ASSIGNED,  # field updates, reassignment
        TripStatus.DRIVER_ON_THE_WAY,
        TripStatus.IN_PROGRESS,
        TripStatus.REQUESTED,  # rejected by driver
        TripStatus.CANCELLED_BY_CUSTOMER,
        TripStatus.CANCELLED_BY_OFFICE,
    },
    TripStatus.DRIVER_ON_THE_WAY: {
        TripStatus.DRIVER_ON_THE_WAY,  # field updates
        TripStatus.ASSIGNED,  # reassignment
        TripStatus.IN_PROGRESS,
        TripStatus.REQUESTED,
        TripStatus.CANCELLED_BY_CUSTOMER,
        TripStatus.CANCELLED_BY_OFFICE,
    },
    TripStatus.IN_PROGRESS: {
        TripStatus.IN_PROGRESS,  # end evidence / payment stamped before completion
        TripStatus.COMPLETED,
    },
    TripStatus.COMPLETED: set(),
    TripStatus.CANCELLED_BY_CUSTOMER: set(),
    TripStatus.CANCELLED_BY_OFFICE: set(),
}


def can_transition(source, target) -> bool:
    return target in ALLOWED_TRANSITIONS.get(source, set())


def load_trip(trip_id, for_update=False) -> Trip:
    """Fetch a trip or raise TripNotFoundError."""
    qs = Trip.objects.select_related('franchise', 'trip_type', 'driver')
    if for_update:
        qs = qs.select_for_update(of=('self',))
    try:
        return qs.get(pk=trip_id)
    except (Trip.DoesNotExist, ValueError, TypeError):
        raise TripNotFoundError(f"Trip {trip_id} not found")


def require_status(trip: Trip, allowed: Iterable, action: str):
    if trip.status not in allowed:
        raise InvalidStateError(f"Cannot {action} - trip is {trip.status}")


def guarded_update(trip: Trip, expected: Iterable, target, unassigned_only=False,
                   expected_driver_id=None, **fields) -> Trip:
    """
    Move `trip` to `target` only if its stored status is still one of
    `expected`. Applies `fields` in the same UPDATE and mirrors them onto the
    instance. `unassigned_only` / `expected_driver_id` add a driver column
    condition to the same UPDATE.

    Raises:
        InvalidStateError: the transition is not on the graph, or the stored
            row no longer matches (lost a race).
    """
    expected = set(expected)
    if trip.status not in expected or not can_transition(trip.status, target):
        raise InvalidStateError(f"Cannot move trip from {trip.status} to {target}")

    now = timezone.now()
    updates = dict(fields, status=target, updated_at=now)
    qs = Trip.objects.filter(pk=trip.pk, status__in=expected)
    if unassigned_only:
        qs = qs.filter(driver__isnull=True)
    if expected_driver_id is not None:
        qs = qs.filter(driver_id=expected_driver_id)

    rows = qs.update(**updates)
    if rows != 1:
        logger.info("Trip %s transition %s -> %s lost a race", trip.pk, trip.status, target)
        raise InvalidStateError(f"Trip {trip.pk} changed while processing, please retry")

    for name, value in updates.items():
        setattr(trip, name, value)
    logger.debug("Trip %s -> %s", trip.pk, target)
    return trip
