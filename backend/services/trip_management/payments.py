"""
Payment collection for trips whose end was verified with await_payment.
"""

import logging
from decimal import Decimal

from django.conf import settings
from django.db import transaction

from trips.models import PaymentMethod, PaymentStatus, TripStatus
from realtime.notifications import notify_trip_event
from .exceptions import InvalidStateError, TripValidationError
from .state_machine import guarded_update, load_trip, require_status
from .trip_lifecycle import TripResult, complete_trip, ensure_assigned_driver, parse_decimal

logger = logging.getLogger(__name__)


def payment_tolerance() -> Decimal:
    return Decimal(str(getattr(settings, 'TRIP_PAYMENT_TOLERANCE', '0.01')))


def _require_end_verified(trip):
    require_status(trip, {TripStatus.IN_PROGRESS}, "collect payment for")
    if trip.end_verified_at is None:
        raise InvalidStateError("Verify the trip end before collecting payment")


def split_amounts(method, cash_amount=None, upi_amount=None):
    """
    Validate the amounts supplied for `method`.

    Returns:
        (cash, upi) with None for a channel the method does not use
    """
    if method not in PaymentMethod.values:
        raise TripValidationError(f"Invalid payment method: {method}")

    if method == PaymentMethod.CASH:
        return parse_decimal(cash_amount, 'cash_amount'), None
    if method == PaymentMethod.UPI:
        return None, parse_decimal(upi_amount, 'upi_amount')
    return parse_decimal(cash_amount, 'cash_amount'), parse_decimal(upi_amount, 'upi_amount')


def reconcile(trip):
    """Collected total must match the computed fare within the tolerance."""
    collected = (trip.cash_amount or Decimal('0')) + (trip.upi_amount or Decimal('0'))
    due = trip.estimated_fare
    if abs(collected - due) > payment_tolerance():
        raise TripValidationError(f"Collected amount {collected} does not match fare {due}")
    return collected


@transaction.atomic
def collect_payment(trip_id, driver_id, method, cash_amount=None, upi_amount=None,
                    upi_reference="") -> TripResult:
    """Record how the customer paid. The trip stays IN_PROGRESS."""
    cash, upi = split_amounts(method, cash_amount, upi_amount)

    trip = load_trip(trip_id, for_update=True)
    ensure_assigned_driver(trip, driver_id)
    _require_end_verified(trip)

    guarded_update(
        trip,
        {TripStatus.IN_PROGRESS},
        TripStatus.IN_PROGRESS,
        expected_driver_id=driver_id,
        payment_method=method,
        cash_amount=cash,
        upi_amount=upi,
        upi_reference=upi_reference or "",
        payment_status=PaymentStatus.PAID,
    )
    logger.info("Payment %s recorded for trip %s (cash=%s upi=%s)", method, trip.pk, cash, upi)
    notify_trip_event('payment_collected', trip, "Payment collected", {'payment_method': method})

    return TripResult(success=True, trip=trip, message="Payment recorded. Verify to complete the trip.")


@transaction.atomic
def verify_payment_and_end_trip(trip_id, driver_id) -> TripResult:
    """Re-check collected amounts against the fare, then complete the trip."""
    trip = load_trip(trip_id, for_update=True)
    ensure_assigned_driver(trip, driver_id)
    _require_end_verified(trip)
    if trip.payment_method is None or trip.payment_status != PaymentStatus.PAID:
        raise InvalidStateError("Payment has not been collected for this trip")

    reconcile(trip)
    complete_trip(trip, expected_driver_id=driver_id)
    return TripResult(success=True, trip=trip, message="Payment verified. Trip completed.")
