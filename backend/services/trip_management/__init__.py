"""
Trip management service - trip lifecycle, verification and payment.

This module handles:
    - Creating trips and manual assignment / reassignment
    - Rescheduling and cancelling trips
    - OTP gated trip start and end
    - Payment collection and completion
    - Querying trips and their activity
"""

from .exceptions import (
    TripServiceError,
    TripNotFoundError,
    OfferNotFoundError,
    ChallengeNotFoundError,
    InvalidStateError,
    UnauthorizedError,
    InvalidOtpError,
    ChallengeExpiredError,
    DriverIneligibleError,
    TripValidationError,
    OtpDeliveryError,
    PricingError,
)

from .trip_lifecycle import (
    TripResult,
    create_trip,
    assign_driver,
    reassign_driver,
    reschedule_trip,
    cancel_trip,
    end_trip_direct,
    mark_driver_on_the_way,
    reject_assigned_trip,
    update_live_location,
    get_trip,
    get_trip_activity,
    get_current_driver_trip,
)

from .verification import (
    ChallengeTicket,
    initiate_start,
    verify_and_start,
    initiate_end,
    verify_and_end,
)

from .payments import collect_payment, verify_payment_and_end_trip

__all__ = [
    # Lifecycle operations
    "TripResult",
    "create_trip",
    "assign_driver",
    "reassign_driver",
    "reschedule_trip",
    "cancel_trip",
    "end_trip_direct",
    "mark_driver_on_the_way",
    "reject_assigned_trip",
    "update_live_location",
    "get_trip",
    "get_trip_activity",
    "get_current_driver_trip",
    # Verification
    "ChallengeTicket",
    "initiate_start",
    "verify_and_start",
    "initiate_end",
    "verify_and_end",
    # Payment
    "collect_payment",
    "verify_payment_and_end_trip",
    # Exceptions
    "TripServiceError",
    "TripNotFoundError",
    "OfferNotFoundError",
    "ChallengeNotFoundError",
    "InvalidStateError",
    "UnauthorizedError",
    "InvalidOtpError",
    "ChallengeExpiredError",
    "DriverIneligibleError",
    "TripValidationError",
    "OtpDeliveryError",
    "PricingError",
]
