"""
Services package - Business logic layer.

This package contains all business logic services that operate on Django models
but are decoupled from the HTTP/WebSocket layer.

Modules:
    - trip_management: Trip lifecycle, OTP verification and payment
    - matching: Driver eligibility, offer dispatch and offer expiry
    - alerts: Activity log writer and the driver alert feed
    - pricing: Rate card quotes
"""

# Expose commonly used functions at package level
from .matching import (
    find_eligible_drivers,
    request_trip_to_all_eligible_drivers,
    accept_trip_offer,
    reject_trip_offer,
    expire_stale_offers,
)
from .trip_management import (
    create_trip,
    assign_driver,
    reassign_driver,
    cancel_trip,
    verify_and_start,
    verify_and_end,
    TripServiceError,
)

__all__ = [
    # Matching
    "find_eligible_drivers",
    "request_trip_to_all_eligible_drivers",
    "accept_trip_offer",
    "reject_trip_offer",
    "expire_stale_offers",
    # Trip management
    "create_trip",
    "assign_driver",
    "reassign_driver",
    "cancel_trip",
    "verify_and_start",
    "verify_and_end",
    # Exceptions
    "TripServiceError",
]
