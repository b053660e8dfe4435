"""
Driver matching and offer dispatch service.

This module handles:
    - Ranking eligible drivers for a trip
    - Fanning out time-bounded offers to drivers
    - Resolving accept / reject races
    - Expiring overdue offers and re-dispatching
"""

from .eligibility import DriverCandidate, find_eligible_drivers, check_driver_eligible
from .offer_dispatch import (
    request_trip_to_all_eligible_drivers,
    request_trip_to_eligible_driver_now,
    request_trip_to_eligible_drivers_now,
    accept_trip_offer,
    reject_trip_offer,
    list_pending_offers_for_driver,
)
from .offer_expiry import expire_stale_offers

__all__ = [
    "DriverCandidate",
    "find_eligible_drivers",
    "check_driver_eligible",
    "request_trip_to_all_eligible_drivers",
    "request_trip_to_eligible_driver_now",
    "request_trip_to_eligible_drivers_now",
    "accept_trip_offer",
    "reject_trip_offer",
    "list_pending_offers_for_driver",
    "expire_stale_offers",
]
