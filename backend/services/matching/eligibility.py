"""
Driver eligibility and ranking for a trip.

Read only. Safe to call without locks, including speculatively from views.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional

from django.utils import timezone

from common.utils import distance_between
from drivers.models import DriverProfile
from trips.models import CarCategory, Trip, TripStatus
from services.trip_management.exceptions import (
    DriverIneligibleError,
    InvalidStateError,
    TripNotFoundError,
)
from services.trip_management.state_machine import ACTIVE_STATUSES

logger = logging.getLogger(__name__)

# Trip category -> any of these in DriverProfile.car_types qualifies
CATEGORY_CAR_TYPES = {
    CarCategory.NORMAL: ('MANUAL', 'AUTOMATIC'),
    CarCategory.PREMIUM: ('PREMIUM_CARS', 'LUXURY_CARS'),
    CarCategory.LUXURY: ('LUXURY_CARS', 'PREMIUM_CARS'),
}

# Distance beyond this adds no further penalty to the match score
MAX_DISTANCE_PENALTY_KM = 50


@dataclass
class DriverCandidate:
    profile: DriverProfile
    distance_km: Optional[float]
    performance_score: float
    match_score: float

    @property
    def driver_id(self):
        return self.profile.user_id

    def to_dict(self):
        user = self.profile.user
        return {
            "driver_id": user.id,
            "username": user.username,
            "name": user.get_full_name(),
            "phone_number": user.phone_number,
            "vehicle_number": self.profile.vehicle_number,
            "current_rating": self.profile.current_rating,
            "distance_km": round(self.distance_km, 2) if self.distance_km is not None else None,
            "performance_score": self.performance_score,
            "match_score": self.match_score,
        }


def performance_score(profile: DriverProfile) -> float:
    """Rating and completion rate weighted 60/40, minus 5 per complaint, clamped to 0..100."""
    rating = float(profile.current_rating or 0)
    completion = float(profile.completion_rate or 0)
    score = (rating / 5.0) * 60 + (completion / 100.0) * 40 - 5 * profile.complaint_count
    return round(max(0.0, min(100.0, score)), 2)


def _match_score(performance: float, distance_km: Optional[float]) -> float:
    penalty = MAX_DISTANCE_PENALTY_KM if distance_km is None else min(distance_km, MAX_DISTANCE_PENALTY_KM)
    return round(performance - penalty, 2)


def _busy_driver_ids(driver_ids, exclude_trip_id=None):
    qs = Trip.objects.filter(driver_id__in=driver_ids, status__in=ACTIVE_STATUSES)
    if exclude_trip_id is not None:
        qs = qs.exclude(pk=exclude_trip_id)
    return set(qs.values_list('driver_id', flat=True))


def ineligibility_reason(trip: Trip, profile: Optional[DriverProfile], busy=None, today=None) -> Optional[str]:
    """
    Return why `profile` cannot take `trip`, or None if it can.

    `busy` is the precomputed set of driver ids with an active trip; it is
    looked up when not given.
    """
    if profile is None:
        return "Driver profile not found"

    today = today or timezone.localdate()

    if not profile.user.is_active:
        return "Driver account is disabled"
    if not profile.is_active or profile.status != 'ACTIVE':
        return "Driver is not active"
    if profile.banned_globally:
        return "Driver is banned"
    if profile.license_expiry is not None and profile.license_expiry < today:
        return "Driver license has expired"
    if profile.franchise_id != trip.franchise_id:
        return "Driver belongs to a different franchise"

    car_types = profile.car_types or []
    accepted = CATEGORY_CAR_TYPES.get(trip.car_category, ())
    if accepted and not any(car_type in car_types for car_type in accepted):
        return f"Driver does not drive {trip.car_category} cars"
    if trip.car_gear_type and trip.car_gear_type not in car_types:
        return f"Driver does not drive {trip.car_gear_type} cars"

    if profile.trip_status != DriverProfile.TRIP_STATUS_AVAILABLE:
        return "Driver is not available"
    if busy is None:
        busy = _busy_driver_ids([profile.user_id], exclude_trip_id=trip.pk)
    if profile.user_id in busy:
        return "Driver is already on a trip"

    if trip.franchise.attendance_tracking_enabled and not profile.is_checked_in:
        return "Driver is not checked in"

    limit = profile.remaining_daily_limit
    if limit is not None and Decimal(limit) < trip.estimated_fare:
        return "Driver has reached the daily limit"

    return None


def _candidate_profiles(trip: Trip):
    return (
        DriverProfile.objects
        .select_related('user')
        .filter(
            franchise_id=trip.franchise_id,
            is_active=True,
            status='ACTIVE',
            banned_globally=False,
            trip_status=DriverProfile.TRIP_STATUS_AVAILABLE,
            user__is_active=True,
        )
    )


def rank_candidates(trip: Trip, profiles) -> List[DriverCandidate]:
    """
    Filter `profiles` to the eligible ones and order them: known distance
    ascending first, unknown distance last, ties broken by performance
    descending.
    """
    profiles = list(profiles)
    busy = _busy_driver_ids([p.user_id for p in profiles], exclude_trip_id=trip.pk)
    today = timezone.localdate()
    pickup = (trip.pickup_latitude, trip.pickup_longitude)

    candidates = []
    for profile in profiles:
        reason = ineligibility_reason(trip, profile, busy=busy, today=today)
        if reason:
            logger.debug("Driver %s skipped for trip %s: %s", profile.user_id, trip.pk, reason)
            continue
        distance = distance_between(pickup, (profile.current_latitude, profile.current_longitude))
        performance = performance_score(profile)
        candidates.append(DriverCandidate(
            profile=profile,
            distance_km=distance,
            performance_score=performance,
            match_score=_match_score(performance, distance),
        ))

    candidates.sort(key=lambda c: (
        c.distance_km is None,
        c.distance_km if c.distance_km is not None else 0,
        -c.performance_score,
    ))
    return candidates


def find_eligible_drivers(trip_id) -> List[DriverCandidate]:
    """
    Ordered eligible drivers for an unassigned trip.

    Returns an empty list when nobody qualifies.

    Raises:
        TripNotFoundError: trip does not exist
        InvalidStateError: trip is not REQUESTED
    """
    if isinstance(trip_id, Trip):
        trip = trip_id
    else:
        try:
            trip = Trip.objects.select_related('franchise').get(pk=trip_id)
        except (Trip.DoesNotExist, ValueError, TypeError):
            raise TripNotFoundError(f"Trip {trip_id} not found")

    if trip.status != TripStatus.REQUESTED or trip.driver_id is not None:
        raise InvalidStateError(f"Trip {trip.pk} is {trip.status} and cannot be offered")

    candidates = rank_candidates(trip, _candidate_profiles(trip))
    logger.info("Trip %s has %d eligible driver(s)", trip.pk, len(candidates))
    return candidates


def check_driver_eligible(trip: Trip, driver_id) -> DriverProfile:
    """
    Re-check one driver against `trip` at call time.

    Raises:
        DriverIneligibleError: with the reason the driver failed
    """
    profile = (
        DriverProfile.objects.select_related('user')
        .filter(user_id=driver_id, user__role='driver')
        .first()
    )
    reason = ineligibility_reason(trip, profile)
    if reason:
        raise DriverIneligibleError(reason)
    return profile
