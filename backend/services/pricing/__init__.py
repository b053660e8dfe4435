"""
Rate-card pricing.

`quote` is a pure function over a TripType row; the lifecycle code resolves it
through settings.TRIP_RATE_CARD so deployments can plug in their own card.
"""

import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from django.conf import settings
from django.utils.module_loading import import_string

from trips.models import CarCategory, TripType
from services.trip_management.exceptions import PricingError

logger = logging.getLogger(__name__)

TWO_PLACES = Decimal('0.01')
HALF_HOUR = Decimal('0.5')


@dataclass
class Quote:
    base_amount: Decimal
    extra_amount: Decimal

    @property
    def total(self) -> Decimal:
        return self.base_amount + self.extra_amount


def _to_decimal(value, name) -> Optional[Decimal]:
    if value is None:
        return None
    try:
        value = Decimal(str(value))
    except ArithmeticError:
        raise PricingError(f"Invalid {name}: {value!r}")
    if value < 0:
        raise PricingError(f"{name.capitalize()} cannot be negative")
    return value


def quote(trip_type, car_category=CarCategory.NORMAL, distance=None, duration=None) -> Quote:
    """
    Price a trip from its rate card.

    Args:
        trip_type: TripType instance or primary key
        car_category: NORMAL, PREMIUM or LUXURY
        distance: travelled / estimated km (DISTANCE pricing)
        duration: elapsed / estimated hours (TIME pricing)

    Returns:
        Quote with base and extra components; premium adjustment is folded
        into the extra component.
    """
    if not isinstance(trip_type, TripType):
        try:
            trip_type = TripType.objects.get(pk=trip_type, is_active=True)
        except (TripType.DoesNotExist, ValueError, TypeError):
            raise PricingError(f"Trip type {trip_type} not found")

    distance = _to_decimal(distance, 'distance')
    duration = _to_decimal(duration, 'duration')

    base = trip_type.base_amount
    extra = Decimal('0')

    if trip_type.pricing_type == TripType.PRICING_TIME:
        if duration is not None and trip_type.base_duration_hours is not None:
            over = duration - trip_type.base_duration_hours
            if over > 0:
                full_hours = int(over)
                extra += full_hours * trip_type.extra_per_hour
                if over - full_hours >= HALF_HOUR:
                    extra += trip_type.extra_per_half_hour
    elif trip_type.pricing_type == TripType.PRICING_DISTANCE:
        if distance is not None and trip_type.base_distance_km is not None:
            over = distance - trip_type.base_distance_km
            if over > 0:
                extra += over * trip_type.extra_per_km

    if car_category in (CarCategory.PREMIUM, CarCategory.LUXURY):
        extra += (base + extra) * (trip_type.premium_multiplier - 1)

    result = Quote(
        base_amount=base.quantize(TWO_PLACES, rounding=ROUND_HALF_UP),
        extra_amount=extra.quantize(TWO_PLACES, rounding=ROUND_HALF_UP),
    )
    logger.debug(
        "Quoted %s (%s) distance=%s duration=%s -> %s + %s",
        trip_type.name, car_category, distance, duration,
        result.base_amount, result.extra_amount,
    )
    return result


def get_rate_card():
    """Return the configured rate-card callable."""
    path = getattr(settings, 'TRIP_RATE_CARD', 'services.pricing.quote')
    return import_string(path)
