"""
Periodic sweep for overdue offers.

Correctness never depends on this running: accept and the pending-offer
query compare expires_at themselves. The sweep keeps rows tidy and gives
trips whose offers all lapsed another round with drivers not yet asked.
"""

import logging
from typing import Tuple

from django.conf import settings
from django.db import transaction
from django.utils import timezone

from trips.models import TripOffer, TripOfferStatus, TripStatus
from services.trip_management.exceptions import TripServiceError
from realtime.notifications import driver_group, publish_on_commit
from .offer_dispatch import expire_overdue_offers, request_trip_to_all_eligible_drivers

logger = logging.getLogger(__name__)


def expire_stale_offers(now=None, redispatch=True) -> Tuple[int, int]:
    """
    Expire overdue offers and re-dispatch trips left without a live offer.

    Returns:
        (expired_count, redispatched_trip_count)
    """
    now = now or timezone.now()

    with transaction.atomic():
        expired = expire_overdue_offers(now=now)
        for offer in expired:
            publish_on_commit(driver_group(offer.driver_id), {
                "type": "offer_expired",
                "trip_id": offer.trip_id,
                "offer_id": offer.pk,
                "message": "Your trip offer has timed out.",
            })

    if not expired:
        return 0, 0

    redispatched = 0
    if redispatch and settings.TRIP_DISPATCH.get('REDISPATCH_ON_EXHAUSTION', True):
        trip_ids = {offer.trip_id for offer in expired if offer.trip.status == TripStatus.REQUESTED}
        for trip_id in sorted(trip_ids):
            has_live = TripOffer.objects.filter(
                trip_id=trip_id,
                status=TripOfferStatus.OFFERED,
                expires_at__gt=now,
            ).exists()
            if has_live:
                continue
            try:
                if request_trip_to_all_eligible_drivers(trip_id):
                    redispatched += 1
            except TripServiceError as e:
                logger.debug("Trip %s not re-dispatched: %s", trip_id, e)

    logger.info("Offer sweep expired %d offer(s), re-dispatched %d trip(s)", len(expired), redispatched)
    return len(expired), redispatched
