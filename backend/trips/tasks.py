"""Celery tasks for trip notifications and offer housekeeping."""

import logging

from celery import shared_task

logger = logging.getLogger(__name__)


@shared_task(ignore_result=True)
def deliver_trip_event(group: str, payload: dict):
    """
    Push one trip event to a channel group.

    Queued after the owning transaction commits. A failed delivery is logged
    and dropped; it is never retried.
    """
    from realtime.notifications import publish

    delivered = publish(group, payload)
    if not delivered:
        logger.info("Trip event %s for %s was not delivered", payload.get("type"), group)
    return delivered


@shared_task(ignore_result=True)
def expire_stale_offers_task():
    """
    Periodic sweep: mark overdue offers EXPIRED and re-dispatch trips that ran
    out of live offers. Not needed for correctness since every read path
    checks expires_at itself.
    """
    from services.matching import expire_stale_offers

    try:
        expired, redispatched = expire_stale_offers()
    except Exception:
        logger.exception("Offer expiry sweep failed")
        return None

    if expired:
        logger.info("Expired %d offer(s); re-dispatched %d trip(s)", expired, redispatched)
    return expired, redispatched
