"""Append-only activity log writer."""

import logging

from activity.models import ActivityLog, ActivityEntityType

logger = logging.getLogger(__name__)


def log_activity(action, trip=None, driver_id=None, actor=None, description="",
                 metadata=None, entity_type=ActivityEntityType.TRIP, entity_id=None):
    """
    Record one activity entry. Runs inside the caller's transaction so the
    entry commits or rolls back with the state change it describes.
    """
    if entity_id is None and trip is not None:
        entity_id = trip.pk

    entry = ActivityLog.objects.create(
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id) if entity_id is not None else "",
        franchise_id=getattr(trip, 'franchise_id', None),
        driver_id=driver_id,
        actor=actor if getattr(actor, 'pk', None) else None,
        trip=trip,
        description=description,
        metadata=metadata or {},
    )
    logger.debug("Activity %s for trip %s", action, getattr(trip, 'pk', None))
    return entry
