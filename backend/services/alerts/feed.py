"""
Per-driver alert feed.

Built at query time from two sources: the driver's live offers and the
driver's recent activity entries. Nothing is cached, so the feed cannot
drift from the offer and activity tables.
"""

from dataclasses import dataclass, field, asdict
from datetime import datetime
from typing import Any, Dict, List, Optional

from django.utils import timezone

from activity.models import ActivityAction, ActivityLog
from trips.models import TripOffer, TripOfferStatus

DEFAULT_ALERT_LIMIT = 50

INCOMING_REQUEST = 'INCOMING_REQUEST'

# action -> (alert type, title, message)
ACTIVITY_ALERTS = {
    ActivityAction.TRIP_ASSIGNED: ('TRIP_ASSIGNED', 'Trip Assigned', 'A trip has been assigned to you.'),
    ActivityAction.TRIP_ACCEPTED: ('TRIP_ACCEPTED', 'Trip Accepted', 'You accepted a trip request.'),
    ActivityAction.TRIP_REJECTED: ('TRIP_REJECTED', 'Trip Rejected', 'A trip request was declined.'),
    ActivityAction.TRIP_STARTED: ('TRIP_STARTED', 'Trip Started', 'Your trip has started.'),
    ActivityAction.TRIP_ENDED: ('TRIP_ENDED', 'Trip Completed', 'Your trip has been completed.'),
}


@dataclass
class DriverAlert:
    id: str
    type: str
    title: str
    message: str
    trip_id: Optional[int]
    created_at: datetime
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self):
        return asdict(self)


def _offer_alerts(driver_id, now) -> List[DriverAlert]:
    offers = (
        TripOffer.objects
        .filter(driver_id=driver_id, status=TripOfferStatus.OFFERED, expires_at__gt=now)
        .select_related('trip')
    )
    alerts = []
    for offer in offers:
        trip = offer.trip
        alerts.append(DriverAlert(
            id=f"offer-{offer.id}",
            type=INCOMING_REQUEST,
            title='New Trip Request',
            message=f"Pickup: {trip.pickup_address}",
            trip_id=trip.id,
            created_at=offer.offered_at,
            data={
                'offer_id': offer.id,
                'expires_at': offer.expires_at,
                'scheduled_at': trip.scheduled_at,
                'customer_name': trip.customer_name,
            },
        ))
    return alerts


def _activity_alerts(driver_id, limit) -> List[DriverAlert]:
    entries = (
        ActivityLog.objects
        .filter(driver_id=driver_id, action__in=list(ACTIVITY_ALERTS))
        .order_by('-created_at')[:limit]
    )
    alerts = []
    for entry in entries:
        alert_type, title, message = ACTIVITY_ALERTS[entry.action]
        alerts.append(DriverAlert(
            id=f"activity-{entry.id}",
            type=alert_type,
            title=title,
            message=message,
            trip_id=entry.trip_id,
            created_at=entry.created_at,
            data={'description': entry.description},
        ))
    return alerts


def get_driver_alerts(driver_id, limit=DEFAULT_ALERT_LIMIT, now=None) -> List[DriverAlert]:
    """Live offers and recent activity for one driver, newest first."""
    now = now or timezone.now()
    limit = max(int(limit), 0)
    if limit == 0:
        return []
    alerts = _offer_alerts(driver_id, now) + _activity_alerts(driver_id, limit)
    alerts.sort(key=lambda alert: alert.created_at, reverse=True)
    return alerts[:limit]
