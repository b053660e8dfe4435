import logging
import os

import redis
from django.utils import timezone
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework import status
from channels.layers import get_channel_layer

from app_backend.celery import app as celery_app
from trips.models import TripOffer, TripOfferStatus
from trips.tasks import deliver_trip_event, expire_stale_offers_task

logger = logging.getLogger(__name__)


def _check_database():
    live = TripOffer.objects.filter(status=TripOfferStatus.OFFERED, expires_at__gt=timezone.now()).count()
    return {"live_offers": live}


def _check_redis():
    client = redis.Redis.from_url(os.getenv("REDIS_URL", "redis://localhost:6379/0"), socket_timeout=3)
    client.ping()


def _check_channel_layer():
    if get_channel_layer() is None:
        raise RuntimeError("no channel layer configured")


def _check_celery():
    missing = [t.name for t in (deliver_trip_event, expire_stale_offers_task) if t.name not in celery_app.tasks]
    if missing:
        raise RuntimeError(f"tasks not registered: {', '.join(missing)}")


HEALTH_CHECKS = (
    ("database", _check_database),
    ("redis", _check_redis),
    ("channels", _check_channel_layer),
    ("celery", _check_celery),
)


@api_view(["GET"])
@permission_classes([AllowAny])
def health_check(request):
    """Report the state of every backing service the dispatcher needs."""
    services = {}
    healthy = True

    for name, check in HEALTH_CHECKS:
        try:
            details = check()
        except Exception as e:
            logger.warning("Health check %s failed: %s", name, e)
            services[name] = f"unhealthy: {e}"
            healthy = False
            continue
        services[name] = {"status": "healthy", **details} if details else "healthy"

    return Response(
        {
            "status": "healthy" if healthy else "unhealthy",
            "timestamp": timezone.now().isoformat(),
            "services": services,
        },
        status=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
    )
