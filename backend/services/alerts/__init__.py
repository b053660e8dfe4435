"""
Activity log writer and the driver alert projection built on it.
"""

from .activity import log_activity
from .feed import DriverAlert, get_driver_alerts, DEFAULT_ALERT_LIMIT

__all__ = [
    "log_activity",
    "DriverAlert",
    "get_driver_alerts",
    "DEFAULT_ALERT_LIMIT",
]
