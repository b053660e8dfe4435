from django.db import models


class Franchise(models.Model):
    """A dispatch office. Drivers, staff and trips are scoped to one franchise."""

    name = models.CharField(max_length=150)
    code = models.CharField(max_length=20, unique=True)
    is_active = models.BooleanField(default=True)

    # Drivers must be checked in to receive trips when enabled
    attendance_tracking_enabled = models.BooleanField(default=False)

    # Dispatch overrides; NULL falls back to settings.TRIP_DISPATCH
    offer_ttl_seconds = models.PositiveIntegerField(null=True, blank=True)
    max_offer_attempts = models.PositiveIntegerField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'franchises'
        ordering = ['name']

    def __str__(self):
        return f"{self.name} ({self.code})"
