from django.conf import settings
from django.core.serializers.json import DjangoJSONEncoder
from django.db import models
from django.utils import timezone


class ActivityAction(models.TextChoices):
    TRIP_CREATED = 'TRIP_CREATED', 'Trip created'
    TRIP_OFFERED = 'TRIP_OFFERED', 'Trip offered'
    TRIP_ASSIGNED = 'TRIP_ASSIGNED', 'Trip assigned'
    TRIP_ACCEPTED = 'TRIP_ACCEPTED', 'Trip accepted'
    TRIP_REJECTED = 'TRIP_REJECTED', 'Trip rejected'
    TRIP_REASSIGNED = 'TRIP_REASSIGNED', 'Trip reassigned'
    TRIP_RESCHEDULED = 'TRIP_RESCHEDULED', 'Trip rescheduled'
    TRIP_CANCELLED = 'TRIP_CANCELLED', 'Trip cancelled'
    TRIP_STARTED = 'TRIP_STARTED', 'Trip started'
    TRIP_ENDED = 'TRIP_ENDED', 'Trip ended'
    TRIP_UPDATED = 'TRIP_UPDATED', 'Trip updated'


class ActivityEntityType(models.TextChoices):
    TRIP = 'TRIP', 'Trip'
    TRIP_OFFER = 'TRIP_OFFER', 'Trip offer'


class ActivityLog(models.Model):
    """Append-only record of something that happened to a trip or driver."""

    action = models.CharField(max_length=30, choices=ActivityAction.choices)
    entity_type = models.CharField(max_length=20, choices=ActivityEntityType.choices)
    entity_id = models.CharField(max_length=64)

    franchise = models.ForeignKey(
        'franchises.Franchise',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='activity',
    )
    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='activity_entries',
    )
    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='performed_activity',
    )
    trip = models.ForeignKey(
        'trips.Trip',
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='activity',
    )

    description = models.TextField(blank=True)
    metadata = models.JSONField(default=dict, blank=True, encoder=DjangoJSONEncoder)
    created_at = models.DateTimeField(default=timezone.now, db_index=True)

    class Meta:
        db_table = 'activity_logs'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['driver', 'action', 'created_at'], name='activity_driver_action_idx'),
        ]

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError("Activity log entries are append-only")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Activity log entries cannot be deleted")

    def __str__(self):
        return f"{self.action} {self.entity_type}#{self.entity_id}"
