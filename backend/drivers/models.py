from django.db import models
from django.conf import settings

User = settings.AUTH_USER_MODEL


class DriverProfile(models.Model):
    """Driver-specific details, eligibility flags and live availability"""

    EMPLOYMENT_STATUS_CHOICES = [
        ('ACTIVE', 'Active'),
        ('INACTIVE', 'Inactive'),
        ('BLOCKED', 'Blocked'),
        ('TERMINATED', 'Terminated'),
    ]

    TRIP_STATUS_AVAILABLE = 'available'
    TRIP_STATUS_ON_TRIP = 'on_trip'
    TRIP_STATUS_OFFLINE = 'offline'
    TRIP_STATUS_CHOICES = [
        (TRIP_STATUS_AVAILABLE, 'Available'),
        (TRIP_STATUS_ON_TRIP, 'On Trip'),
        (TRIP_STATUS_OFFLINE, 'Offline'),
    ]

    # Values stored in car_types
    CAR_TYPE_CHOICES = ['MANUAL', 'AUTOMATIC', 'PREMIUM_CARS', 'LUXURY_CARS']

    user = models.OneToOneField(User, on_delete=models.CASCADE, related_name='driver_profile')
    franchise = models.ForeignKey(
        'franchises.Franchise',
        on_delete=models.PROTECT,
        related_name='drivers',
    )
    vehicle_number = models.CharField(max_length=20, blank=True)

    # Employment & eligibility
    status = models.CharField(max_length=20, choices=EMPLOYMENT_STATUS_CHOICES, default='ACTIVE')
    is_active = models.BooleanField(default=True)
    banned_globally = models.BooleanField(default=False)
    license_expiry = models.DateField(null=True, blank=True)
    car_types = models.JSONField(default=list, blank=True)

    # Availability
    trip_status = models.CharField(max_length=20, choices=TRIP_STATUS_CHOICES, default=TRIP_STATUS_OFFLINE)
    is_checked_in = models.BooleanField(default=False)
    # NULL means no daily earning cap
    remaining_daily_limit = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)

    # Performance inputs for ranking
    current_rating = models.DecimalField(max_digits=3, decimal_places=2, default=0)
    completion_rate = models.DecimalField(max_digits=5, decimal_places=2, default=100)
    complaint_count = models.PositiveIntegerField(default=0)

    # Last known location
    current_latitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    current_longitude = models.DecimalField(max_digits=10, decimal_places=6, null=True, blank=True)
    last_location_update = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'driver_profiles'

    @property
    def has_location(self):
        return self.current_latitude is not None and self.current_longitude is not None

    def __str__(self):
        return f"{self.user.username} - {self.vehicle_number}"
