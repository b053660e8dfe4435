from datetime import timedelta

from django.db import models
from django.conf import settings
from django.utils import timezone


class TripStatus(models.TextChoices):
    REQUESTED = 'REQUESTED', 'Requested'
    ASSIGNED = 'ASSIGNED', 'Assigned'
    DRIVER_ON_THE_WAY = 'DRIVER_ON_THE_WAY', 'Driver on the way'
    IN_PROGRESS = 'IN_PROGRESS', 'In progress'
    COMPLETED = 'COMPLETED', 'Completed'
    CANCELLED_BY_CUSTOMER = 'CANCELLED_BY_CUSTOMER', 'Cancelled by customer'
    CANCELLED_BY_OFFICE = 'CANCELLED_BY_OFFICE', 'Cancelled by office'


class PaymentStatus(models.TextChoices):
    PENDING = 'PENDING', 'Pending'
    PAID = 'PAID', 'Paid'


class PaymentMethod(models.TextChoices):
    CASH = 'CASH', 'Cash'
    UPI = 'UPI', 'UPI'
    SPLIT = 'SPLIT', 'Cash + UPI'


class CarCategory(models.TextChoices):
    NORMAL = 'NORMAL', 'Normal'
    PREMIUM = 'PREMIUM', 'Premium'
    LUXURY = 'LUXURY', 'Luxury'


class CarGearType(models.TextChoices):
    MANUAL = 'MANUAL', 'Manual'
    AUTOMATIC = 'AUTOMATIC', 'Automatic'


class TripType(models.Model):
    """Rate card row used to quote and finalize trip fares."""

    PRICING_TIME = 'TIME'
    PRICING_DISTANCE = 'DISTANCE'
    PRICING_CHOICES = [
        (PRICING_TIME, 'Time based'),
        (PRICING_DISTANCE, 'Distance based'),
    ]

    name = models.CharField(max_length=100, unique=True)
    pricing_type = models.CharField(max_length=10, choices=PRICING_CHOICES, default=PRICING_TIME)
    base_amount = models.DecimalField(max_digits=10, decimal_places=2)
    base_duration_hours = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)
    base_distance_km = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    extra_per_hour = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    extra_per_half_hour = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    extra_per_km = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    premium_multiplier = models.DecimalField(max_digits=4, decimal_places=2, default=1)
    is_active = models.BooleanField(default=True)

    class Meta:
        db_table = 'trip_types'
        ordering = ['name']

    def __str__(self):
        return self.name


class Trip(models.Model):
    """One service engagement, from booking to completion."""

    franchise = models.ForeignKey(
        'franchises.Franchise',
        on_delete=models.PROTECT,
        related_name='trips',
    )
    trip_type = models.ForeignKey(TripType, on_delete=models.PROTECT, related_name='trips')

    # Customer contact
    customer_name = models.CharField(max_length=150)
    customer_phone = models.CharField(max_length=20)
    customer_email = models.EmailField(blank=True)

    # Pickup / drop
    pickup_address = models.TextField()
    pickup_latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    pickup_longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    drop_address = models.TextField(blank=True)
    drop_latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    drop_longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)

    # Vehicle requirement
    car_category = models.CharField(max_length=10, choices=CarCategory.choices, default=CarCategory.NORMAL)
    car_gear_type = models.CharField(max_length=10, choices=CarGearType.choices, null=True, blank=True)

    scheduled_at = models.DateTimeField(null=True, blank=True)

    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='assigned_trips',
    )
    status = models.CharField(max_length=30, choices=TripStatus.choices, default=TripStatus.REQUESTED)

    # Fare
    estimated_distance_km = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)
    estimated_duration_hours = models.DecimalField(max_digits=6, decimal_places=2, null=True, blank=True)
    base_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    extra_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    final_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)

    # Payment
    payment_status = models.CharField(max_length=10, choices=PaymentStatus.choices, default=PaymentStatus.PENDING)
    payment_method = models.CharField(max_length=10, choices=PaymentMethod.choices, null=True, blank=True)
    cash_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    upi_amount = models.DecimalField(max_digits=10, decimal_places=2, null=True, blank=True)
    upi_reference = models.CharField(max_length=100, blank=True)

    # Start evidence
    start_odometer = models.DecimalField(max_digits=10, decimal_places=1, null=True, blank=True)
    odometer_start_image = models.CharField(max_length=500, blank=True)
    car_front_image = models.CharField(max_length=500, blank=True)
    car_back_image = models.CharField(max_length=500, blank=True)
    driver_selfie = models.CharField(max_length=500, blank=True)
    start_time = models.DateTimeField(null=True, blank=True)
    started_at = models.DateTimeField(null=True, blank=True)

    # End evidence
    end_odometer = models.DecimalField(max_digits=10, decimal_places=1, null=True, blank=True)
    odometer_end_image = models.CharField(max_length=500, blank=True)
    car_end_front_image = models.CharField(max_length=500, blank=True)
    car_end_back_image = models.CharField(max_length=500, blank=True)
    end_time = models.DateTimeField(null=True, blank=True)
    end_verified_at = models.DateTimeField(null=True, blank=True)
    ended_at = models.DateTimeField(null=True, blank=True)
    distance_km = models.DecimalField(max_digits=10, decimal_places=1, null=True, blank=True)
    duration_hours = models.DecimalField(max_digits=8, decimal_places=2, null=True, blank=True)

    # Live location
    live_latitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    live_longitude = models.DecimalField(max_digits=9, decimal_places=6, null=True, blank=True)
    live_location_updated_at = models.DateTimeField(null=True, blank=True)

    # Cancellation
    cancelled_at = models.DateTimeField(null=True, blank=True)
    cancellation_reason = models.TextField(blank=True)

    created_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='created_trips',
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = 'trips'
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['franchise', 'status'], name='trips_franchise_status_idx'),
            models.Index(fields=['driver', 'status'], name='trips_driver_status_idx'),
        ]

    @property
    def estimated_fare(self):
        return self.base_amount + self.extra_amount

    def __str__(self):
        return f"Trip #{self.id} - {self.customer_name} - {self.status}"


class TripOfferStatus(models.TextChoices):
    OFFERED = 'OFFERED', 'Offered'
    ACCEPTED = 'ACCEPTED', 'Accepted'
    REJECTED = 'REJECTED', 'Rejected'
    EXPIRED = 'EXPIRED', 'Expired'
    CANCELLED = 'CANCELLED', 'Cancelled'


class TripOffer(models.Model):
    """One driver's time-bounded invitation for one trip."""

    trip = models.ForeignKey(Trip, on_delete=models.CASCADE, related_name='offers')
    driver = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name='trip_offers',
        limit_choices_to={'role': 'driver'},
    )
    status = models.CharField(max_length=20, choices=TripOfferStatus.choices, default=TripOfferStatus.OFFERED)

    offered_at = models.DateTimeField(default=timezone.now)
    expires_at = models.DateTimeField()
    accepted_at = models.DateTimeField(null=True, blank=True)
    rejected_at = models.DateTimeField(null=True, blank=True)
    responded_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = 'trip_offers'
        ordering = ['-offered_at']
        constraints = [
            # A (trip, driver) pair has at most one OFFERED row at a time
            models.UniqueConstraint(
                fields=['trip', 'driver'],
                condition=models.Q(status='OFFERED'),
                name='unique_live_offer_per_trip_driver',
            ),
        ]
        indexes = [
            models.Index(fields=['driver', 'status', 'expires_at'], name='trip_offers_driver_live_idx'),
        ]

    def is_live(self, now=None):
        now = now or timezone.now()
        return self.status == TripOfferStatus.OFFERED and self.expires_at > now

    def __str__(self):
        return f"Offer #{self.id} - Trip {self.trip_id} -> Driver {self.driver_id} ({self.status})"


class ChallengePurpose(models.TextChoices):
    START = 'start', 'Trip start'
    END = 'end', 'Trip end'


class VerificationChallenge(models.Model):
    """Single-use token + OTP pair gating trip start or end."""

    trip = models.ForeignKey(Trip, on_delete=models.CASCADE, related_name='challenges')
    purpose = models.CharField(max_length=10, choices=ChallengePurpose.choices)

    # SHA-256 of the bearer token handed to the driver device
    token_digest = models.CharField(max_length=64, unique=True)
    otp = models.CharField(max_length=8)

    expires_at = models.DateTimeField()
    consumed_at = models.DateTimeField(null=True, blank=True)

    # Bound evidence
    odometer_value = models.DecimalField(max_digits=10, decimal_places=1)
    evidence = models.JSONField(default=dict, blank=True)
    reported_at = models.DateTimeField()

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = 'trip_verification_challenges'
        ordering = ['-created_at']

    @property
    def is_consumed(self):
        return self.consumed_at is not None

    def is_expired(self, now=None):
        return self.expires_at <= (now or timezone.now())

    @staticmethod
    def default_expiry(now=None):
        ttl = settings.TRIP_VERIFICATION.get('CHALLENGE_TTL_SECONDS', 600)
        return (now or timezone.now()) + timedelta(seconds=ttl)

    def __str__(self):
        return f"Challenge #{self.id} - Trip {self.trip_id} ({self.purpose})"
