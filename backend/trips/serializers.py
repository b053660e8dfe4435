from rest_framework import serializers

from activity.models import ActivityLog
from drivers.serializers import DriverBasicSerializer
from .models import (
    CarCategory,
    CarGearType,
    PaymentMethod,
    Trip,
    TripOffer,
    TripType,
)


class TripTypeSerializer(serializers.ModelSerializer):

    class Meta:
        model = TripType
        fields = [
            'id', 'name', 'pricing_type', 'base_amount', 'base_duration_hours',
            'base_distance_km', 'extra_per_hour', 'extra_per_half_hour',
            'extra_per_km', 'premium_multiplier',
        ]


class TripSerializer(serializers.ModelSerializer):
    """Serializer for Trips (REST responses and realtime payloads)"""
    driver = serializers.SerializerMethodField()
    trip_type_name = serializers.CharField(source='trip_type.name', read_only=True)
    estimated_fare = serializers.DecimalField(max_digits=10, decimal_places=2, read_only=True)

    class Meta:
        model = Trip
        fields = [
            'id', 'franchise', 'trip_type', 'trip_type_name', 'status',
            'customer_name', 'customer_phone', 'customer_email',
            'pickup_address', 'pickup_latitude', 'pickup_longitude',
            'drop_address', 'drop_latitude', 'drop_longitude',
            'car_category', 'car_gear_type', 'scheduled_at',
            'driver_id', 'driver',
            'estimated_distance_km', 'estimated_duration_hours',
            'base_amount', 'extra_amount', 'estimated_fare', 'final_amount',
            'payment_status', 'payment_method', 'cash_amount', 'upi_amount', 'upi_reference',
            'start_odometer', 'start_time', 'started_at',
            'end_odometer', 'end_time', 'end_verified_at', 'ended_at',
            'distance_km', 'duration_hours',
            'live_latitude', 'live_longitude', 'live_location_updated_at',
            'cancelled_at', 'cancellation_reason',
            'created_at', 'updated_at',
        ]
        read_only_fields = fields

    def get_driver(self, obj):
        if obj.driver_id is None:
            return None
        profile = getattr(obj.driver, 'driver_profile', None)
        if profile is None:
            return {'id': None, 'username': obj.driver.username}
        return DriverBasicSerializer(profile).data


class TripCreateSerializer(serializers.Serializer):
    """Input for creating a trip from the office"""
    franchise = serializers.IntegerField(required=False)
    trip_type = serializers.IntegerField()
    customer_name = serializers.CharField(max_length=150)
    customer_phone = serializers.CharField(max_length=20)
    customer_email = serializers.EmailField(required=False, allow_blank=True)
    pickup_address = serializers.CharField()
    pickup_latitude = serializers.DecimalField(max_digits=9, decimal_places=6, required=False, allow_null=True)
    pickup_longitude = serializers.DecimalField(max_digits=9, decimal_places=6, required=False, allow_null=True)
    drop_address = serializers.CharField(required=False, allow_blank=True)
    drop_latitude = serializers.DecimalField(max_digits=9, decimal_places=6, required=False, allow_null=True)
    drop_longitude = serializers.DecimalField(max_digits=9, decimal_places=6, required=False, allow_null=True)
    car_category = serializers.ChoiceField(choices=CarCategory.choices, default=CarCategory.NORMAL)
    car_gear_type = serializers.ChoiceField(choices=CarGearType.choices, required=False, allow_null=True)
    scheduled_at = serializers.DateTimeField(required=False, allow_null=True)
    estimated_distance_km = serializers.DecimalField(max_digits=8, decimal_places=2, required=False, allow_null=True)
    estimated_duration_hours = serializers.DecimalField(max_digits=6, decimal_places=2, required=False, allow_null=True)
    dispatch = serializers.BooleanField(required=False, allow_null=True, default=None)


class TripOfferSerializer(serializers.ModelSerializer):
    trip = TripSerializer(read_only=True)

    class Meta:
        model = TripOffer
        fields = ['id', 'trip', 'driver', 'status', 'offered_at', 'expires_at',
                  'accepted_at', 'rejected_at', 'responded_at']
        read_only_fields = fields


class ActivityLogSerializer(serializers.ModelSerializer):
    actor = serializers.CharField(source='actor.username', read_only=True, default=None)

    class Meta:
        model = ActivityLog
        fields = ['id', 'action', 'entity_type', 'entity_id', 'trip', 'driver',
                  'actor', 'description', 'metadata', 'created_at']
        read_only_fields = fields


# ---------------------- Action payloads ----------------------

class DriverChoiceSerializer(serializers.Serializer):
    driver_id = serializers.IntegerField()


class DriverListSerializer(serializers.Serializer):
    driver_ids = serializers.ListField(child=serializers.IntegerField(), allow_empty=False)


class ReassignSerializer(serializers.Serializer):
    driver_id = serializers.IntegerField()
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class RescheduleSerializer(serializers.Serializer):
    scheduled_at = serializers.DateTimeField()


class TripCancelSerializer(serializers.Serializer):
    """Serializer for trip cancellation"""
    cancelled_by = serializers.ChoiceField(choices=['office', 'customer'], default='office')
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class DirectEndSerializer(serializers.Serializer):
    end_odometer = serializers.DecimalField(max_digits=10, decimal_places=1)
    end_time = serializers.DateTimeField(required=False, allow_null=True)


class RejectTripSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class StartInitiateSerializer(serializers.Serializer):
    odometer_value = serializers.DecimalField(max_digits=10, decimal_places=1)
    start_time = serializers.DateTimeField(required=False, allow_null=True)
    odometer_image = serializers.CharField(max_length=500)
    car_front_image = serializers.CharField(max_length=500)
    car_back_image = serializers.CharField(max_length=500)
    driver_selfie = serializers.CharField(max_length=500)


class EndInitiateSerializer(serializers.Serializer):
    odometer_value = serializers.DecimalField(max_digits=10, decimal_places=1)
    end_time = serializers.DateTimeField(required=False, allow_null=True)
    odometer_image = serializers.CharField(max_length=500)
    car_front_image = serializers.CharField(max_length=500)
    car_back_image = serializers.CharField(max_length=500)


class VerifySerializer(serializers.Serializer):
    token = serializers.CharField()
    otp = serializers.CharField()
    await_payment = serializers.BooleanField(required=False, default=False)


class CollectPaymentSerializer(serializers.Serializer):
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices)
    cash_amount = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, allow_null=True)
    upi_amount = serializers.DecimalField(max_digits=10, decimal_places=2, required=False, allow_null=True)
    upi_reference = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")


class LiveLocationSerializer(serializers.Serializer):
    latitude = serializers.DecimalField(max_digits=9, decimal_places=6)
    longitude = serializers.DecimalField(max_digits=9, decimal_places=6)
