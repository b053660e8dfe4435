"""Tells what to show in the Django admin interface for trips app"""

from django.contrib import admin
from .models import Trip, TripOffer, TripType, VerificationChallenge


@admin.register(TripType)
class TripTypeAdmin(admin.ModelAdmin):
    list_display = ['name', 'pricing_type', 'base_amount', 'premium_multiplier', 'is_active']
    list_filter = ['pricing_type', 'is_active']


@admin.register(Trip)
class TripAdmin(admin.ModelAdmin):
    """Trip admin"""
    list_display = ['id', 'franchise', 'customer_name', 'driver', 'status', 'payment_status', 'scheduled_at', 'created_at']
    list_filter = ['status', 'payment_status', 'franchise', 'car_category']
    search_fields = ['customer_name', 'customer_phone', 'driver__username', 'pickup_address']
    readonly_fields = ['created_at', 'updated_at', 'started_at', 'end_verified_at', 'ended_at', 'cancelled_at']
    date_hierarchy = 'created_at'


@admin.register(TripOffer)
class TripOfferAdmin(admin.ModelAdmin):
    list_display = ("trip", "driver", "status", "offered_at", "expires_at", "responded_at")
    list_filter = ("status",)
    search_fields = ("trip__id", "driver__username")


@admin.register(VerificationChallenge)
class VerificationChallengeAdmin(admin.ModelAdmin):
    list_display = ("trip", "purpose", "created_at", "expires_at", "consumed_at")
    list_filter = ("purpose",)
    exclude = ("token_digest", "otp")
