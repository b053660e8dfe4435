from django.contrib import admin
from drivers.models import DriverProfile


@admin.register(DriverProfile)
class DriverProfileAdmin(admin.ModelAdmin):
    """Admin panel for managing Driver Profiles"""

    list_display = [
        "user",
        "franchise",
        "vehicle_number",
        "status",
        "trip_status",
        "is_checked_in",
        "remaining_daily_limit",
        "current_rating",
        "last_location_update",
    ]

    list_filter = [
        "franchise",
        "status",
        "trip_status",
        "banned_globally",
    ]

    search_fields = [
        "user__username",
        "vehicle_number",
    ]

    readonly_fields = [
        "last_location_update",
    ]

    ordering = ("user__username",)
