from django.contrib import admin
from franchises.models import Franchise


@admin.register(Franchise)
class FranchiseAdmin(admin.ModelAdmin):
    list_display = ["name", "code", "is_active", "attendance_tracking_enabled", "offer_ttl_seconds", "max_offer_attempts"]
    list_filter = ["is_active", "attendance_tracking_enabled"]
    search_fields = ["name", "code"]
