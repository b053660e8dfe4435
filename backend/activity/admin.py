from django.contrib import admin
from activity.models import ActivityLog


@admin.register(ActivityLog)
class ActivityLogAdmin(admin.ModelAdmin):
    list_display = ["created_at", "action", "entity_type", "entity_id", "driver", "trip", "franchise"]
    list_filter = ["action", "entity_type", "franchise"]
    search_fields = ["entity_id", "description", "driver__username"]
    readonly_fields = [f.name for f in ActivityLog._meta.fields]

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
