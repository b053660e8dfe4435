from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from accounts.models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Admin panel for custom User model"""

    list_display = [
        "username",
        "email",
        "role",
        "franchise",
        "phone_number",
        "is_active",
        "is_staff",
    ]

    list_filter = [
        "role",
        "franchise",
        "is_active",
        "is_staff",
    ]

    search_fields = [
        "username",
        "email",
        "phone_number",
    ]

    ordering = ("username",)

    # Extend default Django UserAdmin fieldsets
    fieldsets = BaseUserAdmin.fieldsets + (
        (
            "Dispatch",
            {
                "fields": (
                    "role",
                    "franchise",
                    "phone_number",
                )
            },
        ),
    )

    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        (
            "Dispatch",
            {
                "fields": (
                    "role",
                    "franchise",
                    "phone_number",
                )
            },
        ),
    )
