from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from .models import User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    list_display = (
        "username", "email", "full_name", "role", "auth_provider",
        "is_email_verified", "is_staff", "is_active", "date_joined",
    )
    list_filter = ("role", "auth_provider", "is_email_verified", "is_staff", "is_superuser", "is_active")
    search_fields = ("username", "email", "full_name")
    ordering = ("-date_joined",)

    fieldsets = BaseUserAdmin.fieldsets + (
        ("Profile", {
            "fields": (
                "full_name", "role", "auth_provider", "is_email_verified",
                "email_verification_code", "email_verification_expires_at", "verification_sent_at",
            )
        }),
    )
    add_fieldsets = BaseUserAdmin.add_fieldsets + (
        ("Profile", {
            "classes": ("wide",),
            "fields": ("email", "full_name", "role"),
        }),
    )
    readonly_fields = ("verification_sent_at",)
