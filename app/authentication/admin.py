"""
Django admin configuration for authentication models.

Account suspension is an admin action here; the reliability counter only
signals that a freelancer should be suspended.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin

from authentication.models import AccountStatus, Profile, User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Admin configuration for User with marketplace role and status."""

    list_display = (
        "email",
        "role",
        "account_status",
        "is_verified_freelancer",
        "email_verified",
        "is_active",
        "date_joined",
    )
    list_filter = (
        "role",
        "account_status",
        "is_verified_freelancer",
        "is_active",
        "is_staff",
    )
    search_fields = ("email",)
    ordering = ("-date_joined",)
    actions = ["suspend_accounts", "reactivate_accounts"]

    fieldsets = (
        (None, {"fields": ("email", "password")}),
        (
            "Marketplace",
            {"fields": ("role", "account_status", "is_verified_freelancer")},
        ),
        (
            "Status",
            {"fields": ("email_verified", "is_active", "is_staff", "is_superuser")},
        ),
        ("Permissions", {"fields": ("groups", "user_permissions")}),
        ("Important dates", {"fields": ("date_joined", "last_login")}),
    )
    readonly_fields = ("date_joined", "last_login")

    add_fieldsets = (
        (
            None,
            {
                "classes": ("wide",),
                "fields": ("email", "role", "password1", "password2"),
            },
        ),
    )

    @admin.action(description="Suspend selected accounts")
    def suspend_accounts(self, request, queryset):
        updated = queryset.update(account_status=AccountStatus.SUSPENDED)
        self.message_user(request, f"{updated} account(s) suspended.")

    @admin.action(description="Reactivate selected accounts")
    def reactivate_accounts(self, request, queryset):
        updated = queryset.update(account_status=AccountStatus.ACTIVE)
        self.message_user(request, f"{updated} account(s) reactivated.")


@admin.register(Profile)
class ProfileAdmin(admin.ModelAdmin):
    list_display = ("user", "first_name", "last_name", "min_lead_time_hours", "max_bookings_per_day")
    search_fields = ("user__email", "first_name", "last_name")
    raw_id_fields = ("user",)
