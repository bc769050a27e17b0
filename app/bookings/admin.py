"""
Booking admin configuration.

Bookings are read-mostly here: status and money fields change only through
BookingService, so they are read-only and deletion is disabled to keep the
audit trail intact.
"""

from django.contrib import admin

from bookings.models import (
    Booking,
    BookingAuditLog,
    FreelancerCancellation,
    RescheduleRequest,
    Service,
)


@admin.register(Service)
class ServiceAdmin(admin.ModelAdmin):
    list_display = ["title", "freelancer", "price_display", "duration_minutes", "materials_policy", "is_active"]
    list_filter = ["is_active", "materials_policy"]
    search_fields = ["title", "freelancer__email"]
    raw_id_fields = ["freelancer"]

    def price_display(self, obj: Service) -> str:
        return f"£{obj.base_price_pence / 100:.2f}"

    price_display.short_description = "Base price"


class BookingAuditLogInline(admin.TabularInline):
    """Inline display of a booking's transitions."""

    model = BookingAuditLog
    extra = 0
    readonly_fields = ["action", "actor", "old_status", "new_status", "details", "created_at"]
    can_delete = False

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "client",
        "freelancer",
        "scheduled_start",
        "total_display",
        "status",
        "payment_status",
        "created_at",
    ]
    list_filter = ["status", "payment_status", "location_type", "created_at"]
    search_fields = ["id", "client__email", "freelancer__email"]
    raw_id_fields = ["client", "freelancer", "service"]
    readonly_fields = [
        "id",
        "status",
        "payment_status",
        "base_price_pence",
        "materials_price_pence",
        "travel_price_pence",
        "platform_fee_pence",
        "total_pence",
        "expires_at",
        "auto_confirm_at",
        "completed_at",
        "cancelled_by",
        "cancelled_at",
        "declined_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    inlines = [BookingAuditLogInline]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "client", "freelancer", "service", "status", "payment_status"),
            },
        ),
        (
            "Schedule",
            {
                "fields": ("scheduled_start", "scheduled_end", "location_type", "address"),
            },
        ),
        (
            "Price",
            {
                "fields": (
                    "client_provides_materials",
                    "base_price_pence",
                    "materials_price_pence",
                    "travel_price_pence",
                    "platform_fee_pence",
                    "total_pence",
                ),
            },
        ),
        (
            "Timers",
            {
                "fields": ("expires_at", "auto_confirm_at", "completed_at"),
            },
        ),
        (
            "Cancellation",
            {
                "fields": (
                    "cancelled_by",
                    "cancellation_reason",
                    "cancelled_at",
                    "declined_reason",
                    "declined_at",
                ),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at"),
            },
        ),
    )

    def total_display(self, obj: Booking) -> str:
        return f"£{obj.total_pence / 100:.2f}"

    total_display.short_description = "Total"

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for bookings (audit trail)."""
        return False


@admin.register(FreelancerCancellation)
class FreelancerCancellationAdmin(admin.ModelAdmin):
    list_display = ["freelancer", "booking", "hours_before_service", "is_last_minute", "created_at"]
    list_filter = ["is_last_minute"]
    search_fields = ["freelancer__email"]
    raw_id_fields = ["freelancer", "booking"]


@admin.register(RescheduleRequest)
class RescheduleRequestAdmin(admin.ModelAdmin):
    list_display = ["booking", "requested_by", "original_start", "proposed_start", "status", "created_at"]
    list_filter = ["status"]
    search_fields = ["booking__id", "requested_by__email"]
    raw_id_fields = ["booking", "requested_by", "responded_by"]
    readonly_fields = ["status", "responded_by", "responded_at", "created_at", "updated_at"]
