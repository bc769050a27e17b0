"""
Payment admin configuration.

Registers payments, payout accounts, payouts, webhook events and the
platform settings singleton. Money and status fields change only through
EscrowService and PayoutService, so they are read-only here and deletion
is disabled for anything that carries audit history.
"""

from django.contrib import admin, messages

from core.exceptions import BaseApplicationError
from payments.models import (
    Payment,
    Payout,
    PayoutAccount,
    PayoutAuditLog,
    PlatformSettings,
    WebhookEvent,
)
from payments.services import PayoutService


def pounds(pence: int) -> str:
    return f"£{pence / 100:.2f}"


@admin.register(Payment)
class PaymentAdmin(admin.ModelAdmin):
    """
    Admin configuration for Payment.

    Provides visibility into charges and escrow state.
    Escrow changes must go through the service layer, not admin.
    """

    list_display = [
        "id",
        "booking",
        "amount_display",
        "status",
        "escrow_status",
        "refund_amount_pence",
        "created_at",
    ]
    list_filter = ["status", "escrow_status", "created_at"]
    search_fields = ["id", "stripe_payment_intent_id", "stripe_charge_id", "booking__id"]
    raw_id_fields = ["booking"]
    readonly_fields = [
        "id",
        "status",
        "escrow_status",
        "amount_pence",
        "platform_fee_pence",
        "freelancer_payout_pence",
        "refund_id",
        "refund_amount_pence",
        "refund_status",
        "escrow_released_at",
        "refunded_at",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "booking", "status", "escrow_status"),
            },
        ),
        (
            "Amount",
            {
                "fields": ("amount_pence", "platform_fee_pence", "freelancer_payout_pence"),
            },
        ),
        (
            "Stripe Details",
            {
                "fields": ("stripe_payment_intent_id", "stripe_charge_id", "client_secret"),
                "classes": ("collapse",),
            },
        ),
        (
            "Settlement",
            {
                "fields": (
                    "refund_id",
                    "refund_amount_pence",
                    "refund_status",
                    "escrow_released_at",
                    "refunded_at",
                ),
            },
        ),
        (
            "Metadata",
            {
                "fields": ("metadata",),
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

    def amount_display(self, obj: Payment) -> str:
        return pounds(obj.amount_pence)

    amount_display.short_description = "Amount"

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for payments (audit trail)."""
        return False


@admin.register(PayoutAccount)
class PayoutAccountAdmin(admin.ModelAdmin):
    list_display = ["freelancer", "stripe_account_id", "payout_schedule", "payouts_enabled", "is_verified"]
    list_filter = ["payout_schedule", "payouts_enabled", "is_verified"]
    search_fields = ["stripe_account_id", "freelancer__email"]
    raw_id_fields = ["freelancer"]


class PayoutAuditLogInline(admin.TabularInline):
    model = PayoutAuditLog
    extra = 0
    readonly_fields = ["action", "actor", "old_status", "new_status", "details", "created_at"]
    can_delete = False

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(Payout)
class PayoutAdmin(admin.ModelAdmin):
    """
    Admin configuration for Payout.

    Provides visibility into payout status and history. The actions run
    through PayoutService so every change is audited.
    """

    list_display = [
        "id",
        "freelancer",
        "booking",
        "amount_display",
        "status",
        "scheduled_date",
        "processed_date",
        "created_at",
    ]
    list_filter = ["status", "scheduled_date", "created_at"]
    search_fields = ["id", "stripe_transfer_id", "booking__id", "freelancer__email"]
    raw_id_fields = ["freelancer", "booking"]
    readonly_fields = [
        "id",
        "status",
        "service_amount_pence",
        "commission_pence",
        "booking_fee_pence",
        "payout_amount_pence",
        "stripe_transfer_id",
        "processed_date",
        "error_message",
        "version",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]
    inlines = [PayoutAuditLogInline]
    actions = ["process_now", "retry_failed"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "freelancer", "booking", "status", "scheduled_date"),
            },
        ),
        (
            "Amount",
            {
                "fields": (
                    "service_amount_pence",
                    "commission_pence",
                    "booking_fee_pence",
                    "payout_amount_pence",
                ),
            },
        ),
        (
            "Stripe Details",
            {
                "fields": ("stripe_transfer_id", "processed_date"),
            },
        ),
        (
            "Failure Info",
            {
                "fields": ("error_message", "admin_notes"),
                "classes": ("collapse",),
            },
        ),
        (
            "Timestamps",
            {
                "fields": ("created_at", "updated_at", "version"),
            },
        ),
    )

    def amount_display(self, obj: Payout) -> str:
        return pounds(obj.payout_amount_pence)

    amount_display.short_description = "Amount"

    @admin.action(description="Process selected payouts now")
    def process_now(self, request, queryset):
        paid = 0
        for payout in queryset:
            try:
                result = PayoutService.process_payout_now(request.user, payout.pk)
            except BaseApplicationError as e:
                self.message_user(request, f"{payout.pk}: {e.message}", level=messages.ERROR)
                continue
            if result.success:
                paid += 1
            else:
                self.message_user(request, f"{payout.pk}: {result.error}", level=messages.WARNING)
        self.message_user(request, f"Paid {paid} payouts.")

    @admin.action(description="Retry selected failed payouts")
    def retry_failed(self, request, queryset):
        retried = 0
        for payout in queryset:
            try:
                PayoutService.retry_payout(request.user, payout.pk)
            except BaseApplicationError as e:
                self.message_user(request, f"{payout.pk}: {e.message}", level=messages.ERROR)
                continue
            retried += 1
        self.message_user(request, f"Re-queued {retried} payouts.")

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for payouts (audit trail)."""
        return False


@admin.register(PlatformSettings)
class PlatformSettingsAdmin(admin.ModelAdmin):
    """Singleton editor; saving drops the cached copy."""

    fieldsets = (
        (
            "Pricing",
            {
                "fields": ("platform_fee_percent", "commission_percent", "booking_fee_pence"),
            },
        ),
        (
            "Refund Policy",
            {
                "fields": ("free_cancel_hours", "partial_refund_hours", "partial_refund_percent"),
            },
        ),
        (
            "Timing",
            {
                "fields": ("pending_timeout_hours", "auto_confirm_grace_hours", "dispute_window_hours"),
            },
        ),
        (
            "Reliability",
            {
                "fields": (
                    "last_minute_cancel_hours",
                    "cancellation_warn_threshold",
                    "cancellation_suspend_threshold",
                    "cancellation_window_days",
                ),
            },
        ),
    )

    def has_add_permission(self, request) -> bool:
        return not PlatformSettings.objects.exists()

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Admin configuration for WebhookEvent.

    Provides visibility into webhook processing status.
    Webhook events are immutable once received.
    """

    list_display = [
        "id",
        "stripe_event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = ["id", "stripe_event_id", "event_type"]
    readonly_fields = [
        "id",
        "created_at",
        "updated_at",
        "stripe_event_id",
        "event_type",
        "payload",
        "status",
        "processed_at",
        "retry_count",
        "error_message",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (
            None,
            {
                "fields": ("id", "stripe_event_id", "event_type", "status"),
            },
        ),
        (
            "Processing",
            {
                "fields": ("processed_at", "retry_count"),
            },
        ),
        (
            "Error Info",
            {
                "fields": ("error_message",),
                "classes": ("collapse",),
            },
        ),
        (
            "Payload",
            {
                "fields": ("payload",),
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

    def has_delete_permission(self, request, obj=None) -> bool:
        """Disable delete for webhook events (audit trail)."""
        return False

    def has_add_permission(self, request) -> bool:
        """Disable adding webhook events through admin."""
        return False
