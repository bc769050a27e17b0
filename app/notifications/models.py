"""
Notification models.

Models:
    NotificationType: Choices for every notification the booking lifecycle sends
    Notification: In-app notification record for a user
    NotificationPreference: Per-user, per-type opt-outs for in-app and email

Notifications are immutable once created; title and body are fully rendered
strings serving as a historical record of what the user was told.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class NotificationType(models.TextChoices):
    NEW_BOOKING_REQUEST = "new_booking_request", "New booking request"
    PAYMENT_CONFIRMED = "payment_confirmed", "Payment confirmed"
    PAYMENT_FAILED = "payment_failed", "Payment failed"
    BOOKING_CONFIRMED = "booking_confirmed", "Booking confirmed"
    BOOKING_DECLINED = "booking_declined", "Booking declined"
    BOOKING_CANCELLED = "booking_cancelled", "Booking cancelled"
    BOOKING_EXPIRED = "booking_expired", "Booking expired"
    BOOKING_REFUNDED = "booking_refunded", "Booking refunded"
    PAYMENT_RELEASED = "payment_released", "Payment released"
    SERVICE_AUTO_CONFIRMED = "service_auto_confirmed", "Service auto-confirmed"
    DISPUTE_CREATED = "dispute_created", "Dispute created"
    DISPUTE_RESOLVED = "dispute_resolved", "Dispute resolved"
    PAYOUT_PAID = "payout_paid", "Payout paid"
    PAYOUT_FAILED = "payout_failed", "Payout failed"
    RELIABILITY_WARNING = "reliability_warning", "Reliability warning"
    RESCHEDULE_REQUESTED = "reschedule_requested", "Reschedule requested"
    BOOKING_RESCHEDULED = "booking_rescheduled", "Booking rescheduled"
    RESCHEDULE_DECLINED = "reschedule_declined", "Reschedule declined"


class Notification(UUIDPrimaryKeyMixin, BaseModel):
    """
    Individual notification record for a user.

    Fields:
        recipient: User receiving the notification (scopes all queries)
        notification_type: One of NotificationType
        title: Fully rendered title string
        body: Fully rendered body string
        data: Arbitrary JSON context (booking_id, amounts)
        is_read: Whether recipient has read this notification
        email_sent_at: When the email copy was delivered, if any

    Usage:
        unread = Notification.objects.filter(recipient=user, is_read=False)
    """

    recipient = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notifications",
        help_text="User receiving this notification",
    )

    notification_type = models.CharField(
        max_length=50,
        choices=NotificationType.choices,
        db_index=True,
    )

    title = models.CharField(
        max_length=500,
        help_text="Fully rendered notification title",
    )

    body = models.TextField(
        blank=True,
        default="",
        help_text="Fully rendered notification body",
    )

    data = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary context data (booking ids, amounts)",
    )

    is_read = models.BooleanField(
        default=False,
        db_index=True,
        help_text="Whether recipient has read this notification",
    )

    email_sent_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(
                fields=["recipient", "is_read", "-created_at"],
                name="notif_recipient_unread_idx",
            ),
        ]

    def __str__(self) -> str:
        read_status = "read" if self.is_read else "unread"
        return f"Notification({self.notification_type}) -> User {self.recipient_id} [{read_status}]"


class NotificationPreference(BaseModel):
    """
    User opt-out for one notification type.

    Absence of a row means both channels are enabled.
    """

    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="notification_preferences",
    )
    notification_type = models.CharField(
        max_length=50,
        choices=NotificationType.choices,
    )
    in_app_enabled = models.BooleanField(default=True)
    email_enabled = models.BooleanField(default=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(
                fields=["user", "notification_type"],
                name="unique_user_notification_preference",
            ),
        ]

    def __str__(self) -> str:
        return f"Preference({self.user_id}, {self.notification_type})"
