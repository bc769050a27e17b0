"""
Booking domain models.

This module defines:
- Service: Something a freelancer offers at a fixed price and duration
- Booking: A client's reservation of a service slot, paid into escrow
- BookingAuditLog: Append-only history of every booking transition
- FreelancerCancellation: One row per freelancer-initiated cancellation,
  feeding the reliability counter
- RescheduleRequest: A party's proposal to move a booking to a new time

Booking lifecycle:

    pending ──accept──▶ confirmed ──confirm / auto-confirm──▶ completed
       │                    │
       ├──decline──▶ cancelled ◀──cancel──┘
       ├──cancel───▶ cancelled
       └──expire───▶ expired

The graph is declared with django-fsm on Booking.status. Services check a
transition with ``can_proceed`` and persist it with a conditional UPDATE
filtered on the source status, so when a user action races a sweep only
one of them changes the row.

Timers:
    expires_at       set while pending; cleared on any exit from pending
    auto_confirm_at  set once the booking is both paid and confirmed;
                     cleared when consumed or on cancellation
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django_fsm import FSMField, transition

from core.models import AuditLogModel, BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


# =============================================================================
# Choices
# =============================================================================


class BookingStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    CONFIRMED = "confirmed", "Confirmed"
    COMPLETED = "completed", "Completed"
    CANCELLED = "cancelled", "Cancelled"
    EXPIRED = "expired", "Expired"


class BookingPaymentStatus(models.TextChoices):
    """Payment progress as seen from the booking."""

    UNPAID = "unpaid", "Unpaid"
    PAYMENT_PENDING = "payment_pending", "Payment pending"
    PAYMENT_FAILED = "payment_failed", "Payment failed"
    PAID = "paid", "Paid"
    REFUNDED = "refunded", "Refunded"
    PARTIALLY_REFUNDED = "partially_refunded", "Partially refunded"


class LocationType(models.TextChoices):
    FREELANCER_TRAVELS_TO_CLIENT = "freelancer_travels_to_client", "Freelancer travels to client"
    CLIENT_TRAVELS_TO_FREELANCER = "client_travels_to_freelancer", "Client travels to freelancer"
    ONLINE = "online", "Online"


class MaterialsPolicy(models.TextChoices):
    FREELANCER_PROVIDES = "freelancer_provides", "Freelancer provides"
    CLIENT_PROVIDES = "client_provides", "Client provides"
    BOTH = "both", "Either"


class CancelledBy(models.TextChoices):
    CLIENT = "client", "Client"
    FREELANCER = "freelancer", "Freelancer"
    ADMIN = "admin", "Admin"


class RescheduleStatus(models.TextChoices):
    PENDING = "pending", "Pending"
    ACCEPTED = "accepted", "Accepted"
    DECLINED = "declined", "Declined"
    COUNTER_PROPOSED = "counter_proposed", "Counter-proposed"


class RescheduleAction(models.TextChoices):
    """How the other party answers a reschedule request."""

    ACCEPT = "accept", "Accept"
    DECLINE = "decline", "Decline"
    SUGGEST_ALTERNATIVE = "suggest_alternative", "Suggest alternative"


# =============================================================================
# Service
# =============================================================================


class Service(UUIDPrimaryKeyMixin, BaseModel):
    """
    A bookable service.

    Fields:
        freelancer: Who performs it
        title: Display name
        base_price_pence: Always charged
        materials_price_pence: Charged per materials_policy
        travel_price_pence: Charged when the freelancer travels to the client
        duration_minutes: Booking end = start + duration
        materials_policy: Who supplies materials
        location_types: Supported LocationType values
        is_active: Inactive services cannot be booked
    """

    freelancer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="services",
    )
    title = models.CharField(max_length=200)
    base_price_pence = models.PositiveIntegerField()
    materials_price_pence = models.PositiveIntegerField(default=0)
    travel_price_pence = models.PositiveIntegerField(default=0)
    duration_minutes = models.PositiveIntegerField()
    materials_policy = models.CharField(
        max_length=30,
        choices=MaterialsPolicy.choices,
        default=MaterialsPolicy.FREELANCER_PROVIDES,
    )
    location_types = models.JSONField(
        default=list,
        help_text="List of supported location types",
    )
    is_active = models.BooleanField(default=True)

    class Meta:
        ordering = ["title"]

    def __str__(self) -> str:
        return self.title

    def supports_location(self, location_type: str) -> bool:
        return location_type in (self.location_types or [])


# =============================================================================
# Booking
# =============================================================================


class Booking(UUIDPrimaryKeyMixin, BaseModel):
    """
    A client's reservation of a freelancer's service.

    Price fields are a snapshot taken at creation; later changes to the
    service never affect existing bookings.
    """

    client = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="client_bookings",
    )
    freelancer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="freelancer_bookings",
    )
    service = models.ForeignKey(
        Service,
        on_delete=models.PROTECT,
        related_name="bookings",
    )

    scheduled_start = models.DateTimeField(db_index=True)
    scheduled_end = models.DateTimeField()
    location_type = models.CharField(max_length=40, choices=LocationType.choices)
    address = models.TextField(blank=True, default="")
    client_provides_materials = models.BooleanField(default=False)

    # ==========================================================================
    # Price Snapshot (pence)
    # ==========================================================================

    base_price_pence = models.PositiveIntegerField()
    materials_price_pence = models.PositiveIntegerField(default=0)
    travel_price_pence = models.PositiveIntegerField(default=0)
    platform_fee_pence = models.PositiveIntegerField(default=0)
    total_pence = models.PositiveIntegerField()

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=BookingStatus.PENDING,
        choices=BookingStatus.choices,
        db_index=True,
    )
    payment_status = models.CharField(
        max_length=30,
        choices=BookingPaymentStatus.choices,
        default=BookingPaymentStatus.UNPAID,
        db_index=True,
    )

    expires_at = models.DateTimeField(null=True, blank=True, db_index=True)
    auto_confirm_at = models.DateTimeField(null=True, blank=True, db_index=True)
    completed_at = models.DateTimeField(null=True, blank=True)

    cancelled_by = models.CharField(max_length=20, choices=CancelledBy.choices, blank=True, default="")
    cancellation_reason = models.TextField(blank=True, default="")
    cancelled_at = models.DateTimeField(null=True, blank=True)

    declined_reason = models.TextField(blank=True, default="")
    declined_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-scheduled_start"]
        indexes = [
            models.Index(fields=["freelancer", "status", "scheduled_start"], name="booking_freelancer_sched_idx"),
            models.Index(fields=["status", "expires_at"], name="booking_status_expires_idx"),
            models.Index(fields=["status", "payment_status", "auto_confirm_at"], name="booking_auto_confirm_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                check=models.Q(scheduled_end__gt=models.F("scheduled_start")),
                name="booking_end_after_start",
            ),
            models.CheckConstraint(
                check=models.Q(expires_at__isnull=True) | models.Q(auto_confirm_at__isnull=True),
                name="booking_single_timer",
            ),
        ]

    def __str__(self) -> str:
        return f"Booking({self.id}, {self.status}, {self.scheduled_start:%Y-%m-%d %H:%M})"

    def is_party(self, user) -> bool:
        return user.pk in (self.client_id, self.freelancer_id)

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(field=status, source=BookingStatus.PENDING, target=BookingStatus.CONFIRMED)
    def accept(self):
        """Freelancer accepts the request."""

    @transition(field=status, source=BookingStatus.PENDING, target=BookingStatus.CANCELLED)
    def decline(self):
        """Freelancer declines the request; always a full refund."""

    @transition(field=status, source=BookingStatus.PENDING, target=BookingStatus.EXPIRED)
    def expire(self):
        """Pending timeout elapsed without an answer."""

    @transition(
        field=status,
        source=[BookingStatus.PENDING, BookingStatus.CONFIRMED],
        target=BookingStatus.CANCELLED,
    )
    def cancel(self):
        """Either party cancels; refund per the cancellation policy."""

    @transition(field=status, source=BookingStatus.CONFIRMED, target=BookingStatus.COMPLETED)
    def complete(self):
        """Service confirmed by the client, an admin, the auto-confirm sweep or a dispute."""


class BookingAuditLog(UUIDPrimaryKeyMixin, AuditLogModel):
    """
    One row per booking transition or money movement.

    Actions: created, accepted, declined, cancelled, auto_expired,
    payment_succeeded, payment_failed, refund_initiated, service_confirmed,
    auto_confirmed, refunded_after_cancellation, reschedule_requested,
    rescheduled, reschedule_declined, reschedule_counter_proposed.
    """

    booking = models.ForeignKey(
        Booking,
        on_delete=models.CASCADE,
        related_name="audit_logs",
    )

    class Meta(AuditLogModel.Meta):
        verbose_name = "Booking Audit Log"
        verbose_name_plural = "Booking Audit Logs"


class FreelancerCancellation(UUIDPrimaryKeyMixin, BaseModel):
    """A cancellation made by the freelancer, counted for reliability."""

    freelancer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="freelancer_cancellations",
    )
    booking = models.OneToOneField(
        Booking,
        on_delete=models.CASCADE,
        related_name="freelancer_cancellation",
    )
    hours_before_service = models.IntegerField()
    is_last_minute = models.BooleanField(default=False, db_index=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["freelancer", "is_last_minute", "created_at"], name="freelancer_cancel_window_idx"),
        ]

    def __str__(self) -> str:
        return f"FreelancerCancellation({self.freelancer_id}, {self.hours_before_service}h)"


# =============================================================================
# Rescheduling
# =============================================================================


class RescheduleRequest(UUIDPrimaryKeyMixin, BaseModel):
    """
    One party's proposal to move a booking to a new start time.

    The duration never changes: proposed_end = proposed_start + the
    booking's current duration. At most one request per booking is pending.

    A counter-proposal closes this request as counter_proposed and opens a
    new pending request from the responder for the alternative time.
    """

    booking = models.ForeignKey(
        Booking,
        on_delete=models.CASCADE,
        related_name="reschedule_requests",
    )
    requested_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="reschedule_requests",
    )
    original_start = models.DateTimeField()
    original_end = models.DateTimeField()
    proposed_start = models.DateTimeField()
    proposed_end = models.DateTimeField()
    reason = models.TextField(blank=True, default="")

    status = models.CharField(
        max_length=20,
        choices=RescheduleStatus.choices,
        default=RescheduleStatus.PENDING,
        db_index=True,
    )
    responded_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
    )
    responded_at = models.DateTimeField(null=True, blank=True)
    response_message = models.TextField(blank=True, default="")
    counter_proposed_start = models.DateTimeField(null=True, blank=True)
    counter_proposed_end = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["booking"],
                condition=models.Q(status="pending"),
                name="reschedule_one_pending_per_booking",
            ),
        ]

    def __str__(self) -> str:
        return f"RescheduleRequest({self.booking_id}, {self.status}, {self.proposed_start:%Y-%m-%d %H:%M})"
