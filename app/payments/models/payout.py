"""
Payout model for freelancer earnings leaving the platform.

A Payout is created exactly once per booking, at the moment escrow is
released (client confirmation, auto-confirm sweep or dispute resolution).
The payout job later transfers payout_amount_pence to the freelancer's
connected account.

Amounts:
    service_amount_pence   what the released escrow is worth to the freelancer side
    commission_pence       round_half_up(service * commission_percent / 100)
    booking_fee_pence      flat platform fee per booking
    payout_amount_pence    service - commission - booking fee

Usage:
    from payments.models import Payout
    from payments.state_machines import PayoutState

    payout.process()  # pending/scheduled -> processing
    payout.save()

    payout.complete(transfer_id="tr_123")  # processing -> paid
    payout.save()

The FSM transitions document and validate the graph; services persist
status changes that can race (the payout job claiming a row) with a
conditional update on the expected source status instead of save().
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django.db.models import F
from django.utils import timezone

from django_fsm import FSMField, transition

from core.models import AuditLogModel, BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import PayoutState


class Payout(UUIDPrimaryKeyMixin, BaseModel):
    """
    A transfer of released escrow to a freelancer.

    State Flow:
        PENDING -> PROCESSING -> PAID
        SCHEDULED -> PROCESSING -> PAID
        PROCESSING -> FAILED -> PENDING (retry)
        PENDING/SCHEDULED -> CANCELLED

    Fields:
        freelancer: Recipient
        booking: Source booking (one payout per booking)
        service_amount_pence: Amount the payout is computed from
        commission_pence: Platform commission
        booking_fee_pence: Flat booking fee
        payout_amount_pence: Amount transferred
        status: Current FSM state
        scheduled_date: Earliest day the payout job may send it
        processed_date: When the transfer succeeded
        stripe_transfer_id: Stripe Transfer ID (tr_xxx)
        error_message: Provider error from the last failed attempt
        admin_notes: Free text written by admin overrides
        version: Optimistic locking version
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    freelancer = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payouts",
    )

    booking = models.OneToOneField(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="payout",
        help_text="Booking whose released escrow this payout pays",
    )

    # ==========================================================================
    # Amounts (pence)
    # ==========================================================================

    service_amount_pence = models.PositiveIntegerField()
    commission_pence = models.PositiveIntegerField(default=0)
    booking_fee_pence = models.PositiveIntegerField(default=0)
    payout_amount_pence = models.PositiveIntegerField()

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=PayoutState.PENDING,
        choices=PayoutState.choices,
        db_index=True,
        help_text="Current state of the payout (managed by FSM)",
    )

    scheduled_date = models.DateField(
        db_index=True,
        help_text="Earliest date the payout job will send this payout",
    )
    processed_date = models.DateTimeField(null=True, blank=True)

    # ==========================================================================
    # Stripe Integration & Errors
    # ==========================================================================

    stripe_transfer_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Transfer ID (tr_xxx)",
    )
    error_message = models.TextField(blank=True, default="")
    admin_notes = models.TextField(blank=True, default="")

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payout"
        verbose_name_plural = "Payouts"
        indexes = [
            models.Index(fields=["freelancer", "status"], name="payout_freelancer_status_idx"),
            models.Index(fields=["status", "scheduled_date"], name="payout_status_scheduled_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                check=models.Q(payout_amount_pence__gt=0),
                name="payout_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"Payout({self.id}, {self.status}, {self.payout_amount_pence / 100:.2f} GBP)"

    def save(self, *args, **kwargs):
        """Save with version auto-increment for optimistic locking."""
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=[PayoutState.PENDING, PayoutState.SCHEDULED],
        target=PayoutState.PROCESSING,
    )
    def process(self):
        """Begin the provider transfer. Transition: PENDING/SCHEDULED -> PROCESSING"""

    @transition(
        field=status,
        source=PayoutState.PROCESSING,
        target=PayoutState.PAID,
    )
    def complete(self, transfer_id: str):
        """Transfer succeeded. Transition: PROCESSING -> PAID"""
        self.stripe_transfer_id = transfer_id
        self.processed_date = timezone.now()
        self.error_message = ""

    @transition(
        field=status,
        source=PayoutState.PROCESSING,
        target=PayoutState.FAILED,
    )
    def fail(self, reason: str = ""):
        """Transfer failed. Transition: PROCESSING -> FAILED"""
        self.error_message = reason

    @transition(
        field=status,
        source=PayoutState.FAILED,
        target=PayoutState.PENDING,
    )
    def retry(self):
        """
        Put a failed payout back in the queue.

        Transition: FAILED -> PENDING

        The transfer idempotency key includes the attempt number, so the
        next attempt is a new transfer rather than a replay of the failed one.
        """
        self.error_message = ""
        self.stripe_transfer_id = None

    @transition(
        field=status,
        source=[PayoutState.PENDING, PayoutState.SCHEDULED, PayoutState.FAILED],
        target=PayoutState.CANCELLED,
    )
    def cancel(self, reason: str = ""):
        """Admin cancelled the payout. Transition: PENDING/SCHEDULED/FAILED -> CANCELLED"""
        if reason:
            self.admin_notes = reason

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_complete(self) -> bool:
        return self.status == PayoutState.PAID

    @property
    def is_pending(self) -> bool:
        return self.status in [PayoutState.PENDING, PayoutState.SCHEDULED]

    @property
    def can_retry(self) -> bool:
        return self.status == PayoutState.FAILED


class PayoutAuditLog(UUIDPrimaryKeyMixin, AuditLogModel):
    """
    Append-only history of a payout.

    Actions: payout_created, processing_started, payout_completed,
    payout_failed, payout_retried, admin_override.
    """

    payout = models.ForeignKey(
        Payout,
        on_delete=models.CASCADE,
        related_name="audit_logs",
    )

    class Meta(AuditLogModel.Meta):
        verbose_name = "Payout Audit Log"
        verbose_name_plural = "Payout Audit Logs"
