"""
Payment model: the escrowed charge behind a booking.

A Payment row is created at checkout with status INITIATED and escrow
status HELD. The payment_intent.succeeded webhook moves it to SUCCEEDED;
from then on the escrow can be released to the freelancer or refunded to
the client exactly once.

Escrow transitions are never done with save(). They go through
payments.services.EscrowService, which issues

    Payment.objects.filter(
        pk=payment.pk,
        escrow_status=EscrowStatus.HELD,
        status=PaymentStatus.SUCCEEDED,
    ).update(...)

and treats zero affected rows as "another caller already settled it".

Usage:
    from payments.models import Payment

    payment = Payment.objects.active_for_booking(booking)
    if payment and payment.can_refund:
        EscrowService.refund(payment, amount_pence=5000, reason="client_cancelled")
"""

from __future__ import annotations

from django.db import models
from django.db.models import Q

from core.models import BaseModel
from core.model_mixins import MetadataMixin, UUIDPrimaryKeyMixin

from payments.state_machines import EscrowStatus, PaymentStatus


class PaymentQuerySet(models.QuerySet):
    def active(self):
        """Payments that still represent money owed or held for a booking."""
        return self.filter(
            status__in=[PaymentStatus.INITIATED, PaymentStatus.SUCCEEDED],
        ).exclude(escrow_status=EscrowStatus.REFUNDED)

    def active_for_booking(self, booking):
        return self.active().filter(booking=booking).first()

    def held(self):
        return self.filter(
            status=PaymentStatus.SUCCEEDED,
            escrow_status=EscrowStatus.HELD,
        )


class Payment(UUIDPrimaryKeyMixin, MetadataMixin, BaseModel):
    """
    A client's payment for one booking, held in escrow.

    Fields:
        booking: The booking being paid for
        stripe_payment_intent_id: Stripe PaymentIntent ID (pi_xxx)
        stripe_charge_id: Charge ID from the succeeded intent (ch_xxx)
        client_secret: Returned to the client to confirm the payment
        status: Provider charge status
        escrow_status: held, released or refunded
        amount_pence: Booking total charged to the client
        platform_fee_pence: Platform share, never paid out
        freelancer_payout_pence: amount - platform fee
        refund_id: Stripe Refund ID (re_xxx) of the refund issued
        refund_amount_pence: Total refunded to the client
        refund_status: Provider refund status (succeeded, pending, ...)
        escrow_released_at: When escrow was released
        refunded_at: When escrow was refunded

    Constraints:
        At most one active payment per booking (status initiated or
        succeeded and escrow not refunded).
    """

    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="payments",
    )

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    stripe_payment_intent_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe PaymentIntent ID (pi_xxx)",
    )
    stripe_charge_id = models.CharField(
        max_length=255,
        blank=True,
        default="",
        db_index=True,
        help_text="Stripe Charge ID (ch_xxx), set once the payment succeeds",
    )
    client_secret = models.CharField(max_length=255, blank=True, default="")

    # ==========================================================================
    # State
    # ==========================================================================

    status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.INITIATED,
        db_index=True,
    )
    escrow_status = models.CharField(
        max_length=20,
        choices=EscrowStatus.choices,
        default=EscrowStatus.HELD,
        db_index=True,
    )

    # ==========================================================================
    # Amounts (pence)
    # ==========================================================================

    amount_pence = models.PositiveIntegerField()
    platform_fee_pence = models.PositiveIntegerField(default=0)
    freelancer_payout_pence = models.PositiveIntegerField(default=0)

    # ==========================================================================
    # Refund & Release Bookkeeping
    # ==========================================================================

    refund_id = models.CharField(max_length=255, blank=True, default="")
    refund_amount_pence = models.PositiveIntegerField(default=0)
    refund_status = models.CharField(max_length=30, blank=True, default="")
    escrow_released_at = models.DateTimeField(null=True, blank=True)
    refunded_at = models.DateTimeField(null=True, blank=True)

    objects = PaymentQuerySet.as_manager()

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Payment"
        verbose_name_plural = "Payments"
        indexes = [
            models.Index(fields=["booking", "status"], name="payment_booking_status_idx"),
            models.Index(fields=["status", "escrow_status"], name="payment_escrow_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["booking"],
                condition=Q(status__in=["initiated", "succeeded"]) & ~Q(escrow_status="refunded"),
                name="payment_one_active_per_booking",
            ),
            models.CheckConstraint(
                check=Q(amount_pence__gt=0),
                name="payment_amount_positive",
            ),
            models.CheckConstraint(
                check=Q(refund_amount_pence__lte=models.F("amount_pence")),
                name="payment_refund_within_amount",
            ),
        ]

    def __str__(self) -> str:
        return f"Payment({self.id}, {self.status}/{self.escrow_status}, {self.amount_pence / 100:.2f} GBP)"

    @property
    def is_held(self) -> bool:
        return self.status == PaymentStatus.SUCCEEDED and self.escrow_status == EscrowStatus.HELD

    @property
    def can_refund(self) -> bool:
        return self.is_held

    @property
    def releasable_pence(self) -> int:
        """What the freelancer side would receive if escrow were released now."""
        return max(self.amount_pence - self.refund_amount_pence - self.platform_fee_pence, 0)
