"""
Escrow service: payment intents and the held → released / refunded machine.

Once a client's payment succeeds, its money is held on the platform
balance. Exactly one of two things may then happen to it:

    held → released   the freelancer side keeps amount - refunds - platform fee
    held → refunded   the client gets all or part of it back

Both are terminal. Every operation claims the escrow with a single
conditional UPDATE filtered on ``escrow_status=held, status=succeeded``.
If zero rows change, another caller (a webhook, a sweep, an admin) already
settled it, and the operation returns ``EscrowOutcome(applied=False)``
without touching Stripe.

Refunds call Stripe inside the same transaction as the claim. A Stripe
failure raises, the transaction rolls back and the escrow is held again.
The refund carries a deterministic idempotency key, so a retry after
"Stripe succeeded, our commit failed" gets the original refund back.

Usage:
    from payments.services import EscrowService

    payment = EscrowService.create_intent(booking)

    outcome = EscrowService.release(payment)
    if outcome.applied:
        PayoutService.create_payout(booking, outcome.releasable_pence)

    outcome = EscrowService.refund(payment, amount_pence=5000, reason="client_cancelled")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from django.db import transaction
from django.utils import timezone

from core.exceptions import ValidationError
from core.services import BaseService

from payments.adapters import (
    CreatePaymentIntentParams,
    IdempotencyKeyGenerator,
    StripeAdapter,
)
from payments.models import Payment
from payments.state_machines import EscrowStatus, PaymentStatus

if TYPE_CHECKING:
    from bookings.models import Booking


@dataclass
class EscrowOutcome:
    """
    Result of an escrow operation.

    Attributes:
        applied: False when the escrow had already been settled by someone else
        payment: The payment, reloaded after the operation
        refund_amount_pence: Amount refunded by this operation
        releasable_pence: Amount released to the freelancer side by this operation
        refund_id: Stripe refund ID, when a refund was issued
    """

    applied: bool
    payment: Payment
    refund_amount_pence: int = 0
    releasable_pence: int = 0
    refund_id: str | None = None


class EscrowService(BaseService):
    """
    Owns every write to Payment.status and Payment.escrow_status.

    Callers (booking transitions, webhook handlers, dispute resolution)
    never update those fields themselves.
    """

    # Stripe adapter - can be injected for testing
    _stripe_adapter: type | None = None

    @classmethod
    def get_stripe_adapter(cls) -> type:
        return cls._stripe_adapter or StripeAdapter

    @classmethod
    def set_stripe_adapter(cls, adapter: type | None) -> None:
        cls._stripe_adapter = adapter

    # =========================================================================
    # Payment Intents
    # =========================================================================

    @classmethod
    def create_intent(cls, booking: Booking) -> Payment:
        """
        Create a Stripe PaymentIntent for the booking total and its Payment row.

        The intent amount is the booking total; the platform fee is recorded
        on the payment and deducted from the freelancer side, never added
        to what the client pays.

        Raises:
            StripeError: Provider failure (the caller's transaction rolls back)
        """
        attempt = Payment.objects.filter(booking=booking).count() + 1
        idempotency_key = IdempotencyKeyGenerator.generate(
            operation="create_intent",
            entity_id=booking.id,
            attempt=attempt,
        )

        result = cls.get_stripe_adapter().create_payment_intent(
            CreatePaymentIntentParams(
                amount_pence=booking.total_pence,
                idempotency_key=idempotency_key,
                metadata={"booking_id": str(booking.id)},
            )
        )

        payment = Payment.objects.create(
            booking=booking,
            stripe_payment_intent_id=result.id,
            client_secret=result.client_secret or "",
            status=PaymentStatus.INITIATED,
            escrow_status=EscrowStatus.HELD,
            amount_pence=booking.total_pence,
            platform_fee_pence=booking.platform_fee_pence,
            freelancer_payout_pence=booking.total_pence - booking.platform_fee_pence,
            metadata={"idempotency_key": idempotency_key, "attempt": attempt},
        )

        cls.get_logger().info(
            "Payment intent created",
            extra={
                "booking_id": str(booking.id),
                "payment_id": str(payment.id),
                "payment_intent_id": result.id,
                "amount_pence": payment.amount_pence,
                "attempt": attempt,
            },
        )
        return payment

    @classmethod
    def reuse_or_create_intent(cls, booking: Booking) -> Payment:
        """
        Return the booking's open intent, or create a fresh one.

        Used by checkout re-issue after a failed or abandoned payment.

        Raises:
            ValidationError: The booking has already been paid
        """
        if Payment.objects.filter(booking=booking, status=PaymentStatus.SUCCEEDED).exists():
            raise ValidationError(
                "Booking has already been paid",
                error_code="ALREADY_PAID",
                details={"booking_id": str(booking.id)},
            )

        existing = Payment.objects.filter(
            booking=booking,
            status=PaymentStatus.INITIATED,
        ).first()
        if existing is not None:
            cls.get_logger().info(
                "Reusing open payment intent",
                extra={"booking_id": str(booking.id), "payment_id": str(existing.id)},
            )
            return existing

        return cls.create_intent(booking)

    @classmethod
    def payment_status(cls, booking: Booking) -> dict[str, Any]:
        """Summarise the booking's most relevant payment for the API."""
        payment = (
            Payment.objects.filter(booking=booking)
            .exclude(status=PaymentStatus.FAILED)
            .first()
            or Payment.objects.filter(booking=booking).first()
        )
        if payment is None:
            return {"booking_id": str(booking.id), "has_payment": False, "can_refund": False}

        return {
            "booking_id": str(booking.id),
            "has_payment": True,
            "payment_id": str(payment.id),
            "status": payment.status,
            "escrow_status": payment.escrow_status,
            "amount_pence": payment.amount_pence,
            "platform_fee_pence": payment.platform_fee_pence,
            "freelancer_payout_pence": payment.freelancer_payout_pence,
            "refund_amount_pence": payment.refund_amount_pence,
            "can_refund": payment.can_refund,
        }

    # =========================================================================
    # Provider-Driven Status Changes (webhooks)
    # =========================================================================

    @classmethod
    def mark_succeeded(cls, payment: Payment, charge_id: str = "") -> bool:
        """
        initiated → succeeded, or failed → succeeded.

        Stripe lets a client retry a declined intent, so a failed payment
        can still be captured. It then takes over from any intent the
        booking opened since, which is marked failed. If the booking already
        holds another captured payment nothing changes and False is
        returned; the caller refunds the capture with
        ``refund_duplicate_capture``.

        Returns:
            True if the payment moved to succeeded (replays return False)
        """
        with transaction.atomic():
            current = Payment.objects.select_for_update().get(pk=payment.pk)
            if current.status not in (PaymentStatus.INITIATED, PaymentStatus.FAILED):
                payment.refresh_from_db()
                return False

            now = timezone.now()
            if current.status == PaymentStatus.FAILED:
                others = list(
                    Payment.objects.select_for_update().filter(booking_id=payment.booking_id).exclude(pk=payment.pk)
                )
                if any(o.status == PaymentStatus.SUCCEEDED and o.escrow_status != EscrowStatus.REFUNDED for o in others):
                    payment.refresh_from_db()
                    return False
                Payment.objects.filter(
                    pk__in=[o.pk for o in others if o.status == PaymentStatus.INITIATED],
                ).update(status=PaymentStatus.FAILED, updated_at=now)

            changed = Payment.objects.filter(
                pk=payment.pk,
                status=current.status,
            ).update(
                status=PaymentStatus.SUCCEEDED,
                escrow_status=EscrowStatus.HELD,
                stripe_charge_id=charge_id or "",
                updated_at=now,
            )

        payment.refresh_from_db()
        if changed and current.status == PaymentStatus.FAILED:
            cls.get_logger().info(
                "Failed payment captured on retry",
                extra={"payment_id": str(payment.id), "booking_id": str(payment.booking_id)},
            )
        return bool(changed)

    @classmethod
    def refund_duplicate_capture(cls, payment: Payment, charge_id: str = "") -> EscrowOutcome:
        """
        Refund a failed payment that Stripe captured after the booking was
        already paid through another payment. failed → refunded.

        The payment never becomes active, so the booking keeps exactly one
        payment holding money.

        Raises:
            StripeError: Provider failure (nothing is persisted)
        """
        with transaction.atomic():
            now = timezone.now()
            claimed = Payment.objects.filter(
                pk=payment.pk,
                status=PaymentStatus.FAILED,
            ).update(
                status=PaymentStatus.REFUNDED,
                escrow_status=EscrowStatus.REFUNDED,
                stripe_charge_id=charge_id or "",
                refund_amount_pence=payment.amount_pence,
                refunded_at=now,
                updated_at=now,
            )
            if not claimed:
                return cls._not_applied(payment, "refund_duplicate_capture")

            refund_id = cls._issue_refund(payment, payment.amount_pence, "full", "duplicate")

        payment.refresh_from_db()
        cls.get_logger().warning(
            "Duplicate capture refunded",
            extra={
                "payment_id": str(payment.id),
                "booking_id": str(payment.booking_id),
                "refund_amount_pence": payment.amount_pence,
                "refund_id": refund_id,
            },
        )
        return EscrowOutcome(
            applied=True,
            payment=payment,
            refund_amount_pence=payment.amount_pence,
            refund_id=refund_id,
        )

    @classmethod
    def mark_failed(cls, payment: Payment) -> bool:
        """initiated → failed. Returns False if the payment was not initiated."""
        changed = Payment.objects.filter(
            pk=payment.pk,
            status=PaymentStatus.INITIATED,
        ).update(status=PaymentStatus.FAILED, updated_at=timezone.now())
        payment.refresh_from_db()
        return bool(changed)

    @classmethod
    def record_external_refund(
        cls,
        payment: Payment,
        refunded_pence: int,
        refund_id: str = "",
    ) -> EscrowOutcome:
        """
        Settle a held escrow as refunded because Stripe says it was.

        Covers refunds issued from the Stripe dashboard and refunds whose
        local write was lost after the provider call succeeded. No provider
        call is made.
        """
        refunded_pence = min(max(refunded_pence, 0), payment.amount_pence)
        now = timezone.now()
        fields: dict[str, Any] = {
            "escrow_status": EscrowStatus.REFUNDED,
            "refund_amount_pence": refunded_pence,
            "refund_status": "succeeded",
            "refunded_at": now,
            "updated_at": now,
        }
        if refunded_pence >= payment.amount_pence:
            fields["status"] = PaymentStatus.REFUNDED
        if refund_id:
            fields["refund_id"] = refund_id

        changed = cls._held(payment).update(**fields)
        payment.refresh_from_db()
        return EscrowOutcome(
            applied=bool(changed),
            payment=payment,
            refund_amount_pence=refunded_pence if changed else 0,
            refund_id=refund_id or None,
        )

    # =========================================================================
    # Escrow Settlement
    # =========================================================================

    @classmethod
    def refund(
        cls,
        payment: Payment,
        amount_pence: int | None = None,
        reason: str = "",
    ) -> EscrowOutcome:
        """
        Refund a held escrow to the client. held → refunded.

        Args:
            payment: The payment to refund
            amount_pence: Partial amount; None refunds the full payment
            reason: Recorded on the Stripe refund metadata

        Raises:
            ValidationError: Amount not in (0, payment amount]
            StripeError: Provider failure (nothing is persisted)
        """
        full = amount_pence is None or amount_pence == payment.amount_pence
        amount = payment.amount_pence if amount_pence is None else amount_pence
        if amount <= 0 or amount > payment.amount_pence:
            raise ValidationError(
                "Refund amount must be greater than zero and not exceed the payment amount",
                error_code="INVALID_REFUND_AMOUNT",
                details={"amount_pence": amount, "payment_amount_pence": payment.amount_pence},
            )

        with transaction.atomic():
            now = timezone.now()
            claimed = cls._held(payment).update(
                escrow_status=EscrowStatus.REFUNDED,
                status=PaymentStatus.REFUNDED if full else PaymentStatus.SUCCEEDED,
                refund_amount_pence=amount,
                refunded_at=now,
                updated_at=now,
            )
            if not claimed:
                return cls._not_applied(payment, "refund")

            refund_id = cls._issue_refund(payment, amount, "full" if full else "partial", reason)

        payment.refresh_from_db()
        cls.get_logger().info(
            "Escrow refunded",
            extra={
                "payment_id": str(payment.id),
                "booking_id": str(payment.booking_id),
                "refund_amount_pence": amount,
                "refund_id": refund_id,
            },
        )
        return EscrowOutcome(
            applied=True,
            payment=payment,
            refund_amount_pence=amount,
            refund_id=refund_id,
        )

    @classmethod
    def release(cls, payment: Payment) -> EscrowOutcome:
        """
        Release a held escrow to the freelancer side. held → released.

        No money moves here; the returned ``releasable_pence`` is what the
        payout is computed from.
        """
        releasable = payment.amount_pence - payment.refund_amount_pence - payment.platform_fee_pence
        releasable = max(releasable, 0)

        with transaction.atomic():
            now = timezone.now()
            claimed = cls._held(payment).update(
                escrow_status=EscrowStatus.RELEASED,
                escrow_released_at=now,
                freelancer_payout_pence=releasable,
                updated_at=now,
            )
            if not claimed:
                return cls._not_applied(payment, "release")

        payment.refresh_from_db()
        cls.get_logger().info(
            "Escrow released",
            extra={
                "payment_id": str(payment.id),
                "booking_id": str(payment.booking_id),
                "releasable_pence": releasable,
            },
        )
        return EscrowOutcome(applied=True, payment=payment, releasable_pence=releasable)

    @classmethod
    def refund_and_release(
        cls,
        payment: Payment,
        refund_amount_pence: int,
        reason: str = "",
    ) -> EscrowOutcome:
        """
        Refund part of a held escrow and release the rest in one transition.

        The amount is clamped to the payment amount; refunding everything
        is delegated to ``refund``.

        Raises:
            ValidationError: Amount is not positive
            StripeError: Provider failure (nothing is persisted)
        """
        if refund_amount_pence <= 0:
            raise ValidationError(
                "Refund amount must be greater than zero",
                error_code="INVALID_REFUND_AMOUNT",
                details={"amount_pence": refund_amount_pence},
            )

        amount = min(refund_amount_pence, payment.amount_pence)
        if amount == payment.amount_pence:
            return cls.refund(payment, reason=reason)

        releasable = max(payment.amount_pence - amount - payment.platform_fee_pence, 0)

        with transaction.atomic():
            now = timezone.now()
            claimed = cls._held(payment).update(
                escrow_status=EscrowStatus.RELEASED,
                refund_amount_pence=amount,
                refunded_at=now,
                escrow_released_at=now,
                freelancer_payout_pence=releasable,
                updated_at=now,
            )
            if not claimed:
                return cls._not_applied(payment, "refund_and_release")

            refund_id = cls._issue_refund(payment, amount, "partial", reason)

        payment.refresh_from_db()
        cls.get_logger().info(
            "Escrow partially refunded and released",
            extra={
                "payment_id": str(payment.id),
                "booking_id": str(payment.booking_id),
                "refund_amount_pence": amount,
                "releasable_pence": releasable,
            },
        )
        return EscrowOutcome(
            applied=True,
            payment=payment,
            refund_amount_pence=amount,
            releasable_pence=releasable,
            refund_id=refund_id,
        )

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _held(payment: Payment):
        return Payment.objects.filter(
            pk=payment.pk,
            escrow_status=EscrowStatus.HELD,
            status=PaymentStatus.SUCCEEDED,
        )

    @classmethod
    def _not_applied(cls, payment: Payment, operation: str) -> EscrowOutcome:
        payment.refresh_from_db()
        cls.get_logger().info(
            "Escrow already settled, skipping",
            extra={
                "payment_id": str(payment.id),
                "operation": operation,
                "status": payment.status,
                "escrow_status": payment.escrow_status,
            },
        )
        return EscrowOutcome(applied=False, payment=payment)

    @classmethod
    def _issue_refund(cls, payment: Payment, amount: int, kind: str, reason: str) -> str:
        """Call Stripe and store the refund id. Runs inside the claim's transaction."""
        result = cls.get_stripe_adapter().create_refund(
            payment_intent_id=payment.stripe_payment_intent_id,
            idempotency_key=IdempotencyKeyGenerator.generate(
                operation=f"refund_{kind}",
                entity_id=payment.id,
            ),
            amount_pence=amount,
            reason=reason or None,
            metadata={
                "payment_id": str(payment.id),
                "booking_id": str(payment.booking_id),
            },
        )
        Payment.objects.filter(pk=payment.pk).update(
            refund_id=result.id,
            refund_status=result.status,
        )
        return result.id
