"""
Dispute service: raising disputes and resolving them with money movement.

Resolution maps onto the escrow primitives:

    full_refund            EscrowService.refund (full)       booking cancelled
    partial_refund         EscrowService.refund_and_release  booking completed + payout
    release_to_freelancer  EscrowService.release             booking completed + payout
    no_action              nothing moves

If the escrow was already settled (a sweep or a confirm won the race), the
money step records ``escrow_already_settled`` and the dispute still
resolves. Provider failures raise and roll the whole resolution back.

Usage:
    from disputes.services import DisputeService

    dispute = DisputeService.create_dispute(client, booking_id, "quality", "Left early")
    DisputeService.resolve_dispute(
        admin,
        dispute.id,
        resolution_type=ResolutionType.PARTIAL_REFUND,
        amount_pence=3000,
    )
"""

from __future__ import annotations

import uuid
from datetime import timedelta

from django.utils import timezone
from django_fsm import can_proceed

from authentication.models import AccountStatus, User
from bookings.models import Booking, BookingStatus
from bookings.services import BookingService
from core.exceptions import (
    ConflictError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from core.services import BaseService
from notifications.models import NotificationType
from notifications.services import NotificationService
from payments.models import Payment, PlatformSettings
from payments.services import EscrowOutcome, EscrowService
from payments.state_machines import EscrowStatus, PaymentStatus

from disputes.models import (
    Dispute,
    DisputeAuditLog,
    DisputeCategory,
    DisputeStatus,
    ResolutionType,
)


class DisputeService(BaseService):
    """Creates, reviews and resolves booking disputes."""

    # =========================================================================
    # Client Actions
    # =========================================================================

    @classmethod
    def create_dispute(
        cls,
        client: User,
        booking_id: uuid.UUID,
        category: str,
        description: str,
    ) -> Dispute:
        """
        Raise a dispute on a confirmed or completed booking.

        Raises:
            NotFoundError: Booking missing
            PermissionDeniedError: Caller is not the booking's client
            ValidationError: Wrong booking state, window closed, bad category
            ConflictError: Booking already has a dispute
        """
        booking = Booking.objects.filter(pk=booking_id).first()
        if booking is None:
            raise NotFoundError("Booking not found", error_code="BOOKING_NOT_FOUND")
        if booking.client_id != client.pk:
            raise PermissionDeniedError(
                "Only the client can raise a dispute",
                error_code="NOT_CLIENT",
            )
        if booking.status not in (BookingStatus.CONFIRMED, BookingStatus.COMPLETED):
            raise ValidationError(
                "Disputes can only be raised for confirmed or completed bookings",
                error_code="INVALID_BOOKING_STATE",
                details={"status": booking.status},
            )
        if category not in DisputeCategory.values:
            raise ValidationError(
                "Unknown dispute category",
                error_code="INVALID_CATEGORY",
                details={"allowed": DisputeCategory.values},
            )
        if not description.strip():
            raise ValidationError("A description is required", error_code="DESCRIPTION_REQUIRED")

        window_hours = PlatformSettings.load().dispute_window_hours
        if timezone.now() > booking.scheduled_end + timedelta(hours=window_hours):
            raise ValidationError(
                f"Disputes must be raised within {window_hours} hours of the scheduled end time",
                error_code="DISPUTE_WINDOW_CLOSED",
            )

        if Dispute.objects.filter(booking=booking).exists():
            raise ConflictError(
                "A dispute already exists for this booking",
                error_code="DISPUTE_EXISTS",
            )

        with cls.atomic():
            # Same row lock as the auto-confirm sweep
            Booking.objects.select_for_update().filter(pk=booking.pk).first()
            dispute = Dispute.objects.create(
                booking=booking,
                raised_by=client,
                category=category,
                description=description,
            )
            cls._audit(
                dispute,
                "dispute_created",
                actor=client,
                new_status=DisputeStatus.NEW,
                details={"category": category, "description": description},
            )

        cls.get_logger().info(
            "Dispute created",
            extra={
                "dispute_id": str(dispute.id),
                "booking_id": str(booking.id),
                "category": category,
            },
        )

        data = {"booking_id": str(booking.id), "dispute_id": str(dispute.id)}
        NotificationService.notify(
            user_id=booking.freelancer_id,
            notification_type=NotificationType.DISPUTE_CREATED,
            title="Dispute raised on booking",
            message=f"A dispute has been raised for your booking ({dispute.get_category_display()}).",
            data=data,
        )
        admin_ids = User.objects.admins().values_list("id", flat=True)
        for admin_id in admin_ids:
            NotificationService.notify(
                user_id=admin_id,
                notification_type=NotificationType.DISPUTE_CREATED,
                title="New dispute requires review",
                message=f"A new dispute has been raised for booking {booking.id}.",
                data=data,
            )
        return dispute

    # =========================================================================
    # Admin Actions
    # =========================================================================

    @classmethod
    def mark_in_review(cls, admin: User, dispute_id: uuid.UUID) -> Dispute:
        cls._require_admin(admin)
        dispute = cls.get_dispute(dispute_id)
        if not can_proceed(dispute.mark_in_review):
            raise ValidationError(
                f"Cannot review a {dispute.status} dispute",
                error_code="INVALID_DISPUTE_STATE",
            )

        with cls.atomic():
            changed = Dispute.objects.filter(pk=dispute.pk, status=DisputeStatus.NEW).update(
                status=DisputeStatus.IN_REVIEW,
                updated_at=timezone.now(),
            )
            if not changed:
                raise ConflictError(
                    "Dispute was modified by another request",
                    error_code="DISPUTE_STATE_CHANGED",
                )
            cls._audit(
                dispute,
                "status_changed",
                actor=admin,
                old_status=DisputeStatus.NEW,
                new_status=DisputeStatus.IN_REVIEW,
            )

        dispute.refresh_from_db()
        return dispute

    @classmethod
    def resolve_dispute(
        cls,
        admin: User,
        dispute_id: uuid.UUID,
        resolution_type: str,
        amount_pence: int | None = None,
        notes: str = "",
        suspend_user_id: int | None = None,
    ) -> Dispute:
        """
        Close a dispute and apply its financial outcome.

        Args:
            admin: Resolving admin
            dispute_id: Dispute to resolve
            resolution_type: ResolutionType value
            amount_pence: Refund amount, required for partial_refund
            notes: Free-text resolution notes
            suspend_user_id: Optional party to suspend as part of the outcome

        Raises:
            PermissionDeniedError: Caller is not an admin
            ValidationError: Already resolved, bad type, missing amount
            NotFoundError: No succeeded payment for a financial resolution
            StripeError: Provider failure (nothing is persisted)
        """
        cls._require_admin(admin)
        dispute = cls.get_dispute(dispute_id)
        if not can_proceed(dispute.resolve):
            raise ValidationError(
                "Dispute is already resolved",
                error_code="DISPUTE_ALREADY_RESOLVED",
            )
        if resolution_type not in ResolutionType.values:
            raise ValidationError(
                "Unknown resolution type",
                error_code="INVALID_RESOLUTION_TYPE",
                details={"allowed": ResolutionType.values},
            )
        if resolution_type == ResolutionType.PARTIAL_REFUND and (amount_pence is None or amount_pence <= 0):
            raise ValidationError(
                "A positive amount is required for a partial refund",
                error_code="AMOUNT_REQUIRED",
            )

        booking = dispute.booking
        suspend_user = None
        if suspend_user_id is not None:
            if suspend_user_id not in (booking.client_id, booking.freelancer_id):
                raise ValidationError(
                    "Only a party to the booking can be suspended",
                    error_code="INVALID_SUSPEND_USER",
                )
            suspend_user = User.objects.get(pk=suspend_user_id)

        payment = None
        if resolution_type != ResolutionType.NO_ACTION:
            payment = (
                Payment.objects.filter(
                    booking=booking,
                    status__in=[PaymentStatus.SUCCEEDED, PaymentStatus.REFUNDED],
                )
                .order_by("-created_at")
                .first()
            )
            if payment is None:
                raise NotFoundError(
                    "No successful payment found for this booking",
                    error_code="PAYMENT_NOT_FOUND",
                )

        with cls.atomic():
            claimed = Dispute.objects.filter(
                pk=dispute.pk,
                status__in=[DisputeStatus.NEW, DisputeStatus.IN_REVIEW],
            ).update(
                status=DisputeStatus.RESOLVED,
                resolution_type=resolution_type,
                resolution_amount_pence=amount_pence,
                resolution_notes=notes,
                resolved_by=admin,
                resolved_at=timezone.now(),
                updated_at=timezone.now(),
            )
            if not claimed:
                raise ConflictError(
                    "Dispute was resolved by another request",
                    error_code="DISPUTE_STATE_CHANGED",
                )

            outcome = cls._apply_resolution(dispute, admin, resolution_type, payment, amount_pence)

            if suspend_user is not None:
                User.objects.filter(pk=suspend_user.pk).update(account_status=AccountStatus.SUSPENDED)
                cls._audit(dispute, "user_suspended", actor=admin, details={"user_id": suspend_user.pk})

            cls._audit(
                dispute,
                "dispute_resolved",
                actor=admin,
                old_status=dispute.status,
                new_status=DisputeStatus.RESOLVED,
                details={
                    "resolution_type": resolution_type,
                    "resolution_amount_pence": amount_pence,
                    "refund_amount_pence": outcome.refund_amount_pence if outcome else 0,
                    "releasable_pence": outcome.releasable_pence if outcome else 0,
                    "applied": bool(outcome and outcome.applied),
                },
            )

        dispute.refresh_from_db()
        cls.get_logger().info(
            "Dispute resolved",
            extra={
                "dispute_id": str(dispute.id),
                "booking_id": str(booking.id),
                "resolution_type": resolution_type,
                "applied": bool(outcome and outcome.applied),
            },
        )

        readable = dispute.get_resolution_type_display().lower()
        data = {
            "booking_id": str(booking.id),
            "dispute_id": str(dispute.id),
            "resolution_type": resolution_type,
        }
        NotificationService.notify(
            user_id=booking.client_id,
            notification_type=NotificationType.DISPUTE_RESOLVED,
            title="Dispute resolved",
            message=f"Your dispute has been resolved: {readable}.",
            data=data,
        )
        NotificationService.notify(
            user_id=booking.freelancer_id,
            notification_type=NotificationType.DISPUTE_RESOLVED,
            title="Dispute resolved",
            message=f"A dispute on your booking has been resolved: {readable}.",
            data=data,
        )
        return dispute

    @classmethod
    def get_dispute(cls, dispute_id: uuid.UUID) -> Dispute:
        try:
            return Dispute.objects.select_related("booking").get(pk=dispute_id)
        except (Dispute.DoesNotExist, ValueError):
            raise NotFoundError("Dispute not found", error_code="DISPUTE_NOT_FOUND")

    # =========================================================================
    # Internals
    # =========================================================================

    @classmethod
    def _apply_resolution(
        cls,
        dispute: Dispute,
        admin: User,
        resolution_type: str,
        payment: Payment | None,
        amount_pence: int | None,
    ) -> EscrowOutcome | None:
        """Move the money for a resolution. Runs inside the resolve transaction."""
        if resolution_type == ResolutionType.NO_ACTION:
            return None

        booking = dispute.booking
        if resolution_type == ResolutionType.FULL_REFUND:
            outcome = EscrowService.refund(payment, reason="dispute_full_refund")
        elif resolution_type == ResolutionType.PARTIAL_REFUND:
            outcome = EscrowService.refund_and_release(payment, amount_pence, reason="dispute_partial_refund")
        else:
            outcome = EscrowService.release(payment)

        if not outcome.applied:
            cls._audit(
                dispute,
                "escrow_already_settled",
                actor=admin,
                details={
                    "resolution_type": resolution_type,
                    "escrow_status": outcome.payment.escrow_status,
                },
            )
            return outcome

        if outcome.refund_amount_pence:
            cls._audit(
                dispute,
                "refund_issued",
                actor=admin,
                details={
                    "refund_id": outcome.refund_id,
                    "refund_amount_pence": outcome.refund_amount_pence,
                },
            )

        if outcome.payment.escrow_status == EscrowStatus.REFUNDED:
            BookingService.cancel_after_dispute(booking, admin, outcome, dispute.id)
        else:
            cls._audit(
                dispute,
                "escrow_released",
                actor=admin,
                details={"releasable_pence": outcome.releasable_pence},
            )
            BookingService.complete_after_dispute(booking, admin, outcome, dispute.id)
        return outcome

    @staticmethod
    def _require_admin(user: User) -> None:
        if not user.is_admin:
            raise PermissionDeniedError("Admin access required", error_code="ADMIN_REQUIRED")

    @staticmethod
    def _audit(
        dispute: Dispute,
        action: str,
        actor: User | None = None,
        old_status: str = "",
        new_status: str = "",
        details: dict | None = None,
    ) -> DisputeAuditLog:
        return DisputeAuditLog.objects.create(
            dispute=dispute,
            actor=actor,
            action=action,
            old_status=old_status,
            new_status=new_status,
            details=details or {},
        )
