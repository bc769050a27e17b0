"""
Payout service for freelancer earnings.

A payout is created once per booking, when its escrow is released, and
transferred later by the payout job (or immediately by an admin).

Creation:
    commission = round_half_up(service * commission_percent / 100)
    payout     = service - commission - booking_fee
    schedule   = from the freelancer's PayoutAccount.payout_schedule
        per_transaction → SCHEDULED for today
        weekly          → PENDING for the next Friday
        bi_weekly       → PENDING for the Friday after next

Processing:
    1. Claim PENDING/SCHEDULED → PROCESSING with a conditional update
    2. Stripe transfer with an idempotency key derived from the payout id
    3. PROCESSING → PAID (transfer id, processed date) or → FAILED (error)
    Every step writes a PayoutAuditLog row.

Usage:
    from payments.services import PayoutService

    payout = PayoutService.create_payout(booking, service_amount_pence=9000)

    result = PayoutService.process_payout(payout)
    if not result.success:
        logger.warning(result.error)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import date, timedelta
from typing import TYPE_CHECKING

from django.db import IntegrityError, transaction
from django.db.models import F
from django.utils import timezone
from django_fsm import TransitionNotAllowed

from core.exceptions import ConflictError, PermissionDeniedError, ValidationError
from core.helpers import percent_of
from core.services import BaseService, ServiceResult
from notifications.models import NotificationType
from notifications.services import NotificationService

from payments.adapters import IdempotencyKeyGenerator, StripeAdapter, is_retryable_stripe_error
from payments.exceptions import (
    InvalidStateTransitionError,
    PaymentNotFoundError,
    StripeError,
)
from payments.models import Payout, PayoutAccount, PayoutAuditLog, PlatformSettings
from payments.state_machines import PayoutSchedule, PayoutState

if TYPE_CHECKING:
    from authentication.models import User
    from bookings.models import Booking


FRIDAY = 4


# =============================================================================
# Result Types
# =============================================================================


@dataclass(frozen=True)
class PayoutAmounts:
    service_amount_pence: int
    commission_pence: int
    booking_fee_pence: int
    payout_amount_pence: int


@dataclass
class PayoutExecutionResult:
    """
    Result of a payout execution attempt.

    Attributes:
        payout: The Payout model instance
        stripe_transfer_id: The Stripe transfer ID if successful
    """

    payout: Payout
    stripe_transfer_id: str | None = None


# =============================================================================
# Payout Service
# =============================================================================


class PayoutService(BaseService):
    """
    Creates, schedules, transfers and overrides freelancer payouts.

    Safety Guarantees:
        - One payout per booking (unique booking column; duplicates raise
          ConflictError which releasing flows log and ignore)
        - A payout is claimed for transfer by exactly one worker
          (conditional update on PENDING/SCHEDULED)
        - Transfers carry deterministic idempotency keys
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
    # Amounts & Scheduling
    # =========================================================================

    @staticmethod
    def compute_amounts(
        service_amount_pence: int,
        platform: PlatformSettings | None = None,
    ) -> PayoutAmounts:
        platform = platform or PlatformSettings.load()
        commission = percent_of(service_amount_pence, platform.commission_percent)
        booking_fee = platform.booking_fee_pence
        return PayoutAmounts(
            service_amount_pence=service_amount_pence,
            commission_pence=commission,
            booking_fee_pence=booking_fee,
            payout_amount_pence=service_amount_pence - commission - booking_fee,
        )

    @staticmethod
    def schedule_for(schedule: str, today: date | None = None) -> tuple[str, date]:
        """
        Initial (status, scheduled_date) for a payout account schedule.

        A payout created on a Friday under the weekly schedule goes out the
        following Friday.
        """
        today = today or timezone.localdate()
        if schedule == PayoutSchedule.PER_TRANSACTION:
            return PayoutState.SCHEDULED, today

        next_friday = today + timedelta(days=(FRIDAY - today.weekday()) % 7 or 7)
        if schedule == PayoutSchedule.BI_WEEKLY:
            return PayoutState.PENDING, next_friday + timedelta(days=7)
        return PayoutState.PENDING, next_friday

    # =========================================================================
    # Creation
    # =========================================================================

    @classmethod
    def create_payout(
        cls,
        booking: Booking,
        service_amount_pence: int,
        actor: User | None = None,
    ) -> Payout:
        """
        Create the payout for a booking whose escrow was just released.

        Raises:
            ConflictError: The booking already has a payout
            ValidationError: Nothing left to pay after commission and fees
        """
        if Payout.objects.filter(booking=booking).exists():
            raise ConflictError(
                "Payout already exists for this booking",
                error_code="PAYOUT_EXISTS",
                details={"booking_id": str(booking.id)},
            )

        amounts = cls.compute_amounts(service_amount_pence)
        if amounts.payout_amount_pence <= 0:
            raise ValidationError(
                "Nothing to pay out after commission and fees",
                error_code="PAYOUT_AMOUNT_NOT_POSITIVE",
                details={
                    "booking_id": str(booking.id),
                    "service_amount_pence": service_amount_pence,
                    "payout_amount_pence": amounts.payout_amount_pence,
                },
            )

        account = PayoutAccount.objects.filter(freelancer_id=booking.freelancer_id).first()
        schedule = account.payout_schedule if account else PayoutSchedule.WEEKLY
        status, scheduled_date = cls.schedule_for(schedule)

        try:
            with transaction.atomic():
                payout = Payout.objects.create(
                    freelancer_id=booking.freelancer_id,
                    booking=booking,
                    service_amount_pence=amounts.service_amount_pence,
                    commission_pence=amounts.commission_pence,
                    booking_fee_pence=amounts.booking_fee_pence,
                    payout_amount_pence=amounts.payout_amount_pence,
                    status=status,
                    scheduled_date=scheduled_date,
                )
                cls._audit(
                    payout,
                    "payout_created",
                    actor=actor,
                    new_status=status,
                    details={
                        "service_amount_pence": amounts.service_amount_pence,
                        "commission_pence": amounts.commission_pence,
                        "booking_fee_pence": amounts.booking_fee_pence,
                        "payout_amount_pence": amounts.payout_amount_pence,
                        "payout_schedule": schedule,
                        "scheduled_date": scheduled_date.isoformat(),
                    },
                )
        except IntegrityError as e:
            raise ConflictError(
                "Payout already exists for this booking",
                error_code="PAYOUT_EXISTS",
                details={"booking_id": str(booking.id)},
            ) from e

        cls.get_logger().info(
            "Payout created",
            extra={
                "payout_id": str(payout.id),
                "booking_id": str(booking.id),
                "payout_amount_pence": payout.payout_amount_pence,
                "scheduled_date": scheduled_date.isoformat(),
                "status": status,
            },
        )
        return payout

    @classmethod
    def create_payout_safely(
        cls,
        booking: Booking,
        service_amount_pence: int,
        actor: User | None = None,
    ) -> Payout | None:
        """
        create_payout for releasing flows: errors are logged, never raised.

        Called inside the release transaction. Payout rows are written in
        their own savepoint, so a failure here leaves the release intact and
        the missing payout is recoverable by an admin.
        """
        try:
            return cls.create_payout(booking, service_amount_pence, actor=actor)
        except ConflictError:
            cls.get_logger().info(
                "Payout already exists, skipping",
                extra={"booking_id": str(booking.id)},
            )
        except Exception as e:
            cls.get_logger().error(
                f"Payout creation failed: {type(e).__name__}",
                extra={"booking_id": str(booking.id), "error": str(e)},
                exc_info=True,
            )
        return None

    # =========================================================================
    # Processing
    # =========================================================================

    @classmethod
    def process_payout(
        cls,
        payout: Payout,
        actor: User | None = None,
    ) -> ServiceResult[PayoutExecutionResult]:
        """
        Transfer one payout to the freelancer's connected account.

        Returns:
            ServiceResult with PayoutExecutionResult on success. Failure codes:
            ACCOUNT_NOT_READY, PAYOUT_ALREADY_CLAIMED, PAYOUT_FAILED.
        """
        logger = cls.get_logger()
        logger.info("Starting payout execution", extra={"payout_id": str(payout.id)})

        account = PayoutAccount.objects.filter(freelancer_id=payout.freelancer_id).first()
        if account is None or not account.is_ready_for_payouts:
            logger.warning(
                "Payout account not ready for payouts",
                extra={"payout_id": str(payout.id), "freelancer_id": payout.freelancer_id},
            )
            return ServiceResult.failure(
                "Freelancer payout account is missing, disabled or unverified",
                error_code="ACCOUNT_NOT_READY",
            )

        old_status = payout.status
        with transaction.atomic():
            claimed = Payout.objects.filter(
                pk=payout.pk,
                status__in=[PayoutState.PENDING, PayoutState.SCHEDULED],
            ).update(
                status=PayoutState.PROCESSING,
                version=F("version") + 1,
                updated_at=timezone.now(),
            )
            if claimed:
                cls._audit(
                    payout,
                    "processing_started",
                    actor=actor,
                    old_status=old_status,
                    new_status=PayoutState.PROCESSING,
                )

        payout.refresh_from_db()
        if not claimed:
            logger.info(
                "Payout already claimed, skipping",
                extra={"payout_id": str(payout.id), "current_status": payout.status},
            )
            return ServiceResult.failure(
                f"Payout is {payout.status}, not pending or scheduled",
                error_code="PAYOUT_ALREADY_CLAIMED",
            )

        attempt = 1 + payout.audit_logs.filter(action="payout_retried").count()
        try:
            transfer = cls.get_stripe_adapter().create_transfer(
                amount_pence=payout.payout_amount_pence,
                destination_account=account.stripe_account_id,
                idempotency_key=IdempotencyKeyGenerator.generate(
                    operation="payout_transfer",
                    entity_id=payout.id,
                    attempt=attempt,
                ),
                metadata={
                    "payout_id": str(payout.id),
                    "booking_id": str(payout.booking_id),
                },
            )
        except StripeError as e:
            logger.error(
                f"Stripe error during payout: {type(e).__name__}",
                extra={
                    "payout_id": str(payout.id),
                    "error": str(e),
                    "is_retryable": is_retryable_stripe_error(e),
                },
            )
            return cls._fail_payout(payout, str(e), actor=actor)
        except Exception as e:
            # The claim is already committed; leave no payout in processing
            logger.exception(
                f"Unexpected error during payout: {type(e).__name__}",
                extra={"payout_id": str(payout.id), "error": str(e)},
            )
            return cls._fail_payout(payout, f"{type(e).__name__}: {e}", actor=actor)

        with transaction.atomic():
            payout.complete(transfer_id=transfer.id)
            payout.save()
            cls._audit(
                payout,
                "payout_completed",
                actor=actor,
                old_status=PayoutState.PROCESSING,
                new_status=PayoutState.PAID,
                details={
                    "stripe_transfer_id": transfer.id,
                    "payout_amount_pence": payout.payout_amount_pence,
                },
            )

        logger.info(
            "Payout execution completed successfully",
            extra={"payout_id": str(payout.id), "stripe_transfer_id": transfer.id},
        )
        NotificationService.notify(
            user_id=payout.freelancer_id,
            notification_type=NotificationType.PAYOUT_PAID,
            title="Payout sent",
            message=f"£{payout.payout_amount_pence / 100:.2f} is on its way to your account.",
            data={"payout_id": str(payout.id), "booking_id": str(payout.booking_id)},
        )
        return ServiceResult.success(
            PayoutExecutionResult(payout=payout, stripe_transfer_id=transfer.id)
        )

    @classmethod
    def _fail_payout(
        cls,
        payout: Payout,
        reason: str,
        actor: User | None = None,
    ) -> ServiceResult[PayoutExecutionResult]:
        with transaction.atomic():
            payout.fail(reason=reason)
            payout.save()
            cls._audit(
                payout,
                "payout_failed",
                actor=actor,
                old_status=PayoutState.PROCESSING,
                new_status=PayoutState.FAILED,
                details={"error": reason},
            )

        cls.get_logger().info(
            "Payout marked as failed",
            extra={"payout_id": str(payout.id), "reason": reason},
        )
        NotificationService.notify(
            user_id=payout.freelancer_id,
            notification_type=NotificationType.PAYOUT_FAILED,
            title="Payout failed",
            message="We could not send your payout. Our team has been alerted.",
            data={"payout_id": str(payout.id)},
        )
        return ServiceResult.failure(reason, error_code="PAYOUT_FAILED")

    @classmethod
    def process_payout_now(
        cls,
        admin: User,
        payout_id: uuid.UUID,
    ) -> ServiceResult[PayoutExecutionResult]:
        """Admin-triggered transfer of a single payout, ignoring its date."""
        cls._require_admin(admin)
        return cls.process_payout(cls.get_payout(payout_id), actor=admin)

    # =========================================================================
    # Admin Operations
    # =========================================================================

    @classmethod
    def retry_payout(cls, admin: User, payout_id: uuid.UUID) -> Payout:
        """
        Put a failed payout back in the queue (FAILED → PENDING, due today).

        Raises:
            InvalidStateTransitionError: Payout is not failed
        """
        cls._require_admin(admin)
        payout = cls.get_payout(payout_id)
        try:
            payout.retry()
        except TransitionNotAllowed as e:
            raise InvalidStateTransitionError(
                f"Cannot retry payout from '{payout.status}'",
                details={"current_status": payout.status, "transition": "retry"},
            ) from e

        with transaction.atomic():
            payout.scheduled_date = timezone.localdate()
            payout.save()
            cls._audit(
                payout,
                "payout_retried",
                actor=admin,
                old_status=PayoutState.FAILED,
                new_status=PayoutState.PENDING,
            )
        return payout

    @classmethod
    def admin_override(
        cls,
        admin: User,
        payout_id: uuid.UUID,
        status: str,
        notes: str = "",
    ) -> Payout:
        """
        Force a payout into any status, bypassing the state machine.

        For reconciling with transfers made outside the platform or
        abandoning unpayable payouts. Always audited.
        """
        cls._require_admin(admin)
        if status not in PayoutState.values:
            raise ValidationError(
                f"Unknown payout status '{status}'",
                error_code="INVALID_PAYOUT_STATUS",
                details={"allowed": list(PayoutState.values)},
            )

        payout = cls.get_payout(payout_id)
        old_status = payout.status
        with transaction.atomic():
            payout.status = status
            if notes:
                payout.admin_notes = notes
            if status == PayoutState.PAID and payout.processed_date is None:
                payout.processed_date = timezone.now()
            payout.save()
            cls._audit(
                payout,
                "admin_override",
                actor=admin,
                old_status=old_status,
                new_status=status,
                details={"notes": notes},
            )

        cls.get_logger().warning(
            "Payout status overridden by admin",
            extra={
                "payout_id": str(payout.id),
                "old_status": old_status,
                "new_status": status,
                "admin_id": admin.pk,
            },
        )
        return payout

    # =========================================================================
    # Queries
    # =========================================================================

    @classmethod
    def get_payout(cls, payout_id: uuid.UUID) -> Payout:
        try:
            return Payout.objects.get(pk=payout_id)
        except Payout.DoesNotExist:
            raise PaymentNotFoundError(
                f"Payout {payout_id} not found",
                details={"payout_id": str(payout_id)},
            )

    @classmethod
    def get_due_payouts(cls, today: date | None = None, limit: int = 500):
        """Pending/scheduled payouts due by ``today`` whose account can receive them."""
        today = today or timezone.localdate()
        return (
            Payout.objects.filter(
                status__in=[PayoutState.PENDING, PayoutState.SCHEDULED],
                scheduled_date__lte=today,
                freelancer__payout_account__payouts_enabled=True,
                freelancer__payout_account__is_verified=True,
            )
            .order_by("scheduled_date", "created_at")[:limit]
        )

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _require_admin(user: User) -> None:
        if not user.is_admin:
            raise PermissionDeniedError(
                "Only admins can manage payouts",
                error_code="ADMIN_REQUIRED",
            )

    @staticmethod
    def _audit(
        payout: Payout,
        action: str,
        actor: User | None = None,
        old_status: str = "",
        new_status: str = "",
        details: dict | None = None,
    ) -> PayoutAuditLog:
        return PayoutAuditLog.objects.create(
            payout=payout,
            actor=actor,
            action=action,
            old_status=old_status,
            new_status=new_status,
            details=details or {},
        )
