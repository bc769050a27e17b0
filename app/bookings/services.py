"""
Booking service: the booking state machine and its money side effects.

Every user-facing transition follows the same shape:

    1. Load the booking, check the actor's role (PermissionDeniedError)
    2. Check the transition against the FSM graph (ValidationError)
    3. In one transaction:
         conditional UPDATE on the source status (the race winner)
         refund / release through EscrowService
         audit row
    4. After commit: notifications (best effort)

A lost conditional update means someone else moved the booking first. For
user actions that is a ConflictError; for sweeps and webhooks it is a
silent no-op.

System-triggered entry points (sweeps, webhook handlers, disputes) live
here as well so the status rules stay in one place:
    expire_booking, auto_confirm_booking,
    handle_payment_succeeded, handle_payment_failed, handle_charge_refunded

Usage:
    from bookings.services import BookingService

    result = BookingService.create_booking(
        client=request.user,
        service_id=service.id,
        scheduled_start=start,
        location_type=LocationType.ONLINE,
    )
    BookingService.accept(freelancer, result.booking.id)
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING

from django.db import IntegrityError
from django.db.models import Q
from django.utils import timezone
from django_fsm import can_proceed

from core.exceptions import (
    ConflictError,
    InternalError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from core.services import BaseService
from disputes.models import OPEN_DISPUTE_STATUSES, Dispute
from notifications.models import NotificationType
from notifications.services import NotificationService
from payments.exceptions import EscrowAlreadySettledError
from payments.models import Payment, PlatformSettings
from payments.services import EscrowOutcome, EscrowService, PayoutService
from payments.state_machines import PaymentStatus

from bookings.availability import ensure_slot_available
from bookings.models import (
    Booking,
    BookingAuditLog,
    BookingPaymentStatus,
    BookingStatus,
    CancelledBy,
    LocationType,
    RescheduleAction,
    RescheduleRequest,
    RescheduleStatus,
    Service,
)
from bookings.pricing import PriceBreakdown, price_for_service
from bookings.refund_policy import RefundCalculation, RefundPolicy, calculate_refund
from bookings.reliability import (
    ReliabilityStatus,
    record_freelancer_cancellation,
    reliability_status,
)

if TYPE_CHECKING:
    from authentication.models import User


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class BookingCreationResult:
    booking: Booking
    payment: Payment
    client_secret: str
    price: PriceBreakdown


@dataclass
class CancellationResult:
    booking: Booking
    refund: RefundCalculation
    refund_issued_pence: int = 0
    released_pence: int = 0
    reliability: ReliabilityStatus | None = None


# =============================================================================
# Booking Service
# =============================================================================


class BookingService(BaseService):
    """
    Owns Booking.status, Booking.payment_status and the booking timers.
    """

    SETTLED_STATUSES = (BookingStatus.CANCELLED, BookingStatus.EXPIRED, BookingStatus.COMPLETED)
    OPEN_STATUSES = (BookingStatus.PENDING, BookingStatus.CONFIRMED)
    RESCHEDULE_CUTOFF_HOURS = 24

    # =========================================================================
    # Creation & Lookup
    # =========================================================================

    @classmethod
    def create_booking(
        cls,
        client: User,
        service_id: uuid.UUID,
        scheduled_start: datetime,
        location_type: str,
        address: str = "",
        client_provides_materials: bool = False,
    ) -> BookingCreationResult:
        """
        Reserve a slot, price it and open a payment intent for the total.

        Raises:
            PermissionDeniedError: Not an active, verified client
            NotFoundError: Service missing or inactive
            ValidationError: Unsupported location, missing address, slot unavailable
            ExternalServiceError: Stripe failure (nothing is persisted)
        """
        if not client.is_client or client.is_suspended:
            raise PermissionDeniedError(
                "Only active clients can create bookings",
                error_code="CLIENT_REQUIRED",
            )
        if not client.email_verified:
            raise PermissionDeniedError(
                "Verify your email address before booking",
                error_code="EMAIL_NOT_VERIFIED",
            )

        service = Service.objects.select_related("freelancer").filter(pk=service_id, is_active=True).first()
        if service is None:
            raise NotFoundError("Service not found", error_code="SERVICE_NOT_FOUND")
        if service.freelancer.is_suspended or not service.freelancer.is_active:
            raise ValidationError(
                "This freelancer is not currently accepting bookings",
                error_code="FREELANCER_UNAVAILABLE",
            )
        if service.freelancer_id == client.pk:
            raise ValidationError("You cannot book your own service", error_code="SELF_BOOKING")

        if location_type not in LocationType.values or not service.supports_location(location_type):
            raise ValidationError(
                "Location type not supported by this service",
                error_code="UNSUPPORTED_LOCATION",
                details={"supported": service.location_types},
            )
        if location_type == LocationType.FREELANCER_TRAVELS_TO_CLIENT and not address.strip():
            raise ValidationError(
                "An address is required when the freelancer travels to you",
                error_code="ADDRESS_REQUIRED",
            )

        now = timezone.now()
        scheduled_end = scheduled_start + timedelta(minutes=service.duration_minutes)
        ensure_slot_available(service.freelancer, scheduled_start, scheduled_end, now)

        platform = PlatformSettings.load()
        price = price_for_service(
            service,
            location_type=location_type,
            client_provides_materials=client_provides_materials,
            platform_fee_percent=platform.platform_fee_percent,
        )

        with cls.atomic():
            booking = Booking.objects.create(
                client=client,
                freelancer_id=service.freelancer_id,
                service=service,
                scheduled_start=scheduled_start,
                scheduled_end=scheduled_end,
                location_type=location_type,
                address=address,
                client_provides_materials=client_provides_materials,
                base_price_pence=price.base_price_pence,
                materials_price_pence=price.materials_price_pence,
                travel_price_pence=price.travel_price_pence,
                platform_fee_pence=price.platform_fee_pence,
                total_pence=price.total_pence,
                status=BookingStatus.PENDING,
                payment_status=BookingPaymentStatus.UNPAID,
                expires_at=now + timedelta(hours=platform.pending_timeout_hours),
            )
            cls._audit(
                booking,
                "created",
                actor=client,
                new_status=BookingStatus.PENDING,
                details={"price": price.to_dict()},
            )

            payment = EscrowService.create_intent(booking)
            Booking.objects.filter(pk=booking.pk).update(
                payment_status=BookingPaymentStatus.PAYMENT_PENDING,
                updated_at=timezone.now(),
            )

        booking.refresh_from_db()
        cls.get_logger().info(
            "Booking created",
            extra={
                "booking_id": str(booking.id),
                "client_id": client.pk,
                "freelancer_id": booking.freelancer_id,
                "total_pence": booking.total_pence,
            },
        )
        return BookingCreationResult(
            booking=booking,
            payment=payment,
            client_secret=payment.client_secret,
            price=price,
        )

    @classmethod
    def get_booking(cls, user: User, booking_id: uuid.UUID) -> Booking:
        """Load a booking visible to ``user`` (a party or an admin)."""
        booking = cls._load(booking_id)
        if not user.is_admin:
            cls._require_party(user, booking)
        return booking

    # =========================================================================
    # Freelancer Response
    # =========================================================================

    @classmethod
    def accept(cls, freelancer: User, booking_id: uuid.UUID) -> Booking:
        booking = cls._load(booking_id)
        cls._require_freelancer(freelancer, booking)
        cls._require_transition(booking, booking.accept)

        with cls.atomic():
            cls._claim(booking, BookingStatus.CONFIRMED, expires_at=None)
            cls._arm_auto_confirm(booking)
            cls._audit(
                booking,
                "accepted",
                actor=freelancer,
                old_status=BookingStatus.PENDING,
                new_status=BookingStatus.CONFIRMED,
            )

        booking.refresh_from_db()
        NotificationService.notify(
            user_id=booking.client_id,
            notification_type=NotificationType.BOOKING_CONFIRMED,
            title="Booking confirmed",
            message=f"Your booking for {booking.scheduled_start:%d %b %Y %H:%M} has been accepted.",
            data={"booking_id": str(booking.id)},
        )
        return booking

    @classmethod
    def decline(cls, freelancer: User, booking_id: uuid.UUID, reason: str = "") -> Booking:
        """
        Decline a pending request. Any paid amount is refunded in full and
        no payout is ever created.
        """
        booking = cls._load(booking_id)
        cls._require_freelancer(freelancer, booking)
        cls._require_transition(booking, booking.decline)

        now = timezone.now()
        with cls.atomic():
            cls._claim(
                booking,
                BookingStatus.CANCELLED,
                cancelled_by=CancelledBy.FREELANCER,
                cancelled_at=now,
                declined_reason=reason,
                declined_at=now,
                expires_at=None,
            )
            outcome = cls._refund_held(booking, amount_pence=None, reason="freelancer_declined")
            cls._audit(
                booking,
                "declined",
                actor=freelancer,
                old_status=BookingStatus.PENDING,
                new_status=BookingStatus.CANCELLED,
                details={
                    "reason": reason,
                    "refund_amount_pence": outcome.refund_amount_pence if outcome else 0,
                },
            )

        booking.refresh_from_db()
        refunded = bool(outcome and outcome.applied)
        NotificationService.notify(
            user_id=booking.client_id,
            notification_type=NotificationType.BOOKING_DECLINED,
            title="Booking declined",
            message="Your booking request was declined"
            + (". A full refund has been initiated." if refunded else "."),
            data={"booking_id": str(booking.id), "refunded": refunded},
        )
        return booking

    # =========================================================================
    # Cancellation
    # =========================================================================

    @classmethod
    def cancel(cls, actor: User, booking_id: uuid.UUID, reason: str = "") -> CancellationResult:
        """
        Cancel a pending or confirmed booking.

        The refund follows the cancellation policy; a freelancer cancellation
        is always refunded in full and counts toward their reliability.
        Whatever the policy keeps from a client cancellation is released to
        the freelancer side and paid out, so the escrow is always settled.
        """
        booking = cls._load(booking_id)
        if actor.pk == booking.client_id:
            cancelled_by = CancelledBy.CLIENT
        elif actor.pk == booking.freelancer_id:
            cancelled_by = CancelledBy.FREELANCER
        else:
            raise PermissionDeniedError(
                "Only the client or freelancer can cancel this booking",
                error_code="NOT_A_PARTY",
            )
        cls._require_transition(booking, booking.cancel)

        platform = PlatformSettings.load()
        now = timezone.now()
        payment = Payment.objects.held().filter(booking=booking).first()
        refund = calculate_refund(
            amount_pence=payment.amount_pence if payment else booking.total_pence,
            scheduled_start=booking.scheduled_start,
            cancelled_at=now,
            cancelled_by=cancelled_by,
            policy=RefundPolicy.from_platform(platform),
        )

        old_status = booking.status
        with cls.atomic():
            cls._claim(
                booking,
                BookingStatus.CANCELLED,
                cancelled_by=cancelled_by,
                cancellation_reason=reason,
                cancelled_at=now,
                expires_at=None,
                auto_confirm_at=None,
            )
            outcome = cls._settle_cancelled(booking, payment, refund, reason=f"{cancelled_by}_cancelled")
            cls._audit(
                booking,
                "cancelled",
                actor=actor,
                old_status=old_status,
                new_status=BookingStatus.CANCELLED,
                details={
                    "cancelled_by": cancelled_by,
                    "reason": reason,
                    **refund.to_dict(),
                    "refund_issued_pence": outcome.refund_amount_pence if outcome else 0,
                    "released_pence": outcome.releasable_pence if outcome else 0,
                },
            )
            if cancelled_by == CancelledBy.FREELANCER:
                record_freelancer_cancellation(booking, now, platform)

        reliability = None
        if cancelled_by == CancelledBy.FREELANCER:
            reliability = reliability_status(booking.freelancer_id, now, platform)
            if reliability.should_warn or reliability.should_suspend:
                NotificationService.notify(
                    user_id=booking.freelancer_id,
                    notification_type=NotificationType.RELIABILITY_WARNING,
                    title="Cancellation warning",
                    message=reliability.message,
                    data=reliability.to_dict(),
                )

        booking.refresh_from_db()
        other_party = booking.client_id if cancelled_by == CancelledBy.FREELANCER else booking.freelancer_id
        message = (
            "The freelancer cancelled your booking. You will receive a full refund."
            if cancelled_by == CancelledBy.FREELANCER
            else f"Your client cancelled the booking. Refund: {refund.refund_percent}%."
        )
        NotificationService.notify(
            user_id=other_party,
            notification_type=NotificationType.BOOKING_CANCELLED,
            title="Booking cancelled",
            message=message,
            data={"booking_id": str(booking.id), **refund.to_dict()},
        )

        return CancellationResult(
            booking=booking,
            refund=refund,
            refund_issued_pence=outcome.refund_amount_pence if outcome else 0,
            released_pence=outcome.releasable_pence if outcome else 0,
            reliability=reliability,
        )

    # =========================================================================
    # Completion
    # =========================================================================

    @classmethod
    def confirm_service(cls, actor: User, booking_id: uuid.UUID) -> Booking:
        """
        Client (or admin) confirms the service happened: release escrow,
        complete the booking, create the payout.

        Raises:
            EscrowAlreadySettledError: Escrow was released or refunded meanwhile
        """
        booking = cls._load(booking_id)
        if not (actor.pk == booking.client_id or actor.is_admin):
            raise PermissionDeniedError(
                "Only the client or an admin can confirm this service",
                error_code="NOT_ALLOWED",
            )
        cls._require_transition(booking, booking.complete)
        if booking.payment_status != BookingPaymentStatus.PAID:
            raise ValidationError(
                "Booking has not been paid",
                error_code="NOT_PAID",
                details={"payment_status": booking.payment_status},
            )

        payment = Payment.objects.held().filter(booking=booking).first()
        if payment is None:
            if not Payment.objects.filter(booking=booking, status__in=[PaymentStatus.SUCCEEDED, PaymentStatus.REFUNDED]).exists():
                raise InternalError(
                    "Paid booking has no captured payment",
                    error_code="PAYMENT_MISSING",
                    details={"booking_id": str(booking.id)},
                )
            raise EscrowAlreadySettledError(
                "Payment for this booking is not held in escrow",
                details={"booking_id": str(booking.id)},
            )

        completed = cls._release_and_complete(booking, payment, actor=actor, action="service_confirmed")
        if not completed:
            raise EscrowAlreadySettledError(
                "Payment for this booking has already been settled",
                details={"booking_id": str(booking.id)},
            )

        booking.refresh_from_db()
        NotificationService.notify(
            user_id=booking.freelancer_id,
            notification_type=NotificationType.PAYMENT_RELEASED,
            title="Payment released",
            message="The client confirmed the service. Your payout has been scheduled.",
            data={"booking_id": str(booking.id)},
        )
        return booking

    @classmethod
    def auto_confirm_booking(cls, booking: Booking) -> bool:
        """
        Sweep entry point: release and complete once the grace period ends.

        The booking row is locked and checked for an open dispute in the
        same transaction as the release; dispute creation takes the same
        lock, so a dispute raised after the sweep picked the booking still
        stops the release.

        Returns:
            True if this call completed the booking
        """
        with cls.atomic():
            Booking.objects.select_for_update().filter(pk=booking.pk).first()
            if Dispute.objects.filter(booking_id=booking.pk, status__in=OPEN_DISPUTE_STATUSES).exists():
                cls.get_logger().info(
                    "Auto-confirm skipped, booking has an open dispute",
                    extra={"booking_id": str(booking.id)},
                )
                return False

            payment = Payment.objects.held().filter(booking=booking).first()
            if payment is None:
                return False

            if not cls._release_and_complete(booking, payment, actor=None, action="auto_confirmed"):
                return False

        NotificationService.notify(
            user_id=booking.freelancer_id,
            notification_type=NotificationType.PAYMENT_RELEASED,
            title="Payment released",
            message="Your booking was automatically confirmed. Your payout has been scheduled.",
            data={"booking_id": str(booking.id)},
        )
        NotificationService.notify(
            user_id=booking.client_id,
            notification_type=NotificationType.SERVICE_AUTO_CONFIRMED,
            title="Service confirmed",
            message="Your booking was automatically confirmed and the payment released.",
            data={"booking_id": str(booking.id)},
        )
        return True

    @classmethod
    def _release_and_complete(
        cls,
        booking: Booking,
        payment: Payment,
        actor: User | None,
        action: str,
    ) -> bool:
        now = timezone.now()
        with cls.atomic():
            outcome = EscrowService.release(payment)
            if not outcome.applied:
                return False

            completed = Booking.objects.filter(
                pk=booking.pk,
                status=BookingStatus.CONFIRMED,
            ).update(
                status=BookingStatus.COMPLETED,
                completed_at=now,
                auto_confirm_at=None,
                updated_at=now,
            )
            if not completed:
                # Rolls back the release with it
                raise ConflictError(
                    "Booking is no longer confirmed",
                    error_code="BOOKING_STATE_CHANGED",
                    details={"booking_id": str(booking.id)},
                )

            cls._audit(
                booking,
                action,
                actor=actor,
                old_status=BookingStatus.CONFIRMED,
                new_status=BookingStatus.COMPLETED,
                details={"releasable_pence": outcome.releasable_pence},
            )
            PayoutService.create_payout_safely(booking, outcome.releasable_pence, actor=actor)

        cls.get_logger().info(
            "Booking completed and escrow released",
            extra={
                "booking_id": str(booking.id),
                "action": action,
                "releasable_pence": outcome.releasable_pence,
            },
        )
        return True

    # =========================================================================
    # Expiry
    # =========================================================================

    @classmethod
    def expire_booking(cls, booking: Booking) -> bool:
        """
        Sweep entry point: pending past expires_at → expired.

        A payment that already succeeded is refunded in full so no money is
        stranded on an expired booking.
        """
        now = timezone.now()
        with cls.atomic():
            expired = Booking.objects.filter(
                pk=booking.pk,
                status=BookingStatus.PENDING,
                expires_at__lte=now,
            ).update(status=BookingStatus.EXPIRED, expires_at=None, updated_at=now)
            if not expired:
                return False

            outcome = cls._refund_held(booking, amount_pence=None, reason="booking_expired")
            cls._audit(
                booking,
                "auto_expired",
                old_status=BookingStatus.PENDING,
                new_status=BookingStatus.EXPIRED,
                details={"refund_amount_pence": outcome.refund_amount_pence if outcome else 0},
            )

        for user_id in (booking.client_id, booking.freelancer_id):
            NotificationService.notify(
                user_id=user_id,
                notification_type=NotificationType.BOOKING_EXPIRED,
                title="Booking expired",
                message="The booking request expired before the freelancer responded.",
                data={"booking_id": str(booking.id)},
            )
        return True

    # =========================================================================
    # Rescheduling
    # =========================================================================

    @classmethod
    def request_reschedule(
        cls,
        actor: User,
        booking_id: uuid.UUID,
        new_start: datetime,
        reason: str = "",
    ) -> RescheduleRequest:
        """
        Propose moving a pending or confirmed booking to ``new_start``.

        Either party may ask. The duration is kept, the new slot must pass
        the same availability rules as a new booking, and nothing can be
        moved within RESCHEDULE_CUTOFF_HOURS of the current start.

        Raises:
            PermissionDeniedError: Not a party to the booking
            ValidationError: Booking closed, too close to start, slot unavailable
            ConflictError: Another request for this booking is pending
        """
        booking = cls._load(booking_id)
        cls._require_party(actor, booking)
        now = timezone.now()
        cls._require_reschedulable(booking, now)
        if booking.reschedule_requests.filter(status=RescheduleStatus.PENDING).exists():
            raise ConflictError(
                "A reschedule request is already pending for this booking",
                error_code="RESCHEDULE_PENDING",
                details={"booking_id": str(booking.id)},
            )

        with cls.atomic():
            reschedule = cls._open_reschedule(booking, actor, new_start, reason, now)

        NotificationService.notify(
            user_id=cls._other_party_id(booking, actor),
            notification_type=NotificationType.RESCHEDULE_REQUESTED,
            title="Reschedule requested",
            message=(
                f"The other party would like to move your booking from "
                f"{booking.scheduled_start:%d %b %Y %H:%M} to {new_start:%d %b %Y %H:%M}."
            ),
            data={"booking_id": str(booking.id), "reschedule_request_id": str(reschedule.id)},
        )
        return reschedule

    @classmethod
    def respond_reschedule(
        cls,
        actor: User,
        request_id: uuid.UUID,
        action: str,
        alternative_start: datetime | None = None,
        message: str = "",
    ) -> RescheduleRequest:
        """
        Answer a pending reschedule request as the party who did not make it.

        accept               moves the booking; a running auto-confirm timer
                             follows the new end time
        decline              keeps the current time
        suggest_alternative  closes this request and opens a new pending one
                             from the responder for ``alternative_start``

        Returns the answered request, or the new request for a suggestion.
        """
        reschedule = cls._load_reschedule(request_id)
        booking = reschedule.booking
        cls._require_party(actor, booking)
        if actor.pk == reschedule.requested_by_id:
            raise PermissionDeniedError(
                "You cannot respond to your own reschedule request",
                error_code="OWN_RESCHEDULE_REQUEST",
            )
        if reschedule.status != RescheduleStatus.PENDING:
            raise ValidationError(
                f"This reschedule request is already {reschedule.status}",
                error_code="RESCHEDULE_NOT_PENDING",
                details={"status": reschedule.status},
            )
        if action not in RescheduleAction.values:
            raise ValidationError(
                f"Unknown reschedule action: {action}",
                error_code="INVALID_RESCHEDULE_ACTION",
                details={"allowed": RescheduleAction.values},
            )

        now = timezone.now()
        if action == RescheduleAction.DECLINE:
            return cls._decline_reschedule(reschedule, actor, message, now)

        cls._require_reschedulable(booking, now)
        if action == RescheduleAction.ACCEPT:
            return cls._accept_reschedule(reschedule, actor, message, now)

        if alternative_start is None:
            raise ValidationError(
                "An alternative start time is required",
                error_code="ALTERNATIVE_REQUIRED",
            )
        return cls._counter_reschedule(reschedule, actor, alternative_start, message, now)

    @classmethod
    def list_reschedule_requests(cls, user: User, booking_id: uuid.UUID):
        """Every reschedule request for a booking, newest first."""
        booking = cls.get_booking(user, booking_id)
        return booking.reschedule_requests.select_related("requested_by").order_by("-created_at")

    @classmethod
    def pending_reschedule_requests(cls, user: User):
        """Pending requests on the user's open bookings that await the user's answer."""
        return (
            RescheduleRequest.objects.filter(
                status=RescheduleStatus.PENDING,
                booking__status__in=cls.OPEN_STATUSES,
            )
            .filter(Q(booking__client=user) | Q(booking__freelancer=user))
            .exclude(requested_by=user)
            .select_related("booking", "requested_by")
            .order_by("-created_at")
        )

    @classmethod
    def _open_reschedule(
        cls,
        booking: Booking,
        actor: User,
        new_start: datetime,
        reason: str,
        now: datetime,
    ) -> RescheduleRequest:
        """Create a pending request. Runs inside the caller's transaction."""
        if new_start == booking.scheduled_start:
            raise ValidationError(
                "The booking already starts at this time",
                error_code="RESCHEDULE_SAME_TIME",
            )
        new_end = new_start + (booking.scheduled_end - booking.scheduled_start)
        ensure_slot_available(booking.freelancer, new_start, new_end, now, exclude_booking_id=booking.pk)

        try:
            with cls.atomic():
                reschedule = RescheduleRequest.objects.create(
                    booking=booking,
                    requested_by=actor,
                    original_start=booking.scheduled_start,
                    original_end=booking.scheduled_end,
                    proposed_start=new_start,
                    proposed_end=new_end,
                    reason=reason,
                )
        except IntegrityError as e:
            raise ConflictError(
                "A reschedule request is already pending for this booking",
                error_code="RESCHEDULE_PENDING",
                details={"booking_id": str(booking.id)},
            ) from e

        cls._audit(
            booking,
            "reschedule_requested",
            actor=actor,
            new_status=booking.status,
            details={
                "reschedule_request_id": str(reschedule.id),
                "proposed_start": new_start.isoformat(),
                "reason": reason,
            },
        )
        cls.get_logger().info(
            "Reschedule requested",
            extra={
                "booking_id": str(booking.id),
                "reschedule_request_id": str(reschedule.id),
                "requested_by": actor.pk,
            },
        )
        return reschedule

    @classmethod
    def _accept_reschedule(
        cls,
        reschedule: RescheduleRequest,
        actor: User,
        message: str,
        now: datetime,
    ) -> RescheduleRequest:
        booking = reschedule.booking
        ensure_slot_available(
            booking.freelancer,
            reschedule.proposed_start,
            reschedule.proposed_end,
            now,
            exclude_booking_id=booking.pk,
        )

        with cls.atomic():
            cls._close_reschedule(reschedule, RescheduleStatus.ACCEPTED, actor, message, now)
            moved = Booking.objects.filter(
                pk=booking.pk,
                status__in=cls.OPEN_STATUSES,
                scheduled_start=reschedule.original_start,
            ).update(
                scheduled_start=reschedule.proposed_start,
                scheduled_end=reschedule.proposed_end,
                updated_at=now,
            )
            if not moved:
                raise ConflictError(
                    "Booking was modified by another request",
                    error_code="BOOKING_STATE_CHANGED",
                    details={"booking_id": str(booking.id)},
                )
            grace = timedelta(hours=PlatformSettings.load().auto_confirm_grace_hours)
            Booking.objects.filter(pk=booking.pk, auto_confirm_at__isnull=False).update(
                auto_confirm_at=reschedule.proposed_end + grace,
            )
            cls._audit(
                booking,
                "rescheduled",
                actor=actor,
                new_status=booking.status,
                details={
                    "reschedule_request_id": str(reschedule.id),
                    "old_start": reschedule.original_start.isoformat(),
                    "new_start": reschedule.proposed_start.isoformat(),
                },
            )

        reschedule.refresh_from_db()
        NotificationService.notify(
            user_id=reschedule.requested_by_id,
            notification_type=NotificationType.BOOKING_RESCHEDULED,
            title="Booking rescheduled",
            message=f"Your booking now starts at {reschedule.proposed_start:%d %b %Y %H:%M}.",
            data={"booking_id": str(booking.id), "reschedule_request_id": str(reschedule.id)},
        )
        return reschedule

    @classmethod
    def _decline_reschedule(
        cls,
        reschedule: RescheduleRequest,
        actor: User,
        message: str,
        now: datetime,
    ) -> RescheduleRequest:
        booking = reschedule.booking
        with cls.atomic():
            cls._close_reschedule(reschedule, RescheduleStatus.DECLINED, actor, message, now)
            cls._audit(
                booking,
                "reschedule_declined",
                actor=actor,
                new_status=booking.status,
                details={"reschedule_request_id": str(reschedule.id), "message": message},
            )

        reschedule.refresh_from_db()
        NotificationService.notify(
            user_id=reschedule.requested_by_id,
            notification_type=NotificationType.RESCHEDULE_DECLINED,
            title="Reschedule declined",
            message=f"Your booking stays at {booking.scheduled_start:%d %b %Y %H:%M}.",
            data={"booking_id": str(booking.id), "reschedule_request_id": str(reschedule.id)},
        )
        return reschedule

    @classmethod
    def _counter_reschedule(
        cls,
        reschedule: RescheduleRequest,
        actor: User,
        alternative_start: datetime,
        message: str,
        now: datetime,
    ) -> RescheduleRequest:
        booking = reschedule.booking
        alternative_end = alternative_start + (reschedule.proposed_end - reschedule.proposed_start)
        with cls.atomic():
            cls._close_reschedule(
                reschedule,
                RescheduleStatus.COUNTER_PROPOSED,
                actor,
                message,
                now,
                counter_proposed_start=alternative_start,
                counter_proposed_end=alternative_end,
            )
            counter = cls._open_reschedule(booking, actor, alternative_start, message, now)
            cls._audit(
                booking,
                "reschedule_counter_proposed",
                actor=actor,
                new_status=booking.status,
                details={
                    "reschedule_request_id": str(reschedule.id),
                    "counter_request_id": str(counter.id),
                },
            )

        NotificationService.notify(
            user_id=reschedule.requested_by_id,
            notification_type=NotificationType.RESCHEDULE_REQUESTED,
            title="Alternative time suggested",
            message=f"The other party suggested {alternative_start:%d %b %Y %H:%M} instead.",
            data={"booking_id": str(booking.id), "reschedule_request_id": str(counter.id)},
        )
        return counter

    @staticmethod
    def _close_reschedule(
        reschedule: RescheduleRequest,
        status: str,
        actor: User,
        message: str,
        now: datetime,
        **fields,
    ) -> None:
        """Conditional UPDATE from pending to ``status``."""
        changed = RescheduleRequest.objects.filter(
            pk=reschedule.pk,
            status=RescheduleStatus.PENDING,
        ).update(
            status=status,
            responded_by=actor,
            responded_at=now,
            response_message=message,
            updated_at=now,
            **fields,
        )
        if not changed:
            raise ConflictError(
                "Reschedule request was answered by another request",
                error_code="RESCHEDULE_STATE_CHANGED",
                details={"reschedule_request_id": str(reschedule.id)},
            )

    # =========================================================================
    # Payment Operations
    # =========================================================================

    @classmethod
    def checkout(cls, client: User, booking_id: uuid.UUID) -> Payment:
        """Re-issue (or reuse) the payment intent for an unpaid booking."""
        booking = cls._load(booking_id)
        if client.pk != booking.client_id:
            raise PermissionDeniedError("Only the client can pay for this booking", error_code="NOT_CLIENT")
        if booking.status not in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
            raise ValidationError(
                f"Cannot pay for a {booking.status} booking",
                error_code="INVALID_BOOKING_STATE",
            )
        if booking.payment_status not in (
            BookingPaymentStatus.UNPAID,
            BookingPaymentStatus.PAYMENT_PENDING,
            BookingPaymentStatus.PAYMENT_FAILED,
        ):
            raise ValidationError(
                "Booking has already been paid",
                error_code="ALREADY_PAID",
                details={"payment_status": booking.payment_status},
            )

        with cls.atomic():
            payment = EscrowService.reuse_or_create_intent(booking)
            Booking.objects.filter(pk=booking.pk).update(
                payment_status=BookingPaymentStatus.PAYMENT_PENDING,
                updated_at=timezone.now(),
            )
        return payment

    @classmethod
    def payment_status(cls, user: User, booking_id: uuid.UUID) -> dict:
        booking = cls.get_booking(user, booking_id)
        return {**EscrowService.payment_status(booking), "booking_payment_status": booking.payment_status}

    @classmethod
    def request_refund(
        cls,
        actor: User,
        booking_id: uuid.UUID,
        amount_pence: int | None = None,
        reason: str = "requested_by_customer",
    ) -> EscrowOutcome:
        """
        Refund a paid booking's held escrow (client or admin). The booking
        status is unchanged.

        Once a booking is cancelled, expired or completed its money has been
        settled by that transition; only an admin may refund it afterwards.

        Raises:
            EscrowAlreadySettledError: Escrow released or refunded already
        """
        booking = cls._load(booking_id)
        if not (actor.pk == booking.client_id or actor.is_admin):
            raise PermissionDeniedError(
                "Only the client or an admin can request a refund",
                error_code="NOT_ALLOWED",
            )
        if booking.status in cls.SETTLED_STATUSES and not actor.is_admin:
            raise PermissionDeniedError(
                f"Refunds for {booking.status} bookings are handled by an admin",
                error_code="BOOKING_CLOSED",
                details={"status": booking.status},
            )
        if booking.payment_status != BookingPaymentStatus.PAID:
            raise ValidationError(
                "Booking has not been paid",
                error_code="NOT_PAID",
                details={"payment_status": booking.payment_status},
            )

        payment = Payment.objects.filter(booking=booking, status__in=[PaymentStatus.SUCCEEDED, PaymentStatus.REFUNDED]).first()
        if payment is None:
            raise NotFoundError("No successful payment found for this booking", error_code="PAYMENT_NOT_FOUND")
        if not payment.is_held:
            raise EscrowAlreadySettledError(
                f"Payment already {payment.escrow_status}",
                details={"escrow_status": payment.escrow_status},
            )

        with cls.atomic():
            outcome = cls._refund_held(booking, amount_pence=amount_pence, reason=reason, payment=payment)
            if not outcome.applied:
                raise EscrowAlreadySettledError(
                    f"Payment already {outcome.payment.escrow_status}",
                    details={"escrow_status": outcome.payment.escrow_status},
                )
            cls._audit(
                booking,
                "refund_initiated",
                actor=actor,
                new_status=booking.status,
                details={
                    "refund_id": outcome.refund_id,
                    "refund_amount_pence": outcome.refund_amount_pence,
                    "reason": reason,
                },
            )

        NotificationService.notify(
            user_id=booking.client_id,
            notification_type=NotificationType.BOOKING_REFUNDED,
            title="Refund processed",
            message=f"£{outcome.refund_amount_pence / 100:.2f} has been refunded to you.",
            data={"booking_id": str(booking.id), "refund_amount_pence": outcome.refund_amount_pence},
        )
        return outcome

    # =========================================================================
    # Provider Callbacks (webhook handlers)
    # =========================================================================

    @classmethod
    def handle_payment_succeeded(cls, payment: Payment, charge_id: str = "") -> bool:
        """
        payment_intent.succeeded: mark paid, arm auto-confirm if confirmed.

        If the booking was cancelled or expired before the money arrived,
        the payment is refunded in full instead. A retried intent captured
        after the booking was already paid through another payment is
        refunded as a duplicate.

        Returns:
            True if this call changed anything (replays return False)
        """
        booking = payment.booking
        refunded_instead = False
        duplicate = False
        with cls.atomic():
            if EscrowService.mark_succeeded(payment, charge_id):
                now = timezone.now()
                marked = Booking.objects.filter(
                    pk=booking.pk,
                    status__in=[BookingStatus.PENDING, BookingStatus.CONFIRMED],
                ).update(payment_status=BookingPaymentStatus.PAID, updated_at=now)

                if marked:
                    booking.refresh_from_db()
                    cls._arm_auto_confirm(booking)
                    cls._audit(
                        booking,
                        "payment_succeeded",
                        new_status=booking.status,
                        details={"payment_id": str(payment.id), "amount_pence": payment.amount_pence},
                    )
                else:
                    refunded_instead = True
                    outcome = EscrowService.refund(payment, reason="booking_no_longer_active")
                    Booking.objects.filter(pk=booking.pk).update(
                        payment_status=BookingPaymentStatus.REFUNDED,
                        updated_at=now,
                    )
                    cls._audit(
                        booking,
                        "refunded_after_cancellation",
                        new_status=booking.status,
                        details={"payment_id": str(payment.id), "refund_id": outcome.refund_id},
                    )
            elif payment.status == PaymentStatus.FAILED:
                outcome = EscrowService.refund_duplicate_capture(payment, charge_id)
                if not outcome.applied:
                    return False
                duplicate = True
                cls._audit(
                    booking,
                    "duplicate_payment_refunded",
                    new_status=booking.status,
                    details={"payment_id": str(payment.id), "refund_id": outcome.refund_id},
                )
            else:
                return False

        booking.refresh_from_db()
        data = {"booking_id": str(booking.id)}
        if duplicate:
            NotificationService.notify(
                user_id=booking.client_id,
                notification_type=NotificationType.BOOKING_REFUNDED,
                title="Duplicate payment refunded",
                message="This booking was already paid, so your extra payment has been refunded in full.",
                data=data,
            )
            return True

        if refunded_instead:
            NotificationService.notify(
                user_id=booking.client_id,
                notification_type=NotificationType.BOOKING_REFUNDED,
                title="Payment refunded",
                message="Your booking was no longer active, so your payment has been refunded in full.",
                data=data,
            )
            return True

        if booking.status == BookingStatus.PENDING:
            NotificationService.notify(
                user_id=booking.freelancer_id,
                notification_type=NotificationType.NEW_BOOKING_REQUEST,
                title="New paid booking request",
                message=f"A client has booked and paid for {booking.scheduled_start:%d %b %Y %H:%M}. Please review and accept.",
                data=data,
            )
        NotificationService.notify(
            user_id=booking.client_id,
            notification_type=NotificationType.PAYMENT_CONFIRMED,
            title="Payment confirmed",
            message=(
                f"Your payment of £{payment.amount_pence / 100:.2f} was successful. "
                "It is held securely until the service is completed."
            ),
            data=data,
        )
        return True

    @classmethod
    def handle_payment_failed(cls, payment: Payment) -> bool:
        booking = payment.booking
        with cls.atomic():
            if not EscrowService.mark_failed(payment):
                return False
            Booking.objects.filter(
                pk=booking.pk,
                payment_status__in=[BookingPaymentStatus.UNPAID, BookingPaymentStatus.PAYMENT_PENDING],
            ).update(payment_status=BookingPaymentStatus.PAYMENT_FAILED, updated_at=timezone.now())
            cls._audit(
                booking,
                "payment_failed",
                new_status=booking.status,
                details={"payment_id": str(payment.id)},
            )

        NotificationService.notify(
            user_id=booking.client_id,
            notification_type=NotificationType.PAYMENT_FAILED,
            title="Payment failed",
            message="Your payment could not be processed. Please try again.",
            data={"booking_id": str(booking.id)},
        )
        return True

    @classmethod
    def handle_charge_refunded(cls, payment: Payment, refunded_pence: int, refund_id: str = "") -> bool:
        """
        charge.refunded: settle a still-held escrow as refunded.

        Refunds we issued ourselves already settled the escrow, so for them
        this only refreshes the provider refund status.
        """
        booking = payment.booking
        with cls.atomic():
            outcome = EscrowService.record_external_refund(payment, refunded_pence, refund_id)
            if not outcome.applied:
                if refund_id:
                    Payment.objects.filter(pk=payment.pk, refund_id=refund_id).update(refund_status="succeeded")
                return False

            full = outcome.refund_amount_pence >= payment.amount_pence
            Booking.objects.filter(pk=booking.pk).update(
                payment_status=BookingPaymentStatus.REFUNDED if full else BookingPaymentStatus.PARTIALLY_REFUNDED,
                auto_confirm_at=None,
                updated_at=timezone.now(),
            )
            cls._audit(
                booking,
                "refund_recorded",
                new_status=booking.status,
                details={"refund_id": refund_id, "refund_amount_pence": outcome.refund_amount_pence},
            )

        NotificationService.notify(
            user_id=booking.client_id,
            notification_type=NotificationType.BOOKING_REFUNDED,
            title="Refund processed",
            message=f"Your {'full' if full else 'partial'} refund has been processed.",
            data={"booking_id": str(booking.id), "refund_amount_pence": outcome.refund_amount_pence},
        )
        return True

    # =========================================================================
    # Dispute Outcomes
    # =========================================================================

    @classmethod
    def complete_after_dispute(
        cls,
        booking: Booking,
        admin: User,
        outcome: EscrowOutcome,
        dispute_id: uuid.UUID,
    ) -> bool:
        """
        Record a dispute resolution that released escrow (fully or after a
        partial refund): confirmed → completed and create the payout.

        Runs inside the caller's transaction. A booking already completed
        keeps its status; the payout is still created from the release.
        """
        now = timezone.now()
        fields = {"updated_at": now, "auto_confirm_at": None}
        if outcome.refund_amount_pence:
            fields["payment_status"] = BookingPaymentStatus.PARTIALLY_REFUNDED

        completed = Booking.objects.filter(
            pk=booking.pk,
            status=BookingStatus.CONFIRMED,
        ).update(status=BookingStatus.COMPLETED, completed_at=now, **fields)
        if not completed:
            Booking.objects.filter(pk=booking.pk).update(**fields)

        cls._audit(
            booking,
            "dispute_released",
            actor=admin,
            old_status=BookingStatus.CONFIRMED if completed else booking.status,
            new_status=BookingStatus.COMPLETED if completed else booking.status,
            details={
                "dispute_id": str(dispute_id),
                "refund_amount_pence": outcome.refund_amount_pence,
                "releasable_pence": outcome.releasable_pence,
            },
        )
        if outcome.releasable_pence > 0:
            PayoutService.create_payout_safely(booking, outcome.releasable_pence, actor=admin)
        return bool(completed)

    @classmethod
    def cancel_after_dispute(
        cls,
        booking: Booking,
        admin: User,
        outcome: EscrowOutcome,
        dispute_id: uuid.UUID,
    ) -> bool:
        """
        Record a dispute resolution that refunded the client in full:
        pending/confirmed → cancelled (by admin). Runs inside the caller's
        transaction.
        """
        now = timezone.now()
        old_status = booking.status
        cancelled = Booking.objects.filter(
            pk=booking.pk,
            status__in=[BookingStatus.PENDING, BookingStatus.CONFIRMED],
        ).update(
            status=BookingStatus.CANCELLED,
            cancelled_by=CancelledBy.ADMIN,
            cancellation_reason="dispute_full_refund",
            cancelled_at=now,
            expires_at=None,
            auto_confirm_at=None,
            payment_status=BookingPaymentStatus.REFUNDED,
            updated_at=now,
        )
        if not cancelled:
            Booking.objects.filter(pk=booking.pk).update(
                payment_status=BookingPaymentStatus.REFUNDED,
                updated_at=now,
            )

        cls._audit(
            booking,
            "dispute_refunded",
            actor=admin,
            old_status=old_status,
            new_status=BookingStatus.CANCELLED if cancelled else old_status,
            details={
                "dispute_id": str(dispute_id),
                "refund_id": outcome.refund_id,
                "refund_amount_pence": outcome.refund_amount_pence,
            },
        )
        return bool(cancelled)

    # =========================================================================
    # Internals
    # =========================================================================

    @staticmethod
    def _load(booking_id: uuid.UUID) -> Booking:
        try:
            return Booking.objects.get(pk=booking_id)
        except (Booking.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(
                "Booking not found",
                error_code="BOOKING_NOT_FOUND",
                details={"booking_id": str(booking_id)},
            )

    @staticmethod
    def _load_reschedule(request_id: uuid.UUID) -> RescheduleRequest:
        try:
            return RescheduleRequest.objects.select_related("booking").get(pk=request_id)
        except (RescheduleRequest.DoesNotExist, ValueError, TypeError):
            raise NotFoundError(
                "Reschedule request not found",
                error_code="RESCHEDULE_NOT_FOUND",
                details={"reschedule_request_id": str(request_id)},
            )

    @staticmethod
    def _require_party(user: User, booking: Booking) -> None:
        if not booking.is_party(user):
            raise PermissionDeniedError(
                "You do not have access to this booking",
                error_code="NOT_A_PARTY",
            )

    @staticmethod
    def _other_party_id(booking: Booking, user: User):
        return booking.freelancer_id if user.pk == booking.client_id else booking.client_id

    @classmethod
    def _require_reschedulable(cls, booking: Booking, now: datetime) -> None:
        if booking.status not in cls.OPEN_STATUSES:
            raise ValidationError(
                f"Cannot reschedule a {booking.status} booking",
                error_code="INVALID_BOOKING_STATE",
                details={"status": booking.status},
            )
        if booking.scheduled_start - now < timedelta(hours=cls.RESCHEDULE_CUTOFF_HOURS):
            raise ValidationError(
                f"Bookings cannot be rescheduled within {cls.RESCHEDULE_CUTOFF_HOURS} hours of the start",
                error_code="RESCHEDULE_TOO_LATE",
                details={"cutoff_hours": cls.RESCHEDULE_CUTOFF_HOURS},
            )

    @staticmethod
    def _require_freelancer(user: User, booking: Booking) -> None:
        if user.pk != booking.freelancer_id:
            raise PermissionDeniedError(
                "Only the booked freelancer can do this",
                error_code="NOT_FREELANCER",
            )

    @staticmethod
    def _require_transition(booking: Booking, transition) -> None:
        if not can_proceed(transition):
            raise ValidationError(
                f"Cannot {transition.__name__} a {booking.status} booking",
                error_code="INVALID_BOOKING_STATE",
                details={"status": booking.status, "transition": transition.__name__},
            )

    @staticmethod
    def _claim(booking: Booking, target: str, **fields) -> None:
        """Conditional UPDATE from the booking's current status to ``target``."""
        now = timezone.now()
        changed = Booking.objects.filter(
            pk=booking.pk,
            status=booking.status,
        ).update(status=target, updated_at=now, **fields)
        if not changed:
            raise ConflictError(
                "Booking was modified by another request",
                error_code="BOOKING_STATE_CHANGED",
                details={"booking_id": str(booking.id), "expected_status": booking.status},
            )

    @staticmethod
    def _arm_auto_confirm(booking: Booking) -> None:
        """
        Set auto_confirm_at once the booking is both paid and confirmed.

        Called from accept and from the payment webhook; whichever runs
        second finds both conditions true.
        """
        grace = timedelta(hours=PlatformSettings.load().auto_confirm_grace_hours)
        Booking.objects.filter(
            pk=booking.pk,
            status=BookingStatus.CONFIRMED,
            payment_status=BookingPaymentStatus.PAID,
            auto_confirm_at__isnull=True,
        ).update(auto_confirm_at=booking.scheduled_end + grace, expires_at=None)

    @classmethod
    def _refund_held(
        cls,
        booking: Booking,
        amount_pence: int | None,
        reason: str,
        payment: Payment | None = None,
    ) -> EscrowOutcome | None:
        """
        Refund the booking's held escrow, if any, and record the refund on
        the booking's payment_status. Runs inside the caller's transaction.
        """
        payment = payment or Payment.objects.held().filter(booking=booking).first()
        if payment is None:
            return None

        outcome = EscrowService.refund(payment, amount_pence=amount_pence, reason=reason)
        if outcome.applied:
            full = outcome.refund_amount_pence >= payment.amount_pence
            Booking.objects.filter(pk=booking.pk).update(
                payment_status=BookingPaymentStatus.REFUNDED if full else BookingPaymentStatus.PARTIALLY_REFUNDED,
                updated_at=timezone.now(),
            )
        return outcome

    @classmethod
    def _settle_cancelled(
        cls,
        booking: Booking,
        payment: Payment | None,
        refund: RefundCalculation,
        reason: str,
    ) -> EscrowOutcome | None:
        """
        Settle the escrow of a booking being cancelled. Runs inside the
        caller's transaction.

        full refund     held → refunded
        partial refund  refund the client's share, release the rest
        no refund       release everything
        Anything released is paid out to the freelancer.
        """
        if payment is None:
            return None
        if refund.refund_amount_pence >= payment.amount_pence:
            return cls._refund_held(booking, amount_pence=None, reason=reason, payment=payment)

        if refund.refund_amount_pence > 0:
            outcome = EscrowService.refund_and_release(payment, refund.refund_amount_pence, reason=reason)
            if outcome.applied:
                Booking.objects.filter(pk=booking.pk).update(
                    payment_status=BookingPaymentStatus.PARTIALLY_REFUNDED,
                    updated_at=timezone.now(),
                )
        else:
            outcome = EscrowService.release(payment)

        if outcome.applied and outcome.releasable_pence > 0:
            PayoutService.create_payout_safely(booking, outcome.releasable_pence)
        return outcome

    @staticmethod
    def _audit(
        booking: Booking,
        action: str,
        actor: User | None = None,
        old_status: str = "",
        new_status: str = "",
        details: dict | None = None,
    ) -> BookingAuditLog:
        return BookingAuditLog.objects.create(
            booking=booking,
            actor=actor,
            action=action,
            old_status=old_status,
            new_status=new_status,
            details=details or {},
        )
