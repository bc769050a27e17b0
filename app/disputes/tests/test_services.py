"""
Tests for DisputeService.

Resolutions move money through EscrowService, so each financial outcome
is checked on the payment, the booking and the resulting payout.
"""

from datetime import timedelta

import pytest
from django.utils import timezone
from freezegun import freeze_time

from authentication.models import AccountStatus
from bookings.models import BookingPaymentStatus, BookingStatus, CancelledBy
from bookings.services import BookingService
from bookings.tests.factories import BookingFactory
from core.exceptions import ConflictError, NotFoundError, PermissionDeniedError, ValidationError
from disputes.models import DisputeCategory, DisputeStatus, ResolutionType
from disputes.services import DisputeService
from disputes.tests.factories import DisputeFactory
from notifications.models import Notification, NotificationType
from payments.models import Payment, Payout
from payments.state_machines import EscrowStatus, PaymentStatus
from payments.tests.factories import PaymentFactory


def actions(dispute) -> list[str]:
    return list(dispute.audit_logs.order_by("created_at").values_list("action", flat=True))


@pytest.fixture
def disputed(db):
    """A new dispute on a confirmed booking whose £100 payment is held."""
    dispute = DisputeFactory()
    PaymentFactory(booking=dispute.booking)
    return dispute


# =============================================================================
# Creation
# =============================================================================


class TestCreateDispute:
    def test_client_raises_dispute(self, db, admin_user):
        booking = BookingFactory(confirmed_paid=True)

        dispute = DisputeService.create_dispute(
            booking.client, booking.id, DisputeCategory.NO_SHOW, "Nobody turned up."
        )

        assert dispute.status == DisputeStatus.NEW
        assert dispute.raised_by == booking.client
        assert actions(dispute) == ["dispute_created"]
        assert Notification.objects.filter(
            recipient=booking.freelancer, notification_type=NotificationType.DISPUTE_CREATED
        ).exists()
        assert Notification.objects.filter(
            recipient=admin_user, notification_type=NotificationType.DISPUTE_CREATED
        ).exists()

    def test_completed_booking_within_window(self, db):
        booking = BookingFactory(
            status=BookingStatus.COMPLETED,
            expires_at=None,
            scheduled_start=timezone.now() - timedelta(hours=10),
        )

        dispute = DisputeService.create_dispute(booking.client, booking.id, DisputeCategory.QUALITY, "Poor work.")

        assert dispute.booking_id == booking.id

    def test_window_closed(self, db):
        booking = BookingFactory(confirmed_paid=True)

        with freeze_time(booking.scheduled_end + timedelta(hours=48, seconds=1)):
            with pytest.raises(ValidationError) as exc_info:
                DisputeService.create_dispute(booking.client, booking.id, DisputeCategory.QUALITY, "Late.")

        assert exc_info.value.error_code == "DISPUTE_WINDOW_CLOSED"

    def test_pending_booking(self, db):
        booking = BookingFactory()

        with pytest.raises(ValidationError) as exc_info:
            DisputeService.create_dispute(booking.client, booking.id, DisputeCategory.QUALITY, "Hmm.")

        assert exc_info.value.error_code == "INVALID_BOOKING_STATE"

    def test_only_client(self, db):
        booking = BookingFactory(confirmed_paid=True)

        with pytest.raises(PermissionDeniedError) as exc_info:
            DisputeService.create_dispute(booking.freelancer, booking.id, DisputeCategory.QUALITY, "Hmm.")

        assert exc_info.value.error_code == "NOT_CLIENT"

    @pytest.mark.parametrize(
        "category,description,code",
        [
            ("weather", "Rained.", "INVALID_CATEGORY"),
            (DisputeCategory.OTHER, "   ", "DESCRIPTION_REQUIRED"),
        ],
    )
    def test_invalid_input(self, db, category, description, code):
        booking = BookingFactory(confirmed_paid=True)

        with pytest.raises(ValidationError) as exc_info:
            DisputeService.create_dispute(booking.client, booking.id, category, description)

        assert exc_info.value.error_code == code

    def test_one_dispute_per_booking(self, db, disputed):
        booking = disputed.booking

        with pytest.raises(ConflictError) as exc_info:
            DisputeService.create_dispute(booking.client, booking.id, DisputeCategory.OTHER, "Again.")

        assert exc_info.value.error_code == "DISPUTE_EXISTS"


# =============================================================================
# Review
# =============================================================================


class TestMarkInReview:
    def test_new_to_in_review(self, db, disputed, admin_user):
        dispute = DisputeService.mark_in_review(admin_user, disputed.id)

        assert dispute.status == DisputeStatus.IN_REVIEW
        assert actions(dispute) == ["status_changed"]

    def test_requires_admin(self, db, disputed):
        with pytest.raises(PermissionDeniedError):
            DisputeService.mark_in_review(disputed.booking.client, disputed.id)

    def test_only_from_new(self, db, admin_user):
        dispute = DisputeFactory(status=DisputeStatus.IN_REVIEW)

        with pytest.raises(ValidationError):
            DisputeService.mark_in_review(admin_user, dispute.id)


# =============================================================================
# Resolution
# =============================================================================


class TestResolveDispute:
    def test_full_refund_cancels_booking(self, db, disputed, admin_user, mock_stripe):
        dispute = DisputeService.resolve_dispute(admin_user, disputed.id, ResolutionType.FULL_REFUND, notes="No show")

        assert dispute.status == DisputeStatus.RESOLVED
        assert dispute.resolved_by == admin_user
        payment = Payment.objects.get(booking=disputed.booking)
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.refund_amount_pence == 10000
        booking = disputed.booking
        booking.refresh_from_db()
        assert booking.status == BookingStatus.CANCELLED
        assert booking.cancelled_by == CancelledBy.ADMIN
        assert booking.payment_status == BookingPaymentStatus.REFUNDED
        assert not Payout.objects.filter(booking=booking).exists()
        assert actions(dispute) == ["refund_issued", "dispute_resolved"]
        assert Notification.objects.filter(notification_type=NotificationType.DISPUTE_RESOLVED).count() == 2

    def test_partial_refund_releases_remainder(self, db, disputed, admin_user, mock_stripe):
        dispute = DisputeService.resolve_dispute(
            admin_user, disputed.id, ResolutionType.PARTIAL_REFUND, amount_pence=3000
        )

        assert dispute.resolution_amount_pence == 3000
        assert mock_stripe.create_refund.call_args.kwargs["amount_pence"] == 3000
        payment = Payment.objects.get(booking=disputed.booking)
        assert payment.escrow_status == EscrowStatus.RELEASED
        assert payment.refund_amount_pence == 3000
        booking = disputed.booking
        booking.refresh_from_db()
        assert booking.status == BookingStatus.COMPLETED
        assert booking.payment_status == BookingPaymentStatus.PARTIALLY_REFUNDED
        payout = Payout.objects.get(booking=booking)
        assert payout.service_amount_pence == 6000
        assert payout.payout_amount_pence == 5100
        assert actions(dispute) == ["refund_issued", "escrow_released", "dispute_resolved"]

    def test_release_to_freelancer(self, db, disputed, admin_user, mock_stripe):
        DisputeService.resolve_dispute(admin_user, disputed.id, ResolutionType.RELEASE_TO_FREELANCER)

        mock_stripe.create_refund.assert_not_called()
        booking = disputed.booking
        booking.refresh_from_db()
        assert booking.status == BookingStatus.COMPLETED
        assert Payout.objects.get(booking=booking).service_amount_pence == 9000

    def test_no_action_moves_no_money(self, db, disputed, admin_user):
        dispute = DisputeService.resolve_dispute(admin_user, disputed.id, ResolutionType.NO_ACTION)

        assert dispute.status == DisputeStatus.RESOLVED
        assert Payment.objects.get(booking=disputed.booking).escrow_status == EscrowStatus.HELD
        disputed.booking.refresh_from_db()
        assert disputed.booking.status == BookingStatus.CONFIRMED

    def test_escrow_settled_meanwhile_is_recorded(self, db, disputed, admin_user, mock_stripe):
        BookingService.confirm_service(disputed.booking.client, disputed.booking.id)

        dispute = DisputeService.resolve_dispute(admin_user, disputed.id, ResolutionType.FULL_REFUND)

        assert dispute.status == DisputeStatus.RESOLVED
        assert actions(dispute) == ["escrow_already_settled", "dispute_resolved"]
        mock_stripe.create_refund.assert_not_called()
        assert Payout.objects.filter(booking=disputed.booking).count() == 1

    def test_resolving_twice(self, db, disputed, admin_user):
        DisputeService.resolve_dispute(admin_user, disputed.id, ResolutionType.NO_ACTION)

        with pytest.raises(ValidationError) as exc_info:
            DisputeService.resolve_dispute(admin_user, disputed.id, ResolutionType.FULL_REFUND)

        assert exc_info.value.error_code == "DISPUTE_ALREADY_RESOLVED"

    def test_partial_refund_needs_amount(self, db, disputed, admin_user):
        with pytest.raises(ValidationError) as exc_info:
            DisputeService.resolve_dispute(admin_user, disputed.id, ResolutionType.PARTIAL_REFUND)

        assert exc_info.value.error_code == "AMOUNT_REQUIRED"

    def test_suspends_party(self, db, disputed, admin_user):
        freelancer = disputed.booking.freelancer

        dispute = DisputeService.resolve_dispute(
            admin_user, disputed.id, ResolutionType.NO_ACTION, suspend_user_id=freelancer.pk
        )

        freelancer.refresh_from_db()
        assert freelancer.account_status == AccountStatus.SUSPENDED
        assert "user_suspended" in actions(dispute)

    def test_cannot_suspend_outsider(self, db, disputed, admin_user, client_user):
        with pytest.raises(ValidationError) as exc_info:
            DisputeService.resolve_dispute(
                admin_user, disputed.id, ResolutionType.NO_ACTION, suspend_user_id=client_user.pk
            )

        assert exc_info.value.error_code == "INVALID_SUSPEND_USER"

    def test_financial_resolution_needs_payment(self, db, admin_user):
        dispute = DisputeFactory()

        with pytest.raises(NotFoundError) as exc_info:
            DisputeService.resolve_dispute(admin_user, dispute.id, ResolutionType.FULL_REFUND)

        assert exc_info.value.error_code == "PAYMENT_NOT_FOUND"

    def test_requires_admin(self, db, disputed):
        with pytest.raises(PermissionDeniedError):
            DisputeService.resolve_dispute(disputed.booking.client, disputed.id, ResolutionType.NO_ACTION)
