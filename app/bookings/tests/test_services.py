"""
Tests for BookingService.

Each lifecycle operation is exercised end to end against the database,
with the mocked Stripe adapter from the root conftest standing in for
the provider.
"""

from datetime import timedelta

import pytest
from django.utils import timezone
from freezegun import freeze_time

from bookings.models import (
    BookingPaymentStatus,
    BookingStatus,
    CancelledBy,
    FreelancerCancellation,
    LocationType,
)
from bookings.services import BookingService
from bookings.tests.factories import BookingFactory, ServiceFactory
from core.exceptions import (
    ConflictError,
    InternalError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)
from disputes.models import DisputeStatus
from disputes.tests.factories import DisputeFactory
from notifications.models import Notification, NotificationType
from payments.exceptions import EscrowAlreadySettledError, StripeAPIUnavailableError
from payments.models import Payment, Payout
from payments.state_machines import EscrowStatus, PaymentStatus
from payments.tests.factories import PaymentFactory


def paid_booking(**kwargs):
    """A booking with a succeeded payment held in escrow."""
    kwargs.setdefault("paid", True)
    booking = BookingFactory(**kwargs)
    PaymentFactory(booking=booking)
    return booking


def notified(user, notification_type) -> bool:
    return Notification.objects.filter(recipient=user, notification_type=notification_type).exists()


# =============================================================================
# Creation
# =============================================================================


class TestCreateBooking:
    def test_creates_pending_booking_with_intent(self, db, client_user, mock_stripe):
        service = ServiceFactory()
        start = timezone.now() + timedelta(days=2)

        result = BookingService.create_booking(
            client=client_user,
            service_id=service.id,
            scheduled_start=start,
            location_type=LocationType.ONLINE,
        )

        booking = result.booking
        assert booking.status == BookingStatus.PENDING
        assert booking.payment_status == BookingPaymentStatus.PAYMENT_PENDING
        assert booking.scheduled_end == start + timedelta(minutes=60)
        assert booking.total_pence == 10000
        assert booking.platform_fee_pence == 1000
        assert booking.expires_at is not None
        assert booking.auto_confirm_at is None
        assert result.client_secret == result.payment.client_secret
        assert result.payment.status == PaymentStatus.INITIATED
        assert booking.audit_logs.filter(action="created").exists()

    def test_travel_requires_address(self, db, client_user):
        service = ServiceFactory(travel_price_pence=1500)

        with pytest.raises(ValidationError) as exc_info:
            BookingService.create_booking(
                client=client_user,
                service_id=service.id,
                scheduled_start=timezone.now() + timedelta(days=2),
                location_type=LocationType.FREELANCER_TRAVELS_TO_CLIENT,
            )

        assert exc_info.value.error_code == "ADDRESS_REQUIRED"

    def test_travel_is_priced(self, db, client_user):
        service = ServiceFactory(travel_price_pence=1500)

        result = BookingService.create_booking(
            client=client_user,
            service_id=service.id,
            scheduled_start=timezone.now() + timedelta(days=2),
            location_type=LocationType.FREELANCER_TRAVELS_TO_CLIENT,
            address="1 High Street, London",
        )

        assert result.booking.total_pence == 11500
        assert result.booking.platform_fee_pence == 1150

    def test_unsupported_location(self, db, client_user):
        service = ServiceFactory(location_types=[LocationType.ONLINE.value])

        with pytest.raises(ValidationError) as exc_info:
            BookingService.create_booking(
                client=client_user,
                service_id=service.id,
                scheduled_start=timezone.now() + timedelta(days=2),
                location_type=LocationType.CLIENT_TRAVELS_TO_FREELANCER,
            )

        assert exc_info.value.error_code == "UNSUPPORTED_LOCATION"

    def test_freelancer_cannot_book(self, db, freelancer):
        service = ServiceFactory()

        with pytest.raises(PermissionDeniedError):
            BookingService.create_booking(
                client=freelancer,
                service_id=service.id,
                scheduled_start=timezone.now() + timedelta(days=2),
                location_type=LocationType.ONLINE,
            )

    def test_inactive_service(self, db, client_user):
        service = ServiceFactory(is_active=False)

        with pytest.raises(NotFoundError):
            BookingService.create_booking(
                client=client_user,
                service_id=service.id,
                scheduled_start=timezone.now() + timedelta(days=2),
                location_type=LocationType.ONLINE,
            )

    def test_provider_failure_persists_nothing(self, db, client_user, mock_stripe):
        service = ServiceFactory()
        mock_stripe.create_payment_intent.side_effect = StripeAPIUnavailableError("Stripe is down")

        with pytest.raises(StripeAPIUnavailableError):
            BookingService.create_booking(
                client=client_user,
                service_id=service.id,
                scheduled_start=timezone.now() + timedelta(days=2),
                location_type=LocationType.ONLINE,
            )

        assert not service.bookings.exists()


class TestGetBooking:
    def test_parties_and_admin_can_view(self, db, admin_user):
        booking = BookingFactory()

        for user in (booking.client, booking.freelancer, admin_user):
            assert BookingService.get_booking(user, booking.id) == booking

    def test_stranger_cannot_view(self, db, client_user):
        booking = BookingFactory()

        with pytest.raises(PermissionDeniedError):
            BookingService.get_booking(client_user, booking.id)


# =============================================================================
# Freelancer Response
# =============================================================================


class TestAccept:
    def test_accept_paid_booking_arms_auto_confirm(self, db):
        booking = paid_booking()

        accepted = BookingService.accept(booking.freelancer, booking.id)

        assert accepted.status == BookingStatus.CONFIRMED
        assert accepted.expires_at is None
        assert accepted.auto_confirm_at == booking.scheduled_end + timedelta(hours=24)
        assert notified(booking.client, NotificationType.BOOKING_CONFIRMED)

    def test_accept_unpaid_booking_waits_for_payment(self, db):
        booking = BookingFactory()

        accepted = BookingService.accept(booking.freelancer, booking.id)

        assert accepted.status == BookingStatus.CONFIRMED
        assert accepted.auto_confirm_at is None

    def test_only_booked_freelancer(self, db, freelancer):
        booking = BookingFactory()

        with pytest.raises(PermissionDeniedError):
            BookingService.accept(freelancer, booking.id)

    def test_cannot_accept_twice(self, db):
        booking = BookingFactory()
        BookingService.accept(booking.freelancer, booking.id)

        with pytest.raises(ValidationError) as exc_info:
            BookingService.accept(booking.freelancer, booking.id)

        assert exc_info.value.error_code == "INVALID_BOOKING_STATE"

    def test_lost_race_is_conflict(self, db):
        booking = BookingFactory()
        stale = BookingService._load(booking.id)
        BookingService.accept(booking.freelancer, booking.id)

        with pytest.raises(ConflictError):
            BookingService._claim(stale, BookingStatus.CONFIRMED)


class TestDecline:
    def test_decline_paid_booking_refunds_in_full(self, db, mock_stripe):
        booking = paid_booking()

        declined = BookingService.decline(booking.freelancer, booking.id, reason="Fully booked")

        assert declined.status == BookingStatus.CANCELLED
        assert declined.cancelled_by == CancelledBy.FREELANCER
        assert declined.declined_reason == "Fully booked"
        assert declined.declined_at is not None
        assert declined.payment_status == BookingPaymentStatus.REFUNDED
        payment = Payment.objects.get(booking=booking)
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.refund_amount_pence == 10000
        assert mock_stripe.create_refund.call_args.kwargs["amount_pence"] == 10000
        assert not Payout.objects.filter(booking=booking).exists()
        assert notified(booking.client, NotificationType.BOOKING_DECLINED)

    def test_decline_unpaid_booking(self, db, mock_stripe):
        booking = BookingFactory()

        declined = BookingService.decline(booking.freelancer, booking.id)

        assert declined.status == BookingStatus.CANCELLED
        mock_stripe.create_refund.assert_not_called()

    def test_decline_is_not_a_reliability_cancellation(self, db):
        booking = paid_booking()

        BookingService.decline(booking.freelancer, booking.id)

        assert not FreelancerCancellation.objects.exists()


# =============================================================================
# Cancellation
# =============================================================================


class TestCancel:
    def test_client_cancels_early_gets_full_refund(self, db):
        booking = paid_booking(scheduled_start=timezone.now() + timedelta(days=5))

        result = BookingService.cancel(booking.client, booking.id, reason="Plans changed")

        assert result.booking.status == BookingStatus.CANCELLED
        assert result.booking.cancelled_by == CancelledBy.CLIENT
        assert result.refund.refund_percent == 100
        assert result.refund_issued_pence == 10000
        assert result.reliability is None
        assert notified(booking.freelancer, NotificationType.BOOKING_CANCELLED)

    def test_client_cancels_inside_partial_window(self, db):
        booking = paid_booking(scheduled_start=timezone.now() + timedelta(hours=30))

        result = BookingService.cancel(booking.client, booking.id)

        assert result.refund.refund_percent == 50
        assert result.refund_issued_pence == 5000
        assert result.released_pence == 4000
        assert result.booking.payment_status == BookingPaymentStatus.PARTIALLY_REFUNDED
        payment = Payment.objects.get(booking=booking)
        assert payment.escrow_status == EscrowStatus.RELEASED
        assert payment.refund_amount_pence == 5000
        assert Payout.objects.get(booking=booking).service_amount_pence == 4000

    def test_client_cancels_late_releases_escrow_to_freelancer(self, db, mock_stripe):
        booking = paid_booking(
            status=BookingStatus.CONFIRMED,
            scheduled_start=timezone.now() + timedelta(hours=10),
        )

        result = BookingService.cancel(booking.client, booking.id)

        assert result.refund.refund_percent == 0
        assert result.refund_issued_pence == 0
        assert result.released_pence == 9000
        assert Payment.objects.get(booking=booking).escrow_status == EscrowStatus.RELEASED
        assert Payout.objects.get(booking=booking).service_amount_pence == 9000
        mock_stripe.create_refund.assert_not_called()

    def test_client_cannot_refund_after_late_cancellation(self, db, mock_stripe):
        booking = paid_booking(
            status=BookingStatus.CONFIRMED,
            scheduled_start=timezone.now() + timedelta(hours=10),
        )
        BookingService.cancel(booking.client, booking.id)

        with pytest.raises(PermissionDeniedError) as exc_info:
            BookingService.request_refund(booking.client, booking.id)

        assert exc_info.value.error_code == "BOOKING_CLOSED"
        mock_stripe.create_refund.assert_not_called()

    def test_freelancer_cancel_creates_no_payout(self, db):
        booking = paid_booking(status=BookingStatus.CONFIRMED)

        BookingService.cancel(booking.freelancer, booking.id)

        assert not Payout.objects.filter(booking=booking).exists()

    def test_freelancer_cancel_is_full_refund_and_recorded(self, db):
        booking = paid_booking(
            status=BookingStatus.CONFIRMED,
            scheduled_start=timezone.now() + timedelta(hours=5),
        )

        result = BookingService.cancel(booking.freelancer, booking.id)

        assert result.refund.refund_percent == 100
        assert result.refund_issued_pence == 10000
        assert result.booking.cancelled_by == CancelledBy.FREELANCER
        assert FreelancerCancellation.objects.get(booking=booking).is_last_minute is True
        assert result.reliability.last_minute_count == 1
        assert notified(booking.client, NotificationType.BOOKING_CANCELLED)

    def test_repeated_last_minute_cancels_warn_freelancer(self, db, freelancer):
        for offset in range(2):
            booking = paid_booking(
                service=ServiceFactory(freelancer=freelancer),
                status=BookingStatus.CONFIRMED,
                scheduled_start=timezone.now() + timedelta(hours=5 + 2 * offset),
            )
            result = BookingService.cancel(freelancer, booking.id)

        assert result.reliability.should_warn is True
        assert notified(freelancer, NotificationType.RELIABILITY_WARNING)

    def test_stranger_cannot_cancel(self, db, client_user):
        booking = BookingFactory()

        with pytest.raises(PermissionDeniedError):
            BookingService.cancel(client_user, booking.id)

    def test_completed_booking_cannot_be_cancelled(self, db):
        booking = BookingFactory(status=BookingStatus.COMPLETED, expires_at=None)

        with pytest.raises(ValidationError):
            BookingService.cancel(booking.client, booking.id)


# =============================================================================
# Completion
# =============================================================================


class TestConfirmService:
    def test_client_confirms_release_and_payout(self, db):
        booking = paid_booking(confirmed_paid=True)

        completed = BookingService.confirm_service(booking.client, booking.id)

        assert completed.status == BookingStatus.COMPLETED
        assert completed.completed_at is not None
        assert completed.auto_confirm_at is None
        payment = Payment.objects.get(booking=booking)
        assert payment.escrow_status == EscrowStatus.RELEASED
        payout = Payout.objects.get(booking=booking)
        assert payout.service_amount_pence == 9000
        assert payout.payout_amount_pence == 7650
        assert notified(booking.freelancer, NotificationType.PAYMENT_RELEASED)

    def test_freelancer_cannot_confirm(self, db):
        booking = paid_booking(confirmed_paid=True)

        with pytest.raises(PermissionDeniedError) as exc_info:
            BookingService.confirm_service(booking.freelancer, booking.id)

        assert exc_info.value.error_code == "NOT_ALLOWED"

    def test_unpaid_booking(self, db):
        booking = BookingFactory(status=BookingStatus.CONFIRMED)

        with pytest.raises(ValidationError) as exc_info:
            BookingService.confirm_service(booking.client, booking.id)

        assert exc_info.value.error_code == "NOT_PAID"

    def test_settled_escrow(self, db):
        booking = BookingFactory(confirmed_paid=True)
        PaymentFactory(booking=booking, escrow_status=EscrowStatus.REFUNDED)

        with pytest.raises(EscrowAlreadySettledError):
            BookingService.confirm_service(booking.client, booking.id)

    def test_paid_booking_without_captured_payment(self, db):
        booking = BookingFactory(confirmed_paid=True)

        with pytest.raises(InternalError) as exc_info:
            BookingService.confirm_service(booking.client, booking.id)

        assert exc_info.value.error_code == "PAYMENT_MISSING"


class TestAutoConfirm:
    def test_releases_once(self, db, mock_stripe):
        booking = paid_booking(confirmed_paid=True)

        assert BookingService.auto_confirm_booking(booking) is True
        assert BookingService.auto_confirm_booking(booking) is False

        assert Payout.objects.filter(booking=booking).count() == 1
        booking.refresh_from_db()
        assert booking.status == BookingStatus.COMPLETED
        assert booking.audit_logs.filter(action="auto_confirmed").count() == 1
        assert notified(booking.client, NotificationType.SERVICE_AUTO_CONFIRMED)

    def test_after_client_confirmation_is_noop(self, db):
        booking = paid_booking(confirmed_paid=True)
        BookingService.confirm_service(booking.client, booking.id)

        assert BookingService.auto_confirm_booking(booking) is False
        assert Payout.objects.filter(booking=booking).count() == 1

    def test_dispute_raised_after_selection_blocks_release(self, db):
        booking = paid_booking(confirmed_paid=True)
        DisputeFactory(booking=booking)

        assert BookingService.auto_confirm_booking(booking) is False

        assert Payment.objects.get(booking=booking).escrow_status == EscrowStatus.HELD
        assert not Payout.objects.filter(booking=booking).exists()
        booking.refresh_from_db()
        assert booking.status == BookingStatus.CONFIRMED

    def test_resolved_dispute_does_not_block_release(self, db):
        booking = paid_booking(confirmed_paid=True)
        DisputeFactory(booking=booking, status=DisputeStatus.RESOLVED)

        assert BookingService.auto_confirm_booking(booking) is True

    def test_release_rolls_back_if_booking_moved(self, db):
        booking = paid_booking(confirmed_paid=True)
        type(booking).objects.filter(pk=booking.pk).update(
            status=BookingStatus.CANCELLED, auto_confirm_at=None
        )

        with pytest.raises(ConflictError):
            BookingService.auto_confirm_booking(booking)

        assert Payment.objects.get(booking=booking).escrow_status == EscrowStatus.HELD


class TestExpireBooking:
    def test_expires_and_refunds_paid_booking(self, db):
        booking = paid_booking()

        with freeze_time(timezone.now() + timedelta(hours=25)):
            assert BookingService.expire_booking(booking) is True

        booking.refresh_from_db()
        assert booking.status == BookingStatus.EXPIRED
        assert booking.expires_at is None
        assert booking.payment_status == BookingPaymentStatus.REFUNDED
        assert notified(booking.client, NotificationType.BOOKING_EXPIRED)
        assert notified(booking.freelancer, NotificationType.BOOKING_EXPIRED)

    def test_not_yet_due(self, db):
        booking = BookingFactory()

        assert BookingService.expire_booking(booking) is False

    def test_accepted_booking_does_not_expire(self, db):
        booking = BookingFactory()
        BookingService.accept(booking.freelancer, booking.id)

        with freeze_time(timezone.now() + timedelta(hours=25)):
            assert BookingService.expire_booking(booking) is False


# =============================================================================
# Payments
# =============================================================================


class TestCheckout:
    def test_reuses_open_intent(self, db, mock_stripe):
        booking = BookingFactory()
        first = BookingService.checkout(booking.client, booking.id)

        second = BookingService.checkout(booking.client, booking.id)

        assert first.pk == second.pk
        assert mock_stripe.create_payment_intent.call_count == 1

    def test_paid_booking_rejected(self, db):
        booking = paid_booking()

        with pytest.raises(ValidationError) as exc_info:
            BookingService.checkout(booking.client, booking.id)

        assert exc_info.value.error_code == "ALREADY_PAID"

    def test_only_client(self, db):
        booking = BookingFactory()

        with pytest.raises(PermissionDeniedError):
            BookingService.checkout(booking.freelancer, booking.id)


class TestRequestRefund:
    def test_partial_refund_keeps_booking_status(self, db):
        booking = paid_booking(confirmed_paid=True)

        outcome = BookingService.request_refund(booking.client, booking.id, amount_pence=2500)

        assert outcome.refund_amount_pence == 2500
        booking.refresh_from_db()
        assert booking.status == BookingStatus.CONFIRMED
        assert booking.payment_status == BookingPaymentStatus.PARTIALLY_REFUNDED
        assert notified(booking.client, NotificationType.BOOKING_REFUNDED)

    def test_second_refund_is_rejected(self, db):
        booking = paid_booking()
        BookingService.request_refund(booking.client, booking.id)
        type(booking).objects.filter(pk=booking.pk).update(payment_status=BookingPaymentStatus.PAID)

        with pytest.raises(EscrowAlreadySettledError):
            BookingService.request_refund(booking.client, booking.id)

    @pytest.mark.parametrize("status", [BookingStatus.CANCELLED, BookingStatus.EXPIRED, BookingStatus.COMPLETED])
    def test_client_cannot_refund_closed_booking(self, db, status):
        booking = paid_booking(status=status, expires_at=None)

        with pytest.raises(PermissionDeniedError) as exc_info:
            BookingService.request_refund(booking.client, booking.id)

        assert exc_info.value.error_code == "BOOKING_CLOSED"
        assert Payment.objects.get(booking=booking).escrow_status == EscrowStatus.HELD

    def test_admin_can_refund_closed_booking(self, db, admin_user):
        booking = paid_booking(status=BookingStatus.CANCELLED, expires_at=None)

        outcome = BookingService.request_refund(admin_user, booking.id)

        assert outcome.refund_amount_pence == 10000

    def test_unpaid_booking(self, db):
        booking = BookingFactory()

        with pytest.raises(ValidationError) as exc_info:
            BookingService.request_refund(booking.client, booking.id)

        assert exc_info.value.error_code == "NOT_PAID"


class TestPaymentStatus:
    def test_includes_booking_payment_status(self, db):
        booking = paid_booking()

        data = BookingService.payment_status(booking.client, booking.id)

        assert data["booking_payment_status"] == BookingPaymentStatus.PAID
