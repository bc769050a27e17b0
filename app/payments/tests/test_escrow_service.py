"""
Tests for EscrowService.

Every settlement is a conditional update from HELD; these tests pin down
that each escrow is released or refunded at most once and that provider
failures leave it held.
"""

import pytest

from bookings.tests.factories import BookingFactory
from core.exceptions import ValidationError
from payments.exceptions import StripeAPIUnavailableError
from payments.models import Payment
from payments.services import EscrowService
from payments.state_machines import EscrowStatus, PaymentStatus
from payments.tests.factories import PaymentFactory


# =============================================================================
# Payment Intents
# =============================================================================


class TestCreateIntent:
    def test_creates_initiated_payment_for_booking_total(self, db, mock_stripe):
        booking = BookingFactory(total_pence=12500, platform_fee_pence=1250)

        payment = EscrowService.create_intent(booking)

        assert payment.status == PaymentStatus.INITIATED
        assert payment.amount_pence == 12500
        assert payment.platform_fee_pence == 1250
        assert payment.freelancer_payout_pence == 11250
        assert payment.client_secret.endswith("_secret")
        params = mock_stripe.create_payment_intent.call_args.args[0]
        assert params.amount_pence == 12500
        assert params.metadata == {"booking_id": str(booking.id)}

    def test_reuse_returns_open_intent(self, db, mock_stripe):
        booking = BookingFactory()
        first = EscrowService.create_intent(booking)

        again = EscrowService.reuse_or_create_intent(booking)

        assert again.pk == first.pk
        assert mock_stripe.create_payment_intent.call_count == 1

    def test_reuse_after_failure_creates_new_intent_with_new_key(self, db, mock_stripe):
        booking = BookingFactory()
        first = EscrowService.create_intent(booking)
        EscrowService.mark_failed(first)

        second = EscrowService.reuse_or_create_intent(booking)

        assert second.pk != first.pk
        keys = [c.args[0].idempotency_key for c in mock_stripe.create_payment_intent.call_args_list]
        assert keys[0] != keys[1]

    def test_reuse_rejects_paid_booking(self, db):
        payment = PaymentFactory()

        with pytest.raises(ValidationError) as exc_info:
            EscrowService.reuse_or_create_intent(payment.booking)

        assert exc_info.value.error_code == "ALREADY_PAID"


class TestProviderStatusChanges:
    def test_mark_succeeded_once(self, db):
        payment = PaymentFactory(status=PaymentStatus.INITIATED)

        assert EscrowService.mark_succeeded(payment, "ch_1") is True
        assert EscrowService.mark_succeeded(payment, "ch_1") is False
        assert payment.status == PaymentStatus.SUCCEEDED
        assert payment.stripe_charge_id == "ch_1"

    def test_failed_payment_can_still_succeed(self, db):
        payment = PaymentFactory(status=PaymentStatus.FAILED)

        assert EscrowService.mark_succeeded(payment, "ch_2") is True
        assert payment.status == PaymentStatus.SUCCEEDED
        assert payment.escrow_status == EscrowStatus.HELD

    def test_failed_payment_stays_failed_when_booking_already_captured(self, db):
        paid = PaymentFactory()
        declined = PaymentFactory(booking=paid.booking, status=PaymentStatus.FAILED)

        assert EscrowService.mark_succeeded(declined) is False
        assert declined.status == PaymentStatus.FAILED

    def test_mark_failed_only_from_initiated(self, db):
        payment = PaymentFactory()

        assert EscrowService.mark_failed(payment) is False
        assert payment.status == PaymentStatus.SUCCEEDED


# =============================================================================
# Refund
# =============================================================================


class TestRefund:
    def test_full_refund(self, db, mock_stripe):
        payment = PaymentFactory()

        outcome = EscrowService.refund(payment, reason="freelancer_declined")

        assert outcome.applied is True
        assert outcome.refund_amount_pence == 10000
        assert outcome.refund_id.startswith("re_test_")
        payment.refresh_from_db()
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.escrow_status == EscrowStatus.REFUNDED
        assert payment.refund_id == outcome.refund_id
        assert payment.refunded_at is not None
        assert mock_stripe.create_refund.call_args.kwargs["amount_pence"] == 10000

    def test_partial_refund_keeps_payment_succeeded(self, db):
        payment = PaymentFactory()

        outcome = EscrowService.refund(payment, amount_pence=5000)

        assert outcome.refund_amount_pence == 5000
        assert payment.status == PaymentStatus.SUCCEEDED
        assert payment.escrow_status == EscrowStatus.REFUNDED
        assert payment.refund_amount_pence == 5000

    def test_second_refund_is_noop(self, db, mock_stripe):
        payment = PaymentFactory()
        EscrowService.refund(payment)

        outcome = EscrowService.refund(payment)

        assert outcome.applied is False
        assert mock_stripe.create_refund.call_count == 1

    @pytest.mark.parametrize("amount", [0, -1, 10001])
    def test_rejects_amount_outside_payment(self, db, amount):
        payment = PaymentFactory()

        with pytest.raises(ValidationError) as exc_info:
            EscrowService.refund(payment, amount_pence=amount)

        assert exc_info.value.error_code == "INVALID_REFUND_AMOUNT"

    def test_provider_failure_leaves_escrow_held(self, db, mock_stripe):
        payment = PaymentFactory()
        mock_stripe.create_refund.side_effect = StripeAPIUnavailableError("Stripe is down")

        with pytest.raises(StripeAPIUnavailableError):
            EscrowService.refund(payment)

        payment.refresh_from_db()
        assert payment.escrow_status == EscrowStatus.HELD
        assert payment.refund_amount_pence == 0


# =============================================================================
# Release
# =============================================================================


class TestRelease:
    def test_release_deducts_platform_fee(self, db):
        payment = PaymentFactory()

        outcome = EscrowService.release(payment)

        assert outcome.applied is True
        assert outcome.releasable_pence == 9000
        assert payment.escrow_status == EscrowStatus.RELEASED
        assert payment.escrow_released_at is not None
        assert payment.freelancer_payout_pence == 9000

    def test_release_twice_applies_once(self, db):
        payment = PaymentFactory()

        first = EscrowService.release(payment)
        second = EscrowService.release(Payment.objects.get(pk=payment.pk))

        assert first.applied is True
        assert second.applied is False

    def test_release_after_refund_is_noop(self, db):
        payment = PaymentFactory()
        EscrowService.refund(payment)

        outcome = EscrowService.release(payment)

        assert outcome.applied is False
        assert payment.escrow_status == EscrowStatus.REFUNDED

    def test_release_of_unpaid_intent_is_noop(self, db):
        payment = PaymentFactory(status=PaymentStatus.INITIATED)

        assert EscrowService.release(payment).applied is False


class TestRefundAndRelease:
    def test_partial_refund_releases_remainder(self, db, mock_stripe):
        payment = PaymentFactory()

        outcome = EscrowService.refund_and_release(payment, 3000, reason="dispute_partial_refund")

        assert outcome.applied is True
        assert outcome.refund_amount_pence == 3000
        assert outcome.releasable_pence == 6000
        assert payment.escrow_status == EscrowStatus.RELEASED
        assert payment.status == PaymentStatus.SUCCEEDED
        assert payment.refund_amount_pence == 3000
        assert mock_stripe.create_refund.call_args.kwargs["amount_pence"] == 3000

    def test_full_amount_is_a_plain_refund(self, db):
        payment = PaymentFactory()

        outcome = EscrowService.refund_and_release(payment, 10000)

        assert outcome.releasable_pence == 0
        assert payment.escrow_status == EscrowStatus.REFUNDED
        assert payment.status == PaymentStatus.REFUNDED

    def test_refund_above_amount_less_fee_releases_nothing(self, db):
        payment = PaymentFactory()

        outcome = EscrowService.refund_and_release(payment, 9500)

        assert outcome.releasable_pence == 0

    def test_rejects_non_positive_amount(self, db):
        payment = PaymentFactory()

        with pytest.raises(ValidationError):
            EscrowService.refund_and_release(payment, 0)


class TestRecordExternalRefund:
    def test_settles_held_escrow_without_provider_call(self, db, mock_stripe):
        payment = PaymentFactory()

        outcome = EscrowService.record_external_refund(payment, 10000, refund_id="re_dashboard")

        assert outcome.applied is True
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.refund_id == "re_dashboard"
        mock_stripe.create_refund.assert_not_called()

    def test_already_settled_is_noop(self, db):
        payment = PaymentFactory()
        EscrowService.release(payment)

        outcome = EscrowService.record_external_refund(payment, 10000)

        assert outcome.applied is False
        assert payment.escrow_status == EscrowStatus.RELEASED
