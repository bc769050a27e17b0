"""
Tests for the webhook event handlers.

Handlers are called with ledger rows directly; the HTTP layer is covered
in test_webhook_views.py.
"""

from bookings.models import BookingPaymentStatus, BookingStatus
from bookings.tests.factories import BookingFactory
from notifications.models import Notification, NotificationType
from payments.state_machines import EscrowStatus, PaymentStatus, WebhookEventStatus
from payments.tests.factories import PaymentFactory, WebhookEventFactory
from payments.webhooks.handlers import (
    dispatch_webhook,
    handle_charge_refunded,
    handle_payment_intent_failed,
    handle_payment_intent_succeeded,
    process_claimed_event,
)


def event_for(event_type: str, obj: dict, **kwargs):
    return WebhookEventFactory(
        event_type=event_type,
        payload={"type": event_type, "data": {"object": obj}},
        **kwargs,
    )


def intent_object(payment, **extra) -> dict:
    obj = {
        "id": payment.stripe_payment_intent_id,
        "object": "payment_intent",
        "metadata": {"booking_id": str(payment.booking_id)},
    }
    obj.update(extra)
    return obj


# =============================================================================
# payment_intent.succeeded
# =============================================================================


class TestPaymentIntentSucceeded:
    def test_pending_booking_notifies_freelancer_and_client(self, db):
        payment = PaymentFactory(booking=BookingFactory(), status=PaymentStatus.INITIATED)
        event = event_for("payment_intent.succeeded", intent_object(payment, latest_charge="ch_live"))

        result = handle_payment_intent_succeeded(event)

        assert result.success is True
        assert result.data == {"changed": True}
        booking = payment.booking
        booking.refresh_from_db()
        assert booking.payment_status == BookingPaymentStatus.PAID
        assert booking.auto_confirm_at is None
        assert Notification.objects.filter(
            recipient=booking.freelancer,
            notification_type=NotificationType.NEW_BOOKING_REQUEST,
        ).exists()

    def test_confirmed_booking_arms_auto_confirm(self, db):
        booking = BookingFactory(status=BookingStatus.CONFIRMED)
        payment = PaymentFactory(booking=booking, status=PaymentStatus.INITIATED)

        handle_payment_intent_succeeded(event_for("payment_intent.succeeded", intent_object(payment)))

        booking.refresh_from_db()
        assert booking.auto_confirm_at is not None
        assert booking.auto_confirm_at > booking.scheduled_end
        assert booking.expires_at is None

    def test_replay_changes_nothing(self, db):
        payment = PaymentFactory(booking=BookingFactory(), status=PaymentStatus.INITIATED)
        obj = intent_object(payment)
        handle_payment_intent_succeeded(event_for("payment_intent.succeeded", obj))

        result = handle_payment_intent_succeeded(event_for("payment_intent.succeeded", obj))

        assert result.data == {"changed": False}
        assert payment.booking.audit_logs.filter(action="payment_succeeded").count() == 1
        assert (
            Notification.objects.filter(
                recipient=payment.booking.client,
                notification_type=NotificationType.PAYMENT_CONFIRMED,
            ).count()
            == 1
        )

    def test_money_for_cancelled_booking_is_refunded(self, db, mock_stripe):
        booking = BookingFactory(status=BookingStatus.CANCELLED, expires_at=None)
        payment = PaymentFactory(booking=booking, status=PaymentStatus.INITIATED)

        result = handle_payment_intent_succeeded(event_for("payment_intent.succeeded", intent_object(payment)))

        assert result.success is True
        payment.refresh_from_db()
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.escrow_status == EscrowStatus.REFUNDED
        booking.refresh_from_db()
        assert booking.status == BookingStatus.CANCELLED
        assert booking.payment_status == BookingPaymentStatus.REFUNDED
        assert mock_stripe.create_refund.call_count == 1
        assert Notification.objects.filter(
            recipient=booking.client,
            notification_type=NotificationType.BOOKING_REFUNDED,
        ).exists()

    def test_missing_intent_id(self, db):
        result = handle_payment_intent_succeeded(event_for("payment_intent.succeeded", {}))

        assert result.success is False
        assert result.error_code == "INVALID_WEBHOOK_PAYLOAD"

    def test_unknown_platform_intent_fails(self, db):
        booking = BookingFactory()
        event = event_for(
            "payment_intent.succeeded",
            {"id": "pi_lost", "metadata": {"booking_id": str(booking.id)}},
        )

        result = handle_payment_intent_succeeded(event)

        assert result.success is False
        assert result.error_code == "PAYMENT_NOT_FOUND"


# =============================================================================
# payment_intent.payment_failed
# =============================================================================


class TestPaymentIntentFailed:
    def test_marks_payment_and_booking_failed(self, db):
        payment = PaymentFactory(booking=BookingFactory(), status=PaymentStatus.INITIATED)
        event = event_for(
            "payment_intent.payment_failed",
            intent_object(payment, last_payment_error={"message": "Your card was declined."}),
        )

        result = handle_payment_intent_failed(event)

        assert result.data == {"changed": True}
        payment.refresh_from_db()
        assert payment.status == PaymentStatus.FAILED
        payment.booking.refresh_from_db()
        assert payment.booking.payment_status == BookingPaymentStatus.PAYMENT_FAILED
        assert Notification.objects.filter(
            recipient=payment.booking.client,
            notification_type=NotificationType.PAYMENT_FAILED,
        ).exists()

    def test_failure_after_success_is_ignored(self, db):
        payment = PaymentFactory()

        result = handle_payment_intent_failed(event_for("payment_intent.payment_failed", intent_object(payment)))

        assert result.data == {"changed": False}
        payment.refresh_from_db()
        assert payment.status == PaymentStatus.SUCCEEDED


class TestRetryAfterDecline:
    def test_declined_intent_succeeding_on_retry_marks_booking_paid(self, db):
        payment = PaymentFactory(booking=BookingFactory(), status=PaymentStatus.INITIATED)
        handle_payment_intent_failed(event_for("payment_intent.payment_failed", intent_object(payment)))

        result = handle_payment_intent_succeeded(
            event_for("payment_intent.succeeded", intent_object(payment, latest_charge="ch_retry"))
        )

        assert result.data == {"changed": True}
        payment.refresh_from_db()
        assert payment.status == PaymentStatus.SUCCEEDED
        assert payment.escrow_status == EscrowStatus.HELD
        assert payment.stripe_charge_id == "ch_retry"
        payment.booking.refresh_from_db()
        assert payment.booking.payment_status == BookingPaymentStatus.PAID

    def test_takes_over_from_newer_open_intent(self, db):
        booking = BookingFactory()
        declined = PaymentFactory(booking=booking, status=PaymentStatus.FAILED)
        reissued = PaymentFactory(booking=booking, status=PaymentStatus.INITIATED)

        handle_payment_intent_succeeded(event_for("payment_intent.succeeded", intent_object(declined)))

        declined.refresh_from_db()
        reissued.refresh_from_db()
        assert declined.status == PaymentStatus.SUCCEEDED
        assert reissued.status == PaymentStatus.FAILED

    def test_capture_after_booking_already_paid_is_refunded(self, db, mock_stripe):
        booking = BookingFactory(paid=True)
        paid = PaymentFactory(booking=booking)
        declined = PaymentFactory(booking=booking, status=PaymentStatus.FAILED)

        result = handle_payment_intent_succeeded(event_for("payment_intent.succeeded", intent_object(declined)))

        assert result.data == {"changed": True}
        declined.refresh_from_db()
        paid.refresh_from_db()
        assert declined.status == PaymentStatus.REFUNDED
        assert declined.escrow_status == EscrowStatus.REFUNDED
        assert declined.refund_id.startswith("re_test_")
        assert paid.escrow_status == EscrowStatus.HELD
        kwargs = mock_stripe.create_refund.call_args.kwargs
        assert kwargs["payment_intent_id"] == declined.stripe_payment_intent_id
        assert kwargs["amount_pence"] == declined.amount_pence
        assert booking.audit_logs.filter(action="duplicate_payment_refunded").count() == 1

    def test_duplicate_refund_replay_changes_nothing(self, db, mock_stripe):
        booking = BookingFactory(paid=True)
        PaymentFactory(booking=booking)
        declined = PaymentFactory(booking=booking, status=PaymentStatus.FAILED)
        obj = intent_object(declined)
        handle_payment_intent_succeeded(event_for("payment_intent.succeeded", obj))

        result = handle_payment_intent_succeeded(event_for("payment_intent.succeeded", obj))

        assert result.data == {"changed": False}
        assert mock_stripe.create_refund.call_count == 1


# =============================================================================
# charge.refunded
# =============================================================================


class TestChargeRefunded:
    def test_dashboard_refund_settles_held_escrow(self, db):
        payment = PaymentFactory()
        event = event_for(
            "charge.refunded",
            {
                "id": payment.stripe_charge_id,
                "object": "charge",
                "payment_intent": payment.stripe_payment_intent_id,
                "amount_refunded": 10000,
                "refunds": {"data": [{"id": "re_dashboard"}]},
            },
        )

        result = handle_charge_refunded(event)

        assert result.data == {"changed": True}
        payment.refresh_from_db()
        assert payment.status == PaymentStatus.REFUNDED
        assert payment.escrow_status == EscrowStatus.REFUNDED
        assert payment.refund_id == "re_dashboard"
        payment.booking.refresh_from_db()
        assert payment.booking.payment_status == BookingPaymentStatus.REFUNDED
        assert payment.booking.auto_confirm_at is None

    def test_refund_we_issued_is_not_applied_twice(self, db):
        booking = BookingFactory(status=BookingStatus.CANCELLED, expires_at=None)
        payment = PaymentFactory(
            booking=booking,
            escrow_status=EscrowStatus.REFUNDED,
            status=PaymentStatus.REFUNDED,
            refund_amount_pence=10000,
            refund_id="re_ours",
            refund_status="pending",
        )
        event = event_for(
            "charge.refunded",
            {
                "id": payment.stripe_charge_id,
                "amount_refunded": 10000,
                "refunds": {"data": [{"id": "re_ours"}]},
            },
        )

        result = handle_charge_refunded(event)

        assert result.data == {"changed": False}
        payment.refresh_from_db()
        assert payment.refund_status == "succeeded"
        assert not Notification.objects.filter(notification_type=NotificationType.BOOKING_REFUNDED).exists()

    def test_unknown_charge_is_ignored(self, db):
        result = handle_charge_refunded(event_for("charge.refunded", {"id": "ch_elsewhere"}))

        assert result.success is True
        assert result.data is None


# =============================================================================
# Dispatch
# =============================================================================


class TestProcessClaimedEvent:
    def test_unregistered_type_succeeds(self, db):
        event = event_for("customer.created", {"id": "cus_1"})

        assert dispatch_webhook(event).success is True

    def test_success_marks_row_processed(self, db):
        payment = PaymentFactory(booking=BookingFactory(), status=PaymentStatus.INITIATED)
        event = event_for(
            "payment_intent.succeeded",
            intent_object(payment),
            status=WebhookEventStatus.PROCESSING,
        )

        process_claimed_event(event)

        event.refresh_from_db()
        assert event.status == WebhookEventStatus.PROCESSED
        assert event.error_message is None

    def test_exception_rolls_back_and_marks_failed(self, db, mock_stripe):
        booking = BookingFactory(status=BookingStatus.CANCELLED, expires_at=None)
        payment = PaymentFactory(booking=booking, status=PaymentStatus.INITIATED)
        mock_stripe.create_refund.side_effect = RuntimeError("connection reset")
        event = event_for(
            "payment_intent.succeeded",
            intent_object(payment),
            status=WebhookEventStatus.PROCESSING,
        )

        result = process_claimed_event(event)

        assert result.success is False
        event.refresh_from_db()
        assert event.status == WebhookEventStatus.FAILED
        payment.refresh_from_db()
        assert payment.status == PaymentStatus.INITIATED
        assert payment.escrow_status == EscrowStatus.HELD
