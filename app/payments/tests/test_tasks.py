"""
Tests for the webhook maintenance tasks.
"""

from datetime import timedelta

from django.utils import timezone
from freezegun import freeze_time

from bookings.tests.factories import BookingFactory
from payments.models import MAX_WEBHOOK_RETRIES, WebhookEvent
from payments.state_machines import PaymentStatus, WebhookEventStatus
from payments.tasks import cleanup_old_webhooks, cleanup_stuck_webhooks, retry_failed_webhooks
from payments.tests.factories import PaymentFactory, WebhookEventFactory


class TestRetryFailedWebhooks:
    def test_failed_event_is_processed(self, db):
        payment = PaymentFactory(booking=BookingFactory(), status=PaymentStatus.INITIATED)
        event = WebhookEventFactory(
            status=WebhookEventStatus.FAILED,
            retry_count=1,
            error_message="Payment not found",
            payload={
                "type": "payment_intent.succeeded",
                "data": {"object": {"id": payment.stripe_payment_intent_id}},
            },
        )

        result = retry_failed_webhooks()

        assert result == {"processed_count": 1, "failed_count": 0}
        event.refresh_from_db()
        assert event.status == WebhookEventStatus.PROCESSED
        assert event.retry_count == 2
        payment.refresh_from_db()
        assert payment.status == PaymentStatus.SUCCEEDED

    def test_still_failing_event_counts_as_failed(self, db):
        booking = BookingFactory()
        event = WebhookEventFactory(
            status=WebhookEventStatus.FAILED,
            retry_count=1,
            payload={
                "type": "payment_intent.succeeded",
                "data": {"object": {"id": "pi_gone", "metadata": {"booking_id": str(booking.id)}}},
            },
        )

        result = retry_failed_webhooks()

        assert result == {"processed_count": 0, "failed_count": 1}
        event.refresh_from_db()
        assert event.status == WebhookEventStatus.FAILED

    def test_exhausted_events_are_left_alone(self, db):
        WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=MAX_WEBHOOK_RETRIES)

        assert retry_failed_webhooks() == {"processed_count": 0, "failed_count": 0}


class TestCleanupStuckWebhooks:
    def test_resets_events_processing_too_long(self, db):
        stuck = WebhookEventFactory(status=WebhookEventStatus.PROCESSING)
        fresh = WebhookEventFactory(status=WebhookEventStatus.PROCESSING)
        WebhookEvent.objects.filter(pk=stuck.pk).update(updated_at=timezone.now() - timedelta(hours=1))

        result = cleanup_stuck_webhooks()

        assert result == {"reset_count": 1}
        stuck.refresh_from_db()
        fresh.refresh_from_db()
        assert stuck.status == WebhookEventStatus.FAILED
        assert "timed out" in stuck.error_message
        assert fresh.status == WebhookEventStatus.PROCESSING


class TestCleanupOldWebhooks:
    @freeze_time("2026-10-19 12:00:00")
    def test_deletes_only_old_processed_events(self, db):
        old = WebhookEventFactory(
            status=WebhookEventStatus.PROCESSED,
            processed_at=timezone.now() - timedelta(days=100),
        )
        recent = WebhookEventFactory(
            status=WebhookEventStatus.PROCESSED,
            processed_at=timezone.now() - timedelta(days=10),
        )
        failed = WebhookEventFactory(status=WebhookEventStatus.FAILED)

        result = cleanup_old_webhooks(days=90)

        assert result == {"deleted_count": 1}
        remaining = set(WebhookEvent.objects.values_list("pk", flat=True))
        assert remaining == {recent.pk, failed.pk}
        assert old.pk not in remaining
