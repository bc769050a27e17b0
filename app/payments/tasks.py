"""
Celery tasks for payment processing.

This module provides periodic tasks for:
- Retrying failed webhook events
- Resetting webhook events stuck in processing
- Cleaning up old processed webhook events
- Processing due payouts (re-exported from payments.workers)

Webhooks are normally processed inside the HTTP request; these tasks
only pick up what a crashed worker or a failed handler left behind.

Usage:
    from payments.tasks import retry_failed_webhooks

    retry_failed_webhooks.delay()
"""

from __future__ import annotations

import logging
from datetime import timedelta

from celery import shared_task
from django.utils import timezone

from payments.models import MAX_WEBHOOK_RETRIES, WebhookEvent
from payments.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

STUCK_PROCESSING_THRESHOLD_MINUTES = 30
RETRY_BATCH_SIZE = 100


# =============================================================================
# Webhook Maintenance Tasks
# =============================================================================


@shared_task
def retry_failed_webhooks() -> dict:
    """
    Periodic task to retry failed webhook events.

    Claims failed webhooks that haven't exceeded max retries and runs their
    handlers again. A row claimed by a concurrent Stripe redelivery is skipped.

    This task should be scheduled via celery-beat, e.g., every 5 minutes.

    Returns:
        Dict with counts of webhooks retried and still failing
    """
    # Import here to avoid circular imports
    from payments.webhooks.handlers import process_claimed_event

    failed_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.FAILED,
        retry_count__lt=MAX_WEBHOOK_RETRIES,
    ).order_by("created_at")[:RETRY_BATCH_SIZE]

    processed_count = 0
    failed_count = 0
    for webhook in failed_webhooks:
        if not webhook.claim():
            continue

        logger.info(
            "Retrying failed webhook",
            extra={
                "webhook_event_id": str(webhook.id),
                "stripe_event_id": webhook.stripe_event_id,
                "retry_count": webhook.retry_count,
            },
        )
        result = process_claimed_event(webhook)
        if result.success:
            processed_count += 1
        else:
            failed_count += 1

    if processed_count or failed_count:
        logger.info(
            f"Retried failed webhooks: {processed_count} processed, {failed_count} failed",
            extra={"processed_count": processed_count, "failed_count": failed_count},
        )

    return {"processed_count": processed_count, "failed_count": failed_count}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """
    Periodic task to reset stuck webhooks.

    Finds webhooks that have been in PROCESSING status for too long
    and resets them to FAILED so they can be retried.

    This handles cases where the worker crashed during processing.

    Returns:
        Dict with count of webhooks reset
    """
    threshold = timezone.now() - timedelta(minutes=STUCK_PROCESSING_THRESHOLD_MINUTES)

    stuck_webhooks = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSING,
        updated_at__lt=threshold,
    )

    reset_count = 0
    for webhook in stuck_webhooks:
        stuck_since = webhook.updated_at
        webhook.mark_failed("Processing timed out - reset for retry")
        reset_count += 1
        logger.warning(
            "Reset stuck webhook",
            extra={
                "webhook_event_id": str(webhook.id),
                "stripe_event_id": webhook.stripe_event_id,
                "stuck_since": stuck_since.isoformat(),
            },
        )

    if reset_count > 0:
        logger.info(
            f"Reset {reset_count} stuck webhooks",
            extra={"reset_count": reset_count},
        )

    return {"reset_count": reset_count}


@shared_task
def cleanup_old_webhooks(days: int = 90) -> dict:
    """
    Periodic task to clean up old processed webhook events.

    Removes webhooks older than the specified number of days that
    have been successfully processed. Failed webhooks are kept for
    debugging.

    Args:
        days: Delete processed webhooks older than this many days

    Returns:
        Dict with count of webhooks deleted
    """
    cutoff = timezone.now() - timedelta(days=days)

    deleted_count, _ = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSED,
        processed_at__lt=cutoff,
    ).delete()

    if deleted_count > 0:
        logger.info(
            f"Deleted {deleted_count} old webhook events",
            extra={
                "deleted_count": deleted_count,
                "cutoff_date": cutoff.isoformat(),
            },
        )

    return {"deleted_count": deleted_count}


# =============================================================================
# Re-exported Worker Tasks
# =============================================================================
# These tasks are defined in payments.workers but re-exported here for
# convenience and to ensure Celery autodiscover finds them.

from payments.workers import process_scheduled_payouts  # noqa: E402, F401
