"""
Payout executor worker for processing due payouts.

Tasks:
- process_scheduled_payouts: Weekly task (Fridays 09:00) that transfers every
  due payout whose freelancer account is enabled and verified

Each payout is claimed with a conditional update before its transfer, so
overlapping runs (or an admin "process now") never transfer twice.

Usage:
    # Typically called via celery-beat schedule
    from payments.workers import process_scheduled_payouts

    process_scheduled_payouts.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task

from payments.services import PayoutService

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Maximum payouts to process per run
BATCH_SIZE = 500


# =============================================================================
# Periodic Task: Process Due Payouts
# =============================================================================


@shared_task(bind=True)
def process_scheduled_payouts(self) -> dict:
    """
    Transfer all pending/scheduled payouts due today or earlier.

    Returns:
        Dict with:
        - processed_count: Payouts transferred successfully
        - failed_count: Payouts marked failed by Stripe errors
        - skipped_count: Payouts claimed elsewhere or not ready
    """
    logger.info("Starting scheduled payout run")

    processed_count = 0
    failed_count = 0
    skipped_count = 0

    for payout in PayoutService.get_due_payouts(limit=BATCH_SIZE):
        try:
            result = PayoutService.process_payout(payout)
        except Exception as e:
            failed_count += 1
            logger.error(
                f"Unexpected error processing payout: {e}",
                extra={"payout_id": str(payout.id), "error": str(e)},
                exc_info=True,
            )
            continue

        if result.success:
            processed_count += 1
        elif result.error_code == "PAYOUT_FAILED":
            failed_count += 1
        else:
            skipped_count += 1

    logger.info(
        f"Scheduled payout run complete: {processed_count} paid, {failed_count} failed",
        extra={
            "processed_count": processed_count,
            "failed_count": failed_count,
            "skipped_count": skipped_count,
        },
    )

    return {
        "processed_count": processed_count,
        "failed_count": failed_count,
        "skipped_count": skipped_count,
    }
