"""
Celery tasks for booking timers.

Both sweeps are scheduled by celery-beat (see bookings/migrations) and are
safe to run concurrently with user actions and with each other: every row
is claimed with a conditional UPDATE, so a booking is expired or released
at most once no matter how many workers see it.

Usage:
    from bookings.tasks import expire_pending_bookings, process_auto_confirms

    expire_pending_bookings.delay()
    process_auto_confirms.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.utils import timezone

from bookings.models import Booking, BookingPaymentStatus, BookingStatus
from bookings.services import BookingService
from disputes.models import OPEN_DISPUTE_STATUSES

logger = logging.getLogger(__name__)


# =============================================================================
# Constants
# =============================================================================

# Maximum bookings handled per sweep run
BATCH_SIZE = 200


# =============================================================================
# Sweeps
# =============================================================================


@shared_task
def expire_pending_bookings() -> dict:
    """
    Expire pending bookings whose response window has passed.

    Held payments on expired bookings are refunded in full.

    Returns:
        Dict with expired_count and error_count
    """
    now = timezone.now()
    candidates = Booking.objects.filter(
        status=BookingStatus.PENDING,
        expires_at__lte=now,
    ).order_by("expires_at")[:BATCH_SIZE]

    expired_count = 0
    error_count = 0
    for booking in candidates:
        try:
            if BookingService.expire_booking(booking):
                expired_count += 1
        except Exception as e:
            error_count += 1
            logger.error(
                f"Failed to expire booking: {e}",
                extra={"booking_id": str(booking.id), "error": str(e)},
                exc_info=True,
            )

    if expired_count or error_count:
        logger.info(
            f"Expiry sweep complete: expired {expired_count} bookings",
            extra={"expired_count": expired_count, "error_count": error_count},
        )
    return {"expired_count": expired_count, "error_count": error_count}


@shared_task
def process_auto_confirms() -> dict:
    """
    Release escrow for confirmed, paid bookings past their auto-confirm time.

    Bookings with an open dispute are skipped; the dispute decides where
    the money goes.

    Returns:
        Dict with confirmed_count and error_count
    """
    now = timezone.now()
    candidates = (
        Booking.objects.filter(
            status=BookingStatus.CONFIRMED,
            payment_status=BookingPaymentStatus.PAID,
            auto_confirm_at__lte=now,
        )
        .exclude(dispute__status__in=OPEN_DISPUTE_STATUSES)
        .order_by("auto_confirm_at")[:BATCH_SIZE]
    )

    confirmed_count = 0
    error_count = 0
    for booking in candidates:
        try:
            if BookingService.auto_confirm_booking(booking):
                confirmed_count += 1
        except Exception as e:
            error_count += 1
            logger.error(
                f"Failed to auto-confirm booking: {e}",
                extra={"booking_id": str(booking.id), "error": str(e)},
                exc_info=True,
            )

    if confirmed_count or error_count:
        logger.info(
            f"Auto-confirm sweep complete: released {confirmed_count} bookings",
            extra={"confirmed_count": confirmed_count, "error_count": error_count},
        )
    return {"confirmed_count": confirmed_count, "error_count": error_count}
