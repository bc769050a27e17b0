"""
Freelancer reliability tracking.

Every cancellation made by a freelancer is recorded. Cancellations with
less than ``last_minute_cancel_hours`` notice count as last-minute; the
number of last-minute cancellations in the rolling
``cancellation_window_days`` window drives a warning and a suspension
signal. The signal is advisory: suspending the account is an admin action.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

from core.helpers import whole_hours_between

from bookings.models import Booking, FreelancerCancellation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReliabilityStatus:
    last_minute_count: int
    should_warn: bool
    should_suspend: bool
    message: str

    def to_dict(self) -> dict:
        return {
            "last_minute_count": self.last_minute_count,
            "should_warn": self.should_warn,
            "should_suspend": self.should_suspend,
            "message": self.message,
        }


def evaluate(count: int, warn_threshold: int, suspend_threshold: int, window_days: int) -> ReliabilityStatus:
    should_suspend = count >= suspend_threshold
    should_warn = warn_threshold <= count < suspend_threshold

    if should_suspend:
        message = (
            f"{count} last-minute cancellations in the last {window_days} days. "
            "Your account has been flagged for suspension review."
        )
    elif should_warn:
        message = (
            f"{count} last-minute cancellations in the last {window_days} days. "
            f"Reaching {suspend_threshold} may lead to suspension."
        )
    else:
        message = ""

    return ReliabilityStatus(
        last_minute_count=count,
        should_warn=should_warn,
        should_suspend=should_suspend,
        message=message,
    )


def record_freelancer_cancellation(
    booking: Booking,
    cancelled_at: datetime,
    platform,
) -> FreelancerCancellation:
    hours = whole_hours_between(cancelled_at, booking.scheduled_start)
    notice = booking.scheduled_start - cancelled_at
    return FreelancerCancellation.objects.create(
        freelancer_id=booking.freelancer_id,
        booking=booking,
        hours_before_service=hours,
        is_last_minute=notice < timedelta(hours=platform.last_minute_cancel_hours),
    )


def reliability_status(freelancer_id, now: datetime, platform) -> ReliabilityStatus:
    since = now - timedelta(days=platform.cancellation_window_days)
    count = FreelancerCancellation.objects.filter(
        freelancer_id=freelancer_id,
        is_last_minute=True,
        created_at__gte=since,
    ).count()

    status = evaluate(
        count,
        warn_threshold=platform.cancellation_warn_threshold,
        suspend_threshold=platform.cancellation_suspend_threshold,
        window_days=platform.cancellation_window_days,
    )
    if status.should_suspend or status.should_warn:
        logger.warning(
            "Freelancer reliability threshold reached",
            extra={
                "freelancer_id": freelancer_id,
                "last_minute_count": count,
                "should_suspend": status.should_suspend,
            },
        )
    return status
