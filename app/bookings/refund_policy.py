"""
Refund policy engine.

Decides how much of a booking's payment goes back to the client when it
is cancelled.

    cancelled by the freelancer (or on their behalf)   100%
    cancelled by the client:
        notice >= free_cancel_hours                     100%
        notice >= partial_refund_hours                  partial_refund_percent
        otherwise                                       0%

Notice is compared as an exact timedelta, so with a 48 hour free tier a
cancellation 47h59m59s before the start falls into the partial tier.
The reported ``hours_before_service`` is floored and informational only.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from core.helpers import percent_of, whole_hours_between

from bookings.models import CancelledBy


@dataclass(frozen=True)
class RefundPolicy:
    free_cancel_hours: int = 48
    partial_refund_hours: int = 24
    partial_refund_percent: int = 50

    @classmethod
    def from_platform(cls, platform) -> RefundPolicy:
        return cls(
            free_cancel_hours=platform.free_cancel_hours,
            partial_refund_hours=platform.partial_refund_hours,
            partial_refund_percent=platform.partial_refund_percent,
        )


@dataclass(frozen=True)
class RefundCalculation:
    refund_percent: int
    refund_amount_pence: int
    hours_before_service: int

    def to_dict(self) -> dict[str, int]:
        return {
            "refund_percent": self.refund_percent,
            "refund_amount_pence": self.refund_amount_pence,
            "hours_before_service": self.hours_before_service,
        }


def refund_percent_for(
    scheduled_start: datetime,
    cancelled_at: datetime,
    cancelled_by: str,
    policy: RefundPolicy,
) -> int:
    if cancelled_by == CancelledBy.FREELANCER:
        return 100

    notice = scheduled_start - cancelled_at
    if notice >= timedelta(hours=policy.free_cancel_hours):
        return 100
    if notice >= timedelta(hours=policy.partial_refund_hours):
        return policy.partial_refund_percent
    return 0


def calculate_refund(
    amount_pence: int,
    scheduled_start: datetime,
    cancelled_at: datetime,
    cancelled_by: str,
    policy: RefundPolicy | None = None,
) -> RefundCalculation:
    """
    Compute the refund for a cancellation.

    Args:
        amount_pence: What the client paid
        scheduled_start: Booking start
        cancelled_at: When the cancellation happens
        cancelled_by: CancelledBy value of the cancelling party
        policy: Tier thresholds (defaults: 48h / 24h / 50%)
    """
    policy = policy or RefundPolicy()
    percent = refund_percent_for(scheduled_start, cancelled_at, cancelled_by, policy)
    return RefundCalculation(
        refund_percent=percent,
        refund_amount_pence=percent_of(amount_pence, percent),
        hours_before_service=whole_hours_between(cancelled_at, scheduled_start),
    )
