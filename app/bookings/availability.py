"""
Slot availability rules for new bookings.

A slot is bookable when:
- it starts at least the freelancer's minimum lead time from now
- it does not overlap any of the freelancer's pending or confirmed bookings
- the freelancer has not reached max_bookings_per_day on that date
"""

from __future__ import annotations

from datetime import datetime, timedelta

from core.exceptions import ValidationError

from bookings.models import Booking, BookingStatus

BLOCKING_STATUSES = [BookingStatus.PENDING, BookingStatus.CONFIRMED]


def ensure_slot_available(
    freelancer,
    start: datetime,
    end: datetime,
    now: datetime,
    exclude_booking_id=None,
) -> None:
    """
    Raise ValidationError with a specific reason when the slot cannot be booked.

    ``exclude_booking_id`` leaves one booking out of the overlap and daily
    cap checks, so a booking being rescheduled does not block itself.
    """
    profile = getattr(freelancer, "profile", None)
    lead_hours = profile.min_lead_time_hours if profile else 0
    daily_cap = profile.max_bookings_per_day if profile else None

    if start <= now:
        raise ValidationError(
            "Booking must start in the future",
            error_code="SLOT_IN_PAST",
        )

    if start - now < timedelta(hours=lead_hours):
        raise ValidationError(
            f"This freelancer needs at least {lead_hours} hours notice",
            error_code="SLOT_INSIDE_LEAD_TIME",
            details={"min_lead_time_hours": lead_hours},
        )

    active = Booking.objects.filter(freelancer=freelancer, status__in=BLOCKING_STATUSES)
    if exclude_booking_id is not None:
        active = active.exclude(pk=exclude_booking_id)

    if active.filter(scheduled_start__lt=end, scheduled_end__gt=start).exists():
        raise ValidationError(
            "The freelancer already has a booking at this time",
            error_code="SLOT_TAKEN",
        )

    if daily_cap is not None and active.filter(scheduled_start__date=start.date()).count() >= daily_cap:
        raise ValidationError(
            "The freelancer is fully booked on this day",
            error_code="DAILY_LIMIT_REACHED",
            details={"max_bookings_per_day": daily_cap},
        )
