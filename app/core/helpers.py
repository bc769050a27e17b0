"""
Helper functions for money and time arithmetic.

Every amount in the system is an integer number of pence. Percentages are
applied with Decimal and rounded half-up so that 0.5p always rounds away
from zero, independent of float representation.

Usage:
    from core.helpers import percent_of, whole_hours_between

    fee = percent_of(10000, 10)            # 1000
    refund = percent_of(4999, 50)          # 2500
    hours = whole_hours_between(now, start)  # floored

Note:
    These are pure functions. Anything that needs the database belongs in
    a service.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal


def round_half_up(value: Decimal) -> int:
    """Round a Decimal to the nearest integer, halves away from zero."""
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def percent_of(amount_pence: int, percent: int | Decimal) -> int:
    """
    Return ``amount_pence * percent / 100`` rounded half-up.

    Args:
        amount_pence: Base amount in pence
        percent: Percentage (0-100, may be fractional as a Decimal)

    Example:
        percent_of(333, 15)  # 49.95 -> 50
    """
    return round_half_up(Decimal(amount_pence) * Decimal(percent) / Decimal(100))


def whole_hours_between(earlier: datetime, later: datetime) -> int:
    """Hours from ``earlier`` to ``later``, floored (negative if later < earlier)."""
    return int((later - earlier) // timedelta(hours=1))
