"""
Tests for the money and time helpers.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from core.helpers import percent_of, round_half_up, whole_hours_between


class TestPercentOf:
    @pytest.mark.parametrize(
        "amount, percent, expected",
        [
            (10000, 10, 1000),
            (4999, 50, 2500),
            (333, 15, 50),
            (9000, 15, 1350),
            (0, 15, 0),
            (10000, 0, 0),
        ],
    )
    def test_rounds_half_up(self, amount, percent, expected):
        assert percent_of(amount, percent) == expected

    def test_fractional_percent(self):
        assert percent_of(10000, Decimal("12.5")) == 1250

    def test_round_half_up_on_exact_half(self):
        assert round_half_up(Decimal("2.5")) == 3
        assert round_half_up(Decimal("-2.5")) == -3


class TestWholeHoursBetween:
    START = datetime(2026, 11, 1, 10, 0, tzinfo=timezone.utc)

    def test_floors_partial_hours(self):
        assert whole_hours_between(self.START - timedelta(hours=23, minutes=59), self.START) == 23

    def test_exact_hours(self):
        assert whole_hours_between(self.START - timedelta(hours=48), self.START) == 48

    def test_negative_when_past(self):
        assert whole_hours_between(self.START + timedelta(minutes=30), self.START) == -1
