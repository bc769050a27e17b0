"""
Tests for the scheduled payout worker.
"""

from datetime import date

from freezegun import freeze_time

from payments.exceptions import StripeInvalidAccountError
from payments.state_machines import PayoutState
from payments.tests.factories import PayoutAccountFactory, PayoutFactory
from payments.workers import process_scheduled_payouts


@freeze_time("2026-10-23 09:00:00")
class TestProcessScheduledPayouts:
    def test_transfers_due_payouts(self, db, mock_stripe):
        payouts = [PayoutFactory(scheduled_date=date(2026, 10, 23)) for _ in range(2)]
        for payout in payouts:
            PayoutAccountFactory(freelancer=payout.freelancer)

        result = process_scheduled_payouts()

        assert result == {"processed_count": 2, "failed_count": 0, "skipped_count": 0}
        assert mock_stripe.create_transfer.call_count == 2
        for payout in payouts:
            payout.refresh_from_db()
            assert payout.status == PayoutState.PAID

    def test_counts_transfer_failures(self, db, mock_stripe):
        payout = PayoutFactory(scheduled_date=date(2026, 10, 23))
        PayoutAccountFactory(freelancer=payout.freelancer)
        mock_stripe.create_transfer.side_effect = StripeInvalidAccountError("Account closed")

        result = process_scheduled_payouts()

        assert result["failed_count"] == 1
        payout.refresh_from_db()
        assert payout.status == PayoutState.FAILED

    def test_future_and_unready_payouts_untouched(self, db, mock_stripe):
        future = PayoutFactory(scheduled_date=date(2026, 10, 30))
        PayoutAccountFactory(freelancer=future.freelancer)
        unready = PayoutFactory(scheduled_date=date(2026, 10, 23))
        PayoutAccountFactory(freelancer=unready.freelancer, payouts_enabled=False)

        result = process_scheduled_payouts()

        assert result == {"processed_count": 0, "failed_count": 0, "skipped_count": 0}
        mock_stripe.create_transfer.assert_not_called()

    def test_second_run_does_not_transfer_again(self, db, mock_stripe):
        payout = PayoutFactory(scheduled_date=date(2026, 10, 23))
        PayoutAccountFactory(freelancer=payout.freelancer)

        process_scheduled_payouts()
        result = process_scheduled_payouts()

        assert result["processed_count"] == 0
        assert mock_stripe.create_transfer.call_count == 1
