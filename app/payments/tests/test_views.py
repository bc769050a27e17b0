"""
Tests for the admin payout endpoints.
"""

from django.urls import reverse

from payments.exceptions import StripeInvalidAccountError
from payments.state_machines import PayoutState
from payments.tests.factories import PayoutAccountFactory, PayoutFactory


class TestPayoutOverrideView:
    def test_admin_marks_paid(self, db, auth_client, admin_user):
        payout = PayoutFactory()
        url = reverse("payments:payout_override", kwargs={"pk": payout.pk})

        response = auth_client(admin_user).post(url, {"status": "paid", "notes": "Bank transfer"}, format="json")

        assert response.status_code == 200
        assert response.data["status"] == PayoutState.PAID
        assert response.data["admin_notes"] == "Bank transfer"
        assert [entry["action"] for entry in response.data["audit_log"]] == ["admin_override"]

    def test_unknown_status_is_rejected(self, db, auth_client, admin_user):
        payout = PayoutFactory()
        url = reverse("payments:payout_override", kwargs={"pk": payout.pk})

        response = auth_client(admin_user).post(url, {"status": "lost"}, format="json")

        assert response.status_code == 400
        assert "status" in response.data

    def test_freelancer_forbidden(self, db, auth_client):
        payout = PayoutFactory()
        url = reverse("payments:payout_override", kwargs={"pk": payout.pk})

        response = auth_client(payout.freelancer).post(url, {"status": "paid"}, format="json")

        assert response.status_code == 403
        payout.refresh_from_db()
        assert payout.status == PayoutState.PENDING

    def test_anonymous_rejected(self, db, api_client):
        payout = PayoutFactory()

        response = api_client.post(reverse("payments:payout_override", kwargs={"pk": payout.pk}), {"status": "paid"})

        assert response.status_code == 401


class TestPayoutProcessView:
    def test_process_now(self, db, auth_client, admin_user):
        payout = PayoutFactory()
        PayoutAccountFactory(freelancer=payout.freelancer)

        response = auth_client(admin_user).post(reverse("payments:payout_process", kwargs={"pk": payout.pk}))

        assert response.status_code == 200
        assert response.data["status"] == PayoutState.PAID

    def test_transfer_failure_is_bad_gateway(self, db, auth_client, admin_user, mock_stripe):
        payout = PayoutFactory()
        PayoutAccountFactory(freelancer=payout.freelancer)
        mock_stripe.create_transfer.side_effect = StripeInvalidAccountError("Account closed")

        response = auth_client(admin_user).post(reverse("payments:payout_process", kwargs={"pk": payout.pk}))

        assert response.status_code == 502
        assert response.data["error_code"] == "PAYOUT_FAILED"

    def test_account_not_ready_is_conflict(self, db, auth_client, admin_user):
        payout = PayoutFactory()

        response = auth_client(admin_user).post(reverse("payments:payout_process", kwargs={"pk": payout.pk}))

        assert response.status_code == 409
        assert response.data["error_code"] == "ACCOUNT_NOT_READY"


class TestPayoutRetryView:
    def test_retry_failed(self, db, auth_client, admin_user):
        payout = PayoutFactory(status=PayoutState.FAILED, error_message="declined")

        response = auth_client(admin_user).post(reverse("payments:payout_retry", kwargs={"pk": payout.pk}))

        assert response.status_code == 200
        assert response.data["status"] == PayoutState.PENDING

    def test_retry_paid_conflicts(self, db, auth_client, admin_user):
        payout = PayoutFactory(status=PayoutState.PAID)

        response = auth_client(admin_user).post(reverse("payments:payout_retry", kwargs={"pk": payout.pk}))

        assert response.status_code == 409

    def test_unknown_payout(self, db, auth_client, admin_user):
        url = reverse("payments:payout_retry", kwargs={"pk": "00000000-0000-0000-0000-000000000000"})

        response = auth_client(admin_user).post(url)

        assert response.status_code == 404
