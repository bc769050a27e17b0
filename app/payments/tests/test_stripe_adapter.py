"""
Tests for the Stripe adapter.

The Stripe SDK resources are patched; these tests cover request shaping,
result mapping and error translation, not Stripe itself.
"""

import uuid
from dataclasses import dataclass
from typing import Any
from unittest.mock import patch

import pytest
import stripe

from payments.adapters import (
    CreatePaymentIntentParams,
    IdempotencyKeyGenerator,
    PaymentIntentResult,
    RefundResult,
    StripeAdapter,
    TransferResult,
    is_retryable_stripe_error,
)
from payments.exceptions import (
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)


# =============================================================================
# Mock Stripe Objects
# =============================================================================


@dataclass
class MockStripeObject:
    """Mock Stripe API object with attribute access and to_dict support."""

    data: dict[str, Any]

    def __getattr__(self, name: str) -> Any:
        if name == "data":
            return self.__dict__["data"]
        return self.data.get(name)

    def to_dict(self) -> dict[str, Any]:
        return self.data


@pytest.fixture(autouse=True)
def mock_http_client():
    with patch("stripe.http_client.RequestsClient") as mock:
        yield mock


@pytest.fixture
def mock_stripe_payment_intent():
    with patch("stripe.PaymentIntent") as mock:
        mock.create.return_value = MockStripeObject(
            {
                "id": "pi_test123",
                "status": "requires_payment_method",
                "amount": 10000,
                "currency": "gbp",
                "client_secret": "pi_test123_secret_abc",
                "metadata": {"booking_id": "b-1"},
            }
        )
        yield mock


@pytest.fixture
def mock_stripe_refund():
    with patch("stripe.Refund") as mock:
        mock.create.return_value = MockStripeObject(
            {
                "id": "re_test123",
                "amount": 5000,
                "currency": "gbp",
                "status": "succeeded",
                "payment_intent": "pi_original",
                "metadata": {},
            }
        )
        yield mock


@pytest.fixture
def mock_stripe_transfer():
    with patch("stripe.Transfer") as mock:
        mock.create.return_value = MockStripeObject(
            {
                "id": "tr_test123",
                "amount": 7650,
                "currency": "gbp",
                "destination": "acct_dest123",
                "metadata": {},
            }
        )
        yield mock


def intent_params(**overrides) -> CreatePaymentIntentParams:
    values = {"amount_pence": 10000, "idempotency_key": "create_intent:test:1:abcd"}
    values.update(overrides)
    return CreatePaymentIntentParams(**values)


# =============================================================================
# Data Types
# =============================================================================


class TestCreatePaymentIntentParams:
    def test_defaults_to_gbp_card(self):
        params = intent_params()

        assert params.currency == "gbp"
        assert params.payment_method_types == ["card"]

    def test_amount_must_be_positive(self):
        with pytest.raises(ValueError, match="amount_pence must be positive"):
            intent_params(amount_pence=0)

    def test_idempotency_key_required(self):
        with pytest.raises(ValueError, match="idempotency_key is required"):
            intent_params(idempotency_key="")


class TestIdempotencyKeyGenerator:
    """Keys are deterministic per (operation, entity, attempt)."""

    def test_key_format(self):
        entity_id = uuid.uuid4()

        key = IdempotencyKeyGenerator.generate("payout_transfer", entity_id, attempt=2)

        operation, entity, attempt, short_hash = key.split(":")
        assert operation == "payout_transfer"
        assert entity == str(entity_id)
        assert attempt == "2"
        assert len(short_hash) == 8

    def test_same_inputs_produce_same_key(self):
        entity_id = uuid.uuid4()

        assert IdempotencyKeyGenerator.generate("refund_full", entity_id) == IdempotencyKeyGenerator.generate(
            "refund_full", entity_id
        )

    def test_new_attempt_produces_new_key(self):
        entity_id = uuid.uuid4()

        first = IdempotencyKeyGenerator.generate("payout_transfer", entity_id, attempt=1)
        second = IdempotencyKeyGenerator.generate("payout_transfer", entity_id, attempt=2)

        assert first != second


class TestIsRetryableStripeError:
    def test_transient_errors_are_retryable(self):
        assert is_retryable_stripe_error(StripeRateLimitError("slow down"))
        assert is_retryable_stripe_error(StripeAPIUnavailableError("down"))
        assert is_retryable_stripe_error(StripeTimeoutError("timeout"))

    def test_permanent_errors_are_not(self):
        assert not is_retryable_stripe_error(StripeCardDeclinedError("declined"))
        assert not is_retryable_stripe_error(StripeInvalidAccountError("no account"))

    def test_non_stripe_errors_are_not(self):
        assert not is_retryable_stripe_error(ValueError("boom"))


# =============================================================================
# Operations
# =============================================================================


class TestCreatePaymentIntent:
    def test_maps_response_to_result(self, mock_stripe_payment_intent):
        result = StripeAdapter.create_payment_intent(intent_params(metadata={"booking_id": "b-1"}))

        assert isinstance(result, PaymentIntentResult)
        assert result.id == "pi_test123"
        assert result.amount_pence == 10000
        assert result.client_secret == "pi_test123_secret_abc"
        assert result.metadata == {"booking_id": "b-1"}

    def test_passes_idempotency_key_and_amount(self, mock_stripe_payment_intent):
        StripeAdapter.create_payment_intent(intent_params())

        kwargs = mock_stripe_payment_intent.create.call_args.kwargs
        assert kwargs["amount"] == 10000
        assert kwargs["currency"] == "gbp"
        assert kwargs["idempotency_key"] == "create_intent:test:1:abcd"


class TestRetrievePaymentIntent:
    def test_reads_back_intent(self, mock_stripe_payment_intent):
        mock_stripe_payment_intent.retrieve.return_value = mock_stripe_payment_intent.create.return_value

        result = StripeAdapter.retrieve_payment_intent("pi_test123")

        mock_stripe_payment_intent.retrieve.assert_called_once_with("pi_test123")
        assert result.client_secret == "pi_test123_secret_abc"

    def test_unknown_intent(self, mock_stripe_payment_intent):
        mock_stripe_payment_intent.retrieve.side_effect = stripe.error.InvalidRequestError(
            "No such payment_intent: 'pi_gone'", param="intent", code="resource_missing"
        )

        with pytest.raises(StripeInvalidRequestError):
            StripeAdapter.retrieve_payment_intent("pi_gone")


class TestCreateRefund:
    def test_full_refund_omits_amount(self, mock_stripe_refund):
        result = StripeAdapter.create_refund(payment_intent_id="pi_original", idempotency_key="refund-key")

        assert isinstance(result, RefundResult)
        assert result.id == "re_test123"
        assert result.payment_intent_id == "pi_original"
        assert "amount" not in mock_stripe_refund.create.call_args.kwargs

    def test_partial_refund_sends_amount(self, mock_stripe_refund):
        StripeAdapter.create_refund(
            payment_intent_id="pi_original",
            idempotency_key="refund-key",
            amount_pence=2500,
        )

        assert mock_stripe_refund.create.call_args.kwargs["amount"] == 2500

    def test_stripe_reason_passed_through(self, mock_stripe_refund):
        StripeAdapter.create_refund(
            payment_intent_id="pi_original",
            idempotency_key="refund-key",
            reason="requested_by_customer",
        )

        assert mock_stripe_refund.create.call_args.kwargs["reason"] == "requested_by_customer"

    def test_platform_reason_goes_to_metadata(self, mock_stripe_refund):
        """Stripe rejects unknown reasons, so ours are kept in metadata."""
        StripeAdapter.create_refund(
            payment_intent_id="pi_original",
            idempotency_key="refund-key",
            reason="freelancer_declined",
        )

        kwargs = mock_stripe_refund.create.call_args.kwargs
        assert "reason" not in kwargs
        assert kwargs["metadata"]["reason"] == "freelancer_declined"


class TestCreateTransfer:
    def test_transfer_to_connected_account(self, mock_stripe_transfer):
        result = StripeAdapter.create_transfer(
            amount_pence=7650,
            destination_account="acct_dest123",
            idempotency_key="transfer-key",
        )

        assert isinstance(result, TransferResult)
        assert result.id == "tr_test123"
        assert result.destination_account == "acct_dest123"
        kwargs = mock_stripe_transfer.create.call_args.kwargs
        assert kwargs["currency"] == "gbp"
        assert kwargs["idempotency_key"] == "transfer-key"


# =============================================================================
# Error Translation
# =============================================================================


class TestErrorTranslation:
    def test_card_declined(self, mock_stripe_payment_intent):
        error = stripe.error.CardError(message="Your card was declined.", param=None, code="card_declined")
        error.decline_code = "generic_decline"
        mock_stripe_payment_intent.create.side_effect = error

        with pytest.raises(StripeCardDeclinedError) as exc_info:
            StripeAdapter.create_payment_intent(intent_params())

        assert exc_info.value.decline_code == "generic_decline"
        assert exc_info.value.is_retryable is False

    def test_insufficient_funds(self, mock_stripe_payment_intent):
        error = stripe.error.CardError(message="Insufficient funds.", param=None, code="card_declined")
        error.decline_code = "insufficient_funds"
        mock_stripe_payment_intent.create.side_effect = error

        with pytest.raises(StripeInsufficientFundsError):
            StripeAdapter.create_payment_intent(intent_params())

    def test_invalid_destination_account(self, mock_stripe_transfer):
        mock_stripe_transfer.create.side_effect = stripe.error.InvalidRequestError(
            message="No such destination account: acct_missing",
            param="destination",
            code="resource_missing",
        )

        with pytest.raises(StripeInvalidAccountError):
            StripeAdapter.create_transfer(
                amount_pence=7650,
                destination_account="acct_missing",
                idempotency_key="transfer-key",
            )

    def test_rate_limit_is_retryable(self, mock_stripe_refund):
        mock_stripe_refund.create.side_effect = stripe.error.RateLimitError(message="Too many requests")

        with pytest.raises(StripeRateLimitError) as exc_info:
            StripeAdapter.create_refund(payment_intent_id="pi_1", idempotency_key="refund-key")

        assert exc_info.value.is_retryable is True

    def test_connection_error_is_unavailable(self, mock_stripe_payment_intent):
        mock_stripe_payment_intent.create.side_effect = stripe.error.APIConnectionError(
            message="Could not connect to Stripe."
        )

        with pytest.raises(StripeAPIUnavailableError):
            StripeAdapter.create_payment_intent(intent_params())


# =============================================================================
# Webhook Signature
# =============================================================================


class TestVerifyWebhookSignature:
    def test_returns_event_dict(self):
        event = MockStripeObject({"id": "evt_test123", "type": "payment_intent.succeeded"})
        with patch("stripe.Webhook") as mock_webhook:
            mock_webhook.construct_event.return_value = event

            result = StripeAdapter.verify_webhook_signature(b'{"id": "evt_test123"}', "t=1,v1=abc")

        assert result["id"] == "evt_test123"

    def test_bad_signature_raises_invalid_request(self):
        with patch("stripe.Webhook") as mock_webhook:
            mock_webhook.construct_event.side_effect = stripe.error.SignatureVerificationError(
                message="Unable to verify webhook signature.",
                sig_header="bad",
            )

            with pytest.raises(StripeInvalidRequestError, match="signature"):
                StripeAdapter.verify_webhook_signature(b"tampered", "bad")
