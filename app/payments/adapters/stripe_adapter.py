"""
Stripe API adapter for escrow payment operations.

Every Stripe call in the marketplace goes through StripeAdapter so that
timeouts, error translation, idempotency keys and logging stay consistent.

Operations:
- create_payment_intent: Charge the client for a booking (money lands in escrow)
- create_refund: Return all or part of an escrowed payment to the client
- create_transfer: Send a freelancer payout to their connected account
- retrieve_payment_intent: Read back an intent (checkout re-issue)
- verify_webhook_signature: Check the Stripe-Signature header on callbacks

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- PAYMENT_CURRENCY: Always "gbp"; amounts are in pence

Usage:
    from payments.adapters import (
        CreatePaymentIntentParams,
        IdempotencyKeyGenerator,
        StripeAdapter,
    )

    result = StripeAdapter.create_payment_intent(
        CreatePaymentIntentParams(
            amount_pence=10000,
            idempotency_key=IdempotencyKeyGenerator.generate(
                "create_intent", booking.id
            ),
            metadata={"booking_id": str(booking.id)},
        )
    )

    refund = StripeAdapter.create_refund(
        payment_intent_id=payment.stripe_payment_intent_id,
        idempotency_key=IdempotencyKeyGenerator.generate("refund", payment.id),
        amount_pence=5000,
    )
"""

from __future__ import annotations

import hashlib
import logging
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any

import stripe
from django.conf import settings

from payments.exceptions import (
    StripeAPIUnavailableError,
    StripeCardDeclinedError,
    StripeError,
    StripeInsufficientFundsError,
    StripeInvalidAccountError,
    StripeInvalidRequestError,
    StripeRateLimitError,
    StripeTimeoutError,
)


def _default_currency() -> str:
    return getattr(settings, "PAYMENT_CURRENCY", "gbp")


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class CreatePaymentIntentParams:
    """
    What to charge the client for one booking.

    ``metadata`` always carries ``booking_id`` so webhooks can find the
    booking again. Currency follows settings.PAYMENT_CURRENCY and only
    card payments are offered.
    """

    amount_pence: int
    idempotency_key: str
    metadata: dict[str, str] = field(default_factory=dict)
    currency: str = field(default_factory=_default_currency)
    payment_method_types: list[str] = field(default_factory=lambda: ["card"])

    def __post_init__(self) -> None:
        if self.amount_pence <= 0:
            raise ValueError("amount_pence must be positive")
        if not self.idempotency_key:
            raise ValueError("idempotency_key is required")


@dataclass
class PaymentIntentResult:
    """A created or retrieved intent; ``client_secret`` goes to the checkout page."""

    id: str
    status: str
    amount_pence: int
    currency: str
    client_secret: str | None = None
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class TransferResult:
    id: str
    amount_pence: int
    currency: str
    destination_account: str
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


@dataclass
class RefundResult:
    """Refund of an escrowed charge; ``status`` may still be "pending"."""

    id: str
    amount_pence: int
    currency: str
    status: str
    payment_intent_id: str
    metadata: dict[str, str] = field(default_factory=dict)
    raw_response: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate deterministic idempotency keys for Stripe API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    The same (operation, entity, attempt) always yields the same key, so a
    retry after "Stripe succeeded but our write rolled back" gets the
    original refund or transfer back instead of moving money twice.

    Example:
        key = IdempotencyKeyGenerator.generate("payout_transfer", payout.id)
        # "payout_transfer:550e8400-e29b-41d4-a716-446655440000:1:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Retry Classification
# =============================================================================


def is_retryable_stripe_error(error: Exception) -> bool:
    """
    Check if a Stripe error is transient.

    Payout processing logs this with every failed transfer so an admin
    can tell a transient outage from a payout that needs fixing first.
    """
    if isinstance(error, StripeError):
        return getattr(error, "is_retryable", False)
    return False


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are classmethods with no instance state, so web and Celery
    workers share it freely. Tests patch these methods directly.

    Each call runs inside ``_stripe_call``, which configures the client,
    logs start and completion with timing, and translates SDK errors into
    the StripeError hierarchy.
    """

    REFUND_REASONS = ("duplicate", "fraudulent", "requested_by_customer")

    @staticmethod
    def _configure_stripe() -> None:
        stripe.api_key = settings.STRIPE_SECRET_KEY
        stripe.default_http_client = stripe.http_client.RequestsClient(
            timeout=getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        )

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def _stripe_call(cls, operation: str, level: int = logging.INFO, **context) -> Iterator[dict[str, Any]]:
        """
        Wrap one Stripe request.

        Yields the log context dict; callers add provider ids to it so the
        completion line carries them.
        """
        cls._configure_stripe()
        logger = cls.get_logger()
        log_context: dict[str, Any] = {"operation": operation, **context}
        started = time.monotonic()
        logger.log(level, f"Stripe {operation} started", extra=log_context)

        try:
            yield log_context
        except Exception as e:
            cls._handle_stripe_error(e, {**log_context, "duration_ms": (time.monotonic() - started) * 1000})
            raise

        logger.log(
            level,
            f"Stripe {operation} completed",
            extra={**log_context, "duration_ms": (time.monotonic() - started) * 1000},
        )

    # =========================================================================
    # Charges
    # =========================================================================

    @classmethod
    def create_payment_intent(
        cls,
        params: CreatePaymentIntentParams,
        trace_id: str | None = None,
    ) -> PaymentIntentResult:
        """
        Create the PaymentIntent that collects a booking total into escrow.

        Captured funds stay on the platform balance until a transfer pays
        the freelancer or a refund returns them to the client.

        Raises:
            StripeCardDeclinedError: Card was declined
            StripeInvalidRequestError: Invalid parameters
            StripeAPIUnavailableError: Stripe service unavailable
        """
        with cls._stripe_call(
            "create_payment_intent",
            amount_pence=params.amount_pence,
            booking_id=params.metadata.get("booking_id"),
            idempotency_key=params.idempotency_key,
            trace_id=trace_id,
        ) as log_context:
            intent = stripe.PaymentIntent.create(
                amount=params.amount_pence,
                currency=params.currency,
                metadata=params.metadata,
                payment_method_types=params.payment_method_types,
                idempotency_key=params.idempotency_key,
            )
            log_context["payment_intent_id"] = intent.id

        return cls._to_intent_result(intent)

    @classmethod
    def retrieve_payment_intent(cls, payment_intent_id: str, trace_id: str | None = None) -> PaymentIntentResult:
        """Read back an intent, e.g. to hand its client secret out again."""
        with cls._stripe_call(
            "retrieve_payment_intent",
            level=logging.DEBUG,
            payment_intent_id=payment_intent_id,
            trace_id=trace_id,
        ):
            intent = stripe.PaymentIntent.retrieve(payment_intent_id)

        return cls._to_intent_result(intent)

    @staticmethod
    def _to_intent_result(intent) -> PaymentIntentResult:
        return PaymentIntentResult(
            id=intent.id,
            status=intent.status,
            amount_pence=intent.amount,
            currency=intent.currency,
            client_secret=intent.client_secret,
            metadata=dict(intent.metadata or {}),
            raw_response=intent.to_dict(),
        )

    # =========================================================================
    # Money Out
    # =========================================================================

    @classmethod
    def create_refund(
        cls,
        payment_intent_id: str,
        idempotency_key: str,
        amount_pence: int | None = None,
        reason: str | None = None,
        metadata: dict[str, str] | None = None,
        trace_id: str | None = None,
    ) -> RefundResult:
        """
        Refund all or part of an escrowed payment.

        Args:
            payment_intent_id: Stripe PaymentIntent ID (pi_xxx)
            idempotency_key: Deterministic key for the refund
            amount_pence: Amount to refund; None refunds the whole intent
            reason: Stripe only accepts its own three reasons. Platform
                reasons such as "freelancer_declined" travel in metadata.
            metadata: Extra metadata (payment and booking ids)

        Raises:
            StripeInvalidRequestError: Already refunded or amount above captured
        """
        request: dict[str, Any] = {
            "payment_intent": payment_intent_id,
            "metadata": dict(metadata or {}),
            "idempotency_key": idempotency_key,
        }
        if amount_pence is not None:
            request["amount"] = amount_pence
        if reason in cls.REFUND_REASONS:
            request["reason"] = reason
        elif reason:
            request["metadata"]["reason"] = reason

        with cls._stripe_call(
            "create_refund",
            payment_intent_id=payment_intent_id,
            amount_pence=amount_pence,
            idempotency_key=idempotency_key,
            trace_id=trace_id,
        ) as log_context:
            refund = stripe.Refund.create(**request)
            log_context.update(refund_id=refund.id, refund_status=refund.status)

        return RefundResult(
            id=refund.id,
            amount_pence=refund.amount,
            currency=refund.currency,
            status=refund.status,
            payment_intent_id=refund.payment_intent,
            metadata=dict(refund.metadata or {}),
            raw_response=refund.to_dict(),
        )

    @classmethod
    def create_transfer(
        cls,
        amount_pence: int,
        destination_account: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
        currency: str | None = None,
        trace_id: str | None = None,
    ) -> TransferResult:
        """
        Pay a freelancer payout into their connected account.

        Raises:
            StripeInvalidAccountError: Destination account missing or restricted
            StripeInsufficientFundsError: Platform balance too low
        """
        with cls._stripe_call(
            "create_transfer",
            amount_pence=amount_pence,
            destination_account=destination_account,
            idempotency_key=idempotency_key,
            trace_id=trace_id,
        ) as log_context:
            transfer = stripe.Transfer.create(
                amount=amount_pence,
                currency=currency or _default_currency(),
                destination=destination_account,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            )
            log_context["transfer_id"] = transfer.id

        return TransferResult(
            id=transfer.id,
            amount_pence=transfer.amount,
            currency=transfer.currency,
            destination_account=transfer.destination,
            metadata=dict(transfer.metadata or {}),
            raw_response=transfer.to_dict(),
        )

    # =========================================================================
    # Webhooks
    # =========================================================================

    @classmethod
    def verify_webhook_signature(cls, payload: bytes, signature: str) -> dict[str, Any]:
        """
        Verify the Stripe-Signature header and parse the event.

        stripe.Webhook.construct_event compares the HMAC-SHA256 of
        "timestamp.payload" with the header's v1 signatures in constant
        time and rejects stale timestamps.

        Raises:
            StripeInvalidRequestError: Invalid signature or malformed payload
        """
        try:
            event = stripe.Webhook.construct_event(payload, signature, settings.STRIPE_WEBHOOK_SECRET)
        except stripe.error.SignatureVerificationError as e:
            raise StripeInvalidRequestError(
                "Invalid webhook signature",
                stripe_code="signature_verification_failed",
                details={"error": str(e)},
            ) from e
        except ValueError as e:
            raise StripeInvalidRequestError(
                "Malformed webhook payload",
                stripe_code="invalid_payload",
                details={"error": str(e)},
            ) from e
        return event.to_dict()

    # =========================================================================
    # Error Translation
    # =========================================================================

    @classmethod
    def _handle_stripe_error(cls, error: Exception, log_context: dict[str, Any]) -> None:
        """
        Raise the StripeError subclass matching an SDK exception.

        Rate limits, connection failures, timeouts and Stripe 5xx map to
        exceptions with ``is_retryable = True``.
        """
        if isinstance(error, StripeError):
            raise error

        logger = cls.get_logger()

        if isinstance(error, stripe.error.CardError):
            decline_code = getattr(error, "decline_code", None)
            logger.warning("Stripe card error", extra={**log_context, "decline_code": decline_code})
            error_class = (
                StripeInsufficientFundsError if decline_code == "insufficient_funds" else StripeCardDeclinedError
            )
            raise error_class(
                str(error.user_message or error),
                stripe_code=error.code,
                decline_code=decline_code,
            ) from error

        if isinstance(error, stripe.error.InvalidRequestError):
            logger.error("Stripe rejected request", extra={**log_context, "stripe_code": error.code})
            # Transfers to a missing or restricted connected account
            if "account" in str(error).lower():
                raise StripeInvalidAccountError(str(error), stripe_code=error.code) from error
            raise StripeInvalidRequestError(str(error), stripe_code=error.code) from error

        if isinstance(error, stripe.error.RateLimitError):
            logger.warning("Stripe rate limit hit", extra=log_context)
            raise StripeRateLimitError("Stripe rate limit exceeded", stripe_code="rate_limit") from error

        if isinstance(error, stripe.error.APIConnectionError):
            logger.error("Stripe unreachable", extra=log_context, exc_info=True)
            if "timed out" in str(error).lower():
                raise StripeTimeoutError("Stripe request timed out", stripe_code="timeout") from error
            raise StripeAPIUnavailableError(
                "Could not connect to Stripe", stripe_code="api_connection_error"
            ) from error

        if isinstance(error, stripe.error.AuthenticationError):
            logger.critical("Stripe authentication failed, check STRIPE_SECRET_KEY", extra=log_context)
            raise StripeInvalidRequestError(
                "Stripe authentication failed", stripe_code="authentication_error"
            ) from error

        if isinstance(error, stripe.error.APIError):
            logger.error("Stripe server error", extra=log_context, exc_info=True)
            raise StripeAPIUnavailableError("Stripe service error", stripe_code="api_error") from error

        logger.error(f"Unexpected Stripe failure: {type(error).__name__}", extra=log_context, exc_info=True)
        raise StripeAPIUnavailableError(f"Unexpected Stripe error: {error}", stripe_code="unknown_error") from error
