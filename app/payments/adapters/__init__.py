"""
Payment adapters for external services.

All payment provider calls go through these adapters so that error
handling, timeouts, idempotency keys and logging are consistent.

Usage:
    from payments.adapters import StripeAdapter, CreatePaymentIntentParams

    result = StripeAdapter.create_payment_intent(
        CreatePaymentIntentParams(
            amount_pence=10000,
            idempotency_key="create_intent:<booking_id>:1:ab12cd34",
        )
    )
"""

from payments.adapters.stripe_adapter import (
    CreatePaymentIntentParams,
    IdempotencyKeyGenerator,
    PaymentIntentResult,
    RefundResult,
    StripeAdapter,
    TransferResult,
    is_retryable_stripe_error,
)

__all__ = [
    "CreatePaymentIntentParams",
    "IdempotencyKeyGenerator",
    "PaymentIntentResult",
    "RefundResult",
    "StripeAdapter",
    "TransferResult",
    "is_retryable_stripe_error",
]
