"""
Errors raised by escrow, payout and Stripe operations.

    PaymentError
    ├── PaymentNotFoundError (404): no payment or payout behind an id
    └── PaymentProcessingError (502, also an ExternalServiceError)
        └── StripeError: anything the Stripe SDK raised, translated
            ├── StripeCardDeclinedError
            ├── StripeInsufficientFundsError
            ├── StripeInvalidAccountError: payout destination unusable
            ├── StripeInvalidRequestError: bad parameters or webhook signature
            ├── StripeRateLimitError         (retryable)
            ├── StripeAPIUnavailableError    (retryable)
            └── StripeTimeoutError           (retryable)

    EscrowAlreadySettledError (409): the money already left escrow
    InvalidStateTransitionError (409): django-fsm refused a transition

Usage:
    from payments.exceptions import EscrowAlreadySettledError

    if payment.escrow_status != EscrowStatus.HELD:
        raise EscrowAlreadySettledError(
            "Payment has already been refunded",
            details={"escrow_status": payment.escrow_status},
        )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import BaseApplicationError, ConflictError, ExternalServiceError

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Payment Domain
# =============================================================================


class PaymentError(BaseApplicationError):
    """
    Root of the payment errors; catch this to handle any of them.

    Example:
        try:
            EscrowService.refund(payment, amount_pence=2500)
        except PaymentError as e:
            return Response(e.to_dict(), status=e.http_status)
    """

    default_error_code: str = "PAYMENT_ERROR"


class PaymentNotFoundError(PaymentError):
    """No active payment for a booking, unknown payout id, or a webhook for an unknown intent."""

    default_error_code: str = "PAYMENT_NOT_FOUND"
    http_status: int = 404


class PaymentProcessingError(PaymentError, ExternalServiceError):
    """
    The payment provider failed.

    Also an ExternalServiceError so views answer 502 and code that only
    knows the core taxonomy still catches it.
    """

    default_error_code: str = "PAYMENT_PROCESSING_ERROR"


# =============================================================================
# Stripe
# =============================================================================


class StripeError(PaymentProcessingError):
    """
    A translated Stripe SDK error.

    ``stripe_code`` and ``decline_code`` are copied into ``details`` so
    they reach the API response. ``is_retryable`` is True only where the
    same request with the same idempotency key may succeed later.
    """

    default_error_code: str = "STRIPE_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        stripe_code: str | None = None,
        decline_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = dict(details or {})
        if stripe_code:
            details["stripe_code"] = stripe_code
        if decline_code:
            details["decline_code"] = decline_code
        super().__init__(message, error_code=error_code, details=details)
        self.stripe_code = stripe_code
        self.decline_code = decline_code


class StripeCardDeclinedError(StripeError):
    default_error_code: str = "CARD_DECLINED"


class StripeInsufficientFundsError(StripeError):
    default_error_code: str = "INSUFFICIENT_FUNDS"


class StripeInvalidAccountError(StripeError):
    """
    The connected account a payout targets is missing, disabled or restricted.

    The payout is marked failed until an admin fixes the account and retries.
    """

    default_error_code: str = "INVALID_STRIPE_ACCOUNT"


class StripeInvalidRequestError(StripeError):
    """
    Stripe rejected the parameters (unknown intent, refund above the
    captured amount, charge already refunded) or a webhook signature
    did not verify.
    """

    default_error_code: str = "INVALID_STRIPE_REQUEST"


class StripeRateLimitError(StripeError):
    default_error_code: str = "STRIPE_RATE_LIMITED"
    is_retryable: bool = True


class StripeAPIUnavailableError(StripeError):
    """Connection failure, TLS error or a Stripe 5xx."""

    default_error_code: str = "STRIPE_UNAVAILABLE"
    is_retryable: bool = True


class StripeTimeoutError(StripeError):
    """
    No answer in STRIPE_API_TIMEOUT_SECONDS.

    Stripe may still have applied the request. Refunds and transfers carry
    deterministic idempotency keys, so repeating one returns the original
    object.
    """

    default_error_code: str = "STRIPE_TIMEOUT"
    is_retryable: bool = True


# =============================================================================
# State Conflicts
# =============================================================================


class EscrowAlreadySettledError(ConflictError):
    """
    A direct request (refund endpoint, dispute resolution) asked to move
    money out of an escrow that is no longer held.

    Sweeps never raise this; for them a lost conditional update is a no-op.
    """

    default_error_code: str = "ESCROW_ALREADY_SETTLED"


class InvalidStateTransitionError(ConflictError):
    """
    django-fsm's TransitionNotAllowed in the standard error format.

    Example:
        try:
            payout.process()
        except TransitionNotAllowed:
            raise InvalidStateTransitionError(
                f"Cannot process payout from '{payout.status}'",
                details={"current_status": payout.status, "transition": "process"},
            )
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


__all__ = [
    "PaymentError",
    "PaymentNotFoundError",
    "PaymentProcessingError",
    "StripeError",
    "StripeCardDeclinedError",
    "StripeInsufficientFundsError",
    "StripeInvalidAccountError",
    "StripeInvalidRequestError",
    "StripeRateLimitError",
    "StripeAPIUnavailableError",
    "StripeTimeoutError",
    "EscrowAlreadySettledError",
    "InvalidStateTransitionError",
]
