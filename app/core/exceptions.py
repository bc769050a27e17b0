"""
Base exception classes for application-wide error handling.

Every booking, escrow, payout and dispute operation signals failure with one
of these exceptions. Views translate them into HTTP responses through
core.views.error_response, using the ``http_status`` carried by each class.

Exception Hierarchy:
    BaseApplicationError (base)
    ├── ValidationError - Precondition or state violations (400)
    ├── PermissionDeniedError - Actor is not a party / not an admin (403)
    ├── NotFoundError - Booking, payment, payout or dispute absent (404)
    ├── ConflictError - Duplicate payout, already refunded/released (409)
    ├── ExternalServiceError - Payment provider failures (502)
    └── InternalError - Unexpected failures (500)

Usage:
    from core.exceptions import ValidationError, PermissionDeniedError

    if booking.status != BookingStatus.PENDING:
        raise ValidationError(
            "Booking is not pending",
            error_code="BOOKING_NOT_PENDING",
            details={"status": booking.status},
        )

    try:
        BookingService.accept(user, booking_id)
    except BaseApplicationError as e:
        return Response(e.to_dict(), status=e.http_status)

Note:
    These exceptions are for domain/business logic errors.
    DRF handles API-layer exceptions (serialization, authentication, etc.).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for all application-specific errors.

    Attributes:
        message: Human-readable error description
        error_code: Machine-readable code for client-side handling
        details: Additional error context (ids, amounts, current status)
        http_status: Status code used when the error reaches a view

    Example:
        try:
            booking = BookingService.get_booking(booking_id)
        except NotFoundError as e:
            logger.warning(f"Booking not found: {e.error_code}")
            return Response(e.to_dict(), status=e.http_status)
    """

    default_error_code: str = "APPLICATION_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        """
        Initialize the exception.

        Args:
            message: Human-readable error description
            error_code: Machine-readable error code (defaults to class default)
            details: Additional error context
        """
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert exception to dictionary for API response.

        Example:
            {
                "error": "Booking is not pending",
                "error_code": "BOOKING_NOT_PENDING",
                "details": {"status": "confirmed"}
            }
        """
        result: dict[str, Any] = {
            "error": self.message,
            "error_code": self.error_code,
        }
        if self.details:
            result["details"] = self.details
        return result

    def __str__(self) -> str:
        """Return string representation with error code."""
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        """Return detailed representation for debugging."""
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"error_code={self.error_code!r}, "
            f"details={self.details!r})"
        )


class ValidationError(BaseApplicationError):
    """
    Raised when a precondition or state check fails.

    Use for:
    - Wrong current status ("booking is not pending")
    - Invalid input (refund amount above payment amount, missing address)
    - Business rule violations (slot unavailable, dispute window closed)

    No write is performed when this is raised.

    Example:
        raise ValidationError(
            "Refund amount exceeds payment amount",
            error_code="REFUND_AMOUNT_TOO_LARGE",
            details={"amount_pence": 12000, "payment_amount_pence": 10000},
        )
    """

    default_error_code: str = "VALIDATION_ERROR"
    http_status: int = 400


class NotFoundError(BaseApplicationError):
    """
    Raised when a requested resource is not found.

    Example:
        booking = Booking.objects.filter(id=booking_id).first()
        if not booking:
            raise NotFoundError(
                "Booking not found",
                error_code="BOOKING_NOT_FOUND",
                details={"booking_id": str(booking_id)},
            )
    """

    default_error_code: str = "NOT_FOUND"
    http_status: int = 404


class PermissionDeniedError(BaseApplicationError):
    """
    Raised when the actor may not perform an operation.

    Use for:
    - Actor is not the client or freelancer on the booking
    - Admin-only actions (dispute resolution, payout overrides)
    - Role mismatch (only freelancers accept bookings)

    Example:
        if booking.freelancer_id != user.id:
            raise PermissionDeniedError(
                "Only the booked freelancer can accept this booking",
                error_code="NOT_BOOKING_FREELANCER",
            )

    Note:
        For authentication failures (missing/invalid token), DRF's
        NotAuthenticated applies. This is for authorization failures.
    """

    default_error_code: str = "PERMISSION_DENIED"
    http_status: int = 403


class ConflictError(BaseApplicationError):
    """
    Raised when an operation conflicts with current resource state.

    Use for:
    - Duplicate payout for a booking
    - Escrow already released or refunded
    - A second dispute on the same booking

    Example:
        raise ConflictError(
            "Payout already exists for this booking",
            error_code="PAYOUT_EXISTS",
            details={"booking_id": str(booking.id)},
        )
    """

    default_error_code: str = "CONFLICT"
    http_status: int = 409


class ExternalServiceError(BaseApplicationError):
    """
    Raised when an external service call fails.

    Stripe failures are raised as payments.exceptions.StripeError, which
    inherits from this class through PaymentProcessingError.

    Note:
        Log the original error for debugging but don't expose
        internal details to clients in production.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
    http_status: int = 502


class InternalError(BaseApplicationError):
    """
    Raised for unexpected failures that are not the caller's fault.

    Example:
        raise InternalError(
            "Paid booking has no captured payment",
            error_code="PAYMENT_MISSING",
            details={"booking_id": str(booking.id)},
        )
    """

    default_error_code: str = "INTERNAL_ERROR"
    http_status: int = 500
