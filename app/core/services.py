"""
Service layer base classes shared by bookings, disputes and payments.

- ServiceResult: outcome of an operation that reports failure instead of raising
- BaseService: per-class logger and transaction helper

Views stay thin: they parse input, call a service classmethod and render
what it returns or raises.

When to use which:
    - Exceptions (core.exceptions): booking, escrow and dispute operations
      raise these so the caller gets a specific, typed reason
    - ServiceResult: batch and dispatch paths (webhook handlers, payout
      execution) where one failure must not stop the loop

Usage:
    from core.services import BaseService

    class BookingService(BaseService):
        @classmethod
        def accept(cls, user, booking_id):
            with cls.atomic():
                ...
            cls.get_logger().info("Booking accepted", extra={"booking_id": ...})
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Generic, TypeVar

from django.db import transaction

if TYPE_CHECKING:
    from collections.abc import Generator
    from typing import Any

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Success flag plus either ``data`` or an error description.

    ``error_code`` uses the same codes as core.exceptions so a failed
    result can be rendered like a raised error.

    Usage:
        result = dispatch_webhook(webhook_event)
        if result.success:
            webhook_event.mark_processed()
        else:
            webhook_event.mark_failed(result.error)
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None
    errors: dict[str, list[str]] | None = field(default=None)

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(
        cls,
        error: str,
        error_code: str | None = None,
        errors: dict[str, list[str]] | None = None,
    ) -> ServiceResult[T]:
        """``errors`` maps field names to messages for validation failures."""
        return cls(
            success=False,
            error=error,
            error_code=error_code,
            errors=errors,
        )

    @classmethod
    def from_exception(cls, exc: Exception, error_code: str | None = None) -> ServiceResult[T]:
        """
        Wrap a caught exception.

        Application errors keep their own error_code; anything else falls
        back to the exception class name.

        Example:
            try:
                EscrowService.release(payment)
            except ExternalServiceError as e:
                return ServiceResult.from_exception(e)
        """
        code = error_code or getattr(exc, "error_code", None)
        return cls(
            success=False,
            error=getattr(exc, "message", None) or str(exc),
            error_code=code or exc.__class__.__name__.upper(),
        )

    def to_response(self) -> dict[str, Any]:
        if self.success:
            return {"success": True, "data": self.data}

        body: dict[str, Any] = {"success": False, "error": self.error}
        if self.error_code:
            body["error_code"] = self.error_code
        if self.errors:
            body["errors"] = self.errors
        return body

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Stateless classmethod container for domain operations.

    State changes are conditional updates inside ``cls.atomic()`` so two
    workers racing on the same row cannot both apply.
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        # e.g. "bookings.services.BookingService"
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @classmethod
    @contextmanager
    def atomic(cls) -> Generator[None, None, None]:
        """
        Run the block in one database transaction.

        Example:
            with cls.atomic():
                EscrowService.refund(payment)
                Booking.objects.filter(pk=booking.pk, status=...).update(...)
                BookingAuditLog.objects.create(...)
                # If the audit insert fails, the refund bookkeeping rolls back
        """
        with transaction.atomic():
            yield
