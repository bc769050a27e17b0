"""
Webhook event handlers for Stripe events.

This module provides a handler registry, the handlers for the events the
booking flow depends on, and ``process_claimed_event`` which runs one
claimed ledger row to completion (used by the HTTP view and the retry task).

Handlers look up the local Payment and delegate to BookingService, whose
conditional updates make every handler safe to run twice: a replay finds
nothing to change and sends no notification.

Usage:
    from payments.webhooks.handlers import dispatch_webhook, register_handler

    # Register a custom handler
    @register_handler("custom.event")
    def handle_custom_event(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    # Dispatch an event to its handler
    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from typing import Callable

from django.db import transaction
from django.db.models import Q

from bookings.services import BookingService
from core.services import ServiceResult

from payments.models import Payment, WebhookEvent

logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


# Maps event type strings to handler functions
WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """
    Decorator to register a webhook event handler.

    Usage:
        @register_handler("payment_intent.succeeded")
        def handle_payment_succeeded(webhook_event: WebhookEvent) -> ServiceResult:
            ...

    Args:
        event_type: The Stripe event type (e.g., "payment_intent.succeeded")

    Returns:
        Decorator function that registers the handler
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to the appropriate handler.

    Unknown event types are acknowledged with success so the ledger marks
    them processed and Stripe stops redelivering them.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"stripe_event_id": webhook_event.stripe_event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )

    return handler(webhook_event)


def process_claimed_event(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Run a ledger row that the caller has already claimed (status PROCESSING).

    The handler runs in its own transaction; any failure rolls back its
    changes and records the error on the row, which stays retryable.

    Returns:
        The handler's ServiceResult (failure for exceptions too)
    """
    try:
        with transaction.atomic():
            result = dispatch_webhook(webhook_event)
    except Exception as e:
        logger.exception(
            "Webhook handler raised",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "event_type": webhook_event.event_type,
            },
        )
        result = ServiceResult.from_exception(e)

    if result.success:
        webhook_event.mark_processed()
        logger.info(
            "Webhook processed successfully",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "event_type": webhook_event.event_type,
            },
        )
    else:
        error_msg = result.error or "Handler returned failure"
        webhook_event.mark_failed(error_msg)
        logger.warning(
            f"Webhook handler failed: {error_msg}",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "error_code": result.error_code,
                "retry_count": webhook_event.retry_count,
            },
        )
    return result


# =============================================================================
# Lookup Helpers
# =============================================================================


def _payment_for_intent(webhook_event: WebhookEvent, payment_intent_id: str) -> ServiceResult:
    """
    Find the Payment for a payment intent.

    Intents without our booking_id metadata were not created by this
    platform; they are acknowledged and ignored.
    """
    payment = Payment.objects.select_related("booking").filter(stripe_payment_intent_id=payment_intent_id).first()
    if payment is not None:
        return ServiceResult.success(payment)

    metadata = webhook_event.get_object().get("metadata") or {}
    if not metadata.get("booking_id"):
        logger.info(
            "Ignoring payment intent not created by the platform",
            extra={
                "stripe_event_id": webhook_event.stripe_event_id,
                "payment_intent_id": payment_intent_id,
            },
        )
        return ServiceResult.success(None)

    logger.warning(
        "Payment not found for payment_intent_id",
        extra={
            "payment_intent_id": payment_intent_id,
            "stripe_event_id": webhook_event.stripe_event_id,
        },
    )
    return ServiceResult.failure(
        f"Payment not found for intent: {payment_intent_id}",
        error_code="PAYMENT_NOT_FOUND",
    )


def _missing_id(webhook_event: WebhookEvent, what: str) -> ServiceResult:
    logger.error(
        f"{webhook_event.event_type}: Could not extract {what}",
        extra={"stripe_event_id": webhook_event.stripe_event_id},
    )
    return ServiceResult.failure(
        f"Could not extract {what} from webhook",
        error_code="INVALID_WEBHOOK_PAYLOAD",
    )


# =============================================================================
# Payment Intent Handlers
# =============================================================================


@register_handler("payment_intent.succeeded")
def handle_payment_intent_succeeded(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Handle successful payment confirmation.

    Payment initiated → succeeded, booking paid, auto-confirm armed if the
    booking is already confirmed. A booking cancelled or expired in the
    meantime gets a full refund instead.
    """
    payment_intent_id = webhook_event.get_object_id()
    if not payment_intent_id:
        return _missing_id(webhook_event, "payment_intent_id")

    lookup = _payment_for_intent(webhook_event, payment_intent_id)
    if not lookup.success or lookup.data is None:
        return lookup

    charge_id = webhook_event.get_object().get("latest_charge") or ""
    changed = BookingService.handle_payment_succeeded(lookup.data, charge_id=charge_id)
    return ServiceResult.success({"changed": changed})


@register_handler("payment_intent.payment_failed")
def handle_payment_intent_failed(webhook_event: WebhookEvent) -> ServiceResult:
    """Handle payment failure: Payment failed, booking payment_failed."""
    payment_intent_id = webhook_event.get_object_id()
    if not payment_intent_id:
        return _missing_id(webhook_event, "payment_intent_id")

    last_error = webhook_event.get_object().get("last_payment_error") or {}
    logger.info(
        "Processing payment_intent.payment_failed",
        extra={
            "stripe_event_id": webhook_event.stripe_event_id,
            "payment_intent_id": payment_intent_id,
            "reason": last_error.get("message", "Payment failed"),
        },
    )

    lookup = _payment_for_intent(webhook_event, payment_intent_id)
    if not lookup.success or lookup.data is None:
        return lookup

    changed = BookingService.handle_payment_failed(lookup.data)
    return ServiceResult.success({"changed": changed})


# =============================================================================
# Charge Handlers
# =============================================================================


@register_handler("charge.refunded")
def handle_charge_refunded(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Handle a refund confirmed by Stripe.

    Refunds we issued ourselves already settled the escrow; this settles
    escrows refunded from outside (e.g. the Stripe dashboard).
    """
    charge = webhook_event.get_object()
    charge_id = charge.get("id")
    payment_intent_id = charge.get("payment_intent") or ""
    if not charge_id:
        return _missing_id(webhook_event, "charge id")

    query = Q(stripe_charge_id=charge_id)
    if payment_intent_id:
        query |= Q(stripe_payment_intent_id=payment_intent_id)
    payment = Payment.objects.select_related("booking").filter(query).first()
    if payment is None:
        logger.info(
            "Ignoring refund for unknown charge",
            extra={"stripe_event_id": webhook_event.stripe_event_id, "charge_id": charge_id},
        )
        return ServiceResult.success(None)

    refunds = (charge.get("refunds") or {}).get("data") or []
    refund_id = refunds[0].get("id", "") if refunds else ""
    changed = BookingService.handle_charge_refunded(
        payment,
        refunded_pence=int(charge.get("amount_refunded") or 0),
        refund_id=refund_id,
    )
    return ServiceResult.success({"changed": changed})
