"""
Webhook endpoint view for Stripe.

The view:
1. Verifies the webhook signature
2. Records the event in the WebhookEvent ledger (idempotent)
3. Claims the row and runs its handler in the request
4. Answers with the outcome so Stripe redelivers failures

Handlers are short (a few conditional updates and at most one refund
call), so they run inline. A 500 tells Stripe to redeliver the same event
id, and the failed ledger row is processed again on that delivery.

Usage:
    # In urls.py
    from payments.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from payments.adapters import StripeAdapter
from payments.exceptions import StripeInvalidRequestError
from payments.models import WebhookEvent
from payments.state_machines import WebhookEventStatus
from payments.webhooks.handlers import process_claimed_event

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive and process Stripe webhook events.

    Security:
    - Signature verification prevents spoofed webhooks
    - CSRF exemption required for external webhooks
    - Only POST requests accepted

    Idempotency:
    - WebhookEvent.stripe_event_id is unique
    - A PROCESSED event returns 200 without reprocessing
    - A FAILED or PENDING event is claimed and processed again
    - An event currently PROCESSING elsewhere returns 409

    Returns:
        HttpResponse with status:
        - 200: Event processed (or already processed)
        - 400: Missing/invalid signature or payload
        - 409: Same event is being processed by another delivery
        - 500: Handler failed; Stripe will retry

    Example Stripe-Signature header:
        t=1614556800,v1=xxx,v0=yyy
    """
    payload = request.body
    signature = request.headers.get("Stripe-Signature", "")

    if not signature:
        logger.warning("Webhook received without Stripe-Signature header")
        return HttpResponse("Missing signature", status=400)

    # Step 1: Verify signature
    try:
        event_data = StripeAdapter.verify_webhook_signature(payload, signature)
    except StripeInvalidRequestError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error": str(e)},
        )
        return HttpResponse("Invalid signature", status=400)

    stripe_event_id = event_data.get("id")
    event_type = event_data.get("type")

    if not stripe_event_id or not event_type:
        logger.warning("Webhook missing required fields")
        return HttpResponse("Invalid event", status=400)

    logger.info(
        f"Received Stripe webhook: {event_type}",
        extra={
            "stripe_event_id": stripe_event_id,
            "event_type": event_type,
        },
    )

    # Step 2: Create/get WebhookEvent (idempotent)
    webhook_event, created = WebhookEvent.objects.get_or_create(
        stripe_event_id=stripe_event_id,
        defaults={
            "event_type": event_type,
            "payload": event_data,
            "status": WebhookEventStatus.PENDING,
        },
    )

    if not created and webhook_event.status == WebhookEventStatus.PROCESSED:
        logger.info(
            "Webhook already processed, returning success",
            extra={"stripe_event_id": stripe_event_id},
        )
        return HttpResponse("Already processed", status=200)

    # Step 3: Claim the row
    if not webhook_event.claim():
        webhook_event.refresh_from_db(fields=["status"])
        if webhook_event.status == WebhookEventStatus.PROCESSED:
            return HttpResponse("Already processed", status=200)
        logger.info(
            "Webhook is being processed by another delivery",
            extra={"stripe_event_id": stripe_event_id},
        )
        return HttpResponse("Processing in progress", status=409)

    # Step 4: Process and answer with the outcome
    result = process_claimed_event(webhook_event)
    if not result.success:
        return HttpResponse("Processing failed", status=500)
    return HttpResponse("Processed", status=200)
