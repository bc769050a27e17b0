"""
Webhook handling for payment events from Stripe.

This module provides views and handlers for processing Stripe webhooks.
Webhooks are verified, recorded in the WebhookEvent ledger and processed
in the request; failed events are retried by Stripe and by a Celery task.

Usage:
    # In urls.py
    from payments.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from payments.webhooks.handlers import dispatch_webhook, process_claimed_event, register_handler
from payments.webhooks.views import stripe_webhook

__all__ = [
    "dispatch_webhook",
    "process_claimed_event",
    "register_handler",
    "stripe_webhook",
]
