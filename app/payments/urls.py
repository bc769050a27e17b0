"""
URL configuration for the payments app.

Routes:
    - POST /webhooks/stripe/ - Stripe webhook endpoint
    - POST /payouts/<id>/override/ - Admin payout status override
    - POST /payouts/<id>/process/ - Admin immediate transfer
    - POST /payouts/<id>/retry/ - Admin re-queue of a failed payout

All routes are prefixed with /api/v1/payments/ when included in the main URLconf.

Usage:
    # In config/urls.py
    api_v1_patterns = [
        path("payments/", include("payments.urls")),
    ]
"""

from django.urls import path

from payments.views import PayoutOverrideView, PayoutProcessView, PayoutRetryView
from payments.webhooks.views import stripe_webhook

app_name = "payments"

urlpatterns = [
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    # Admin payout operations
    path("payouts/<uuid:pk>/override/", PayoutOverrideView.as_view(), name="payout_override"),
    path("payouts/<uuid:pk>/process/", PayoutProcessView.as_view(), name="payout_process"),
    path("payouts/<uuid:pk>/retry/", PayoutRetryView.as_view(), name="payout_retry"),
]
