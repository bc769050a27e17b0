"""
Payments app configuration.

This app provides the money side of bookings:
- Escrowed payments through Stripe PaymentIntents
- Freelancer payouts through Stripe Connect transfers
- The Stripe webhook idempotency ledger
"""

from django.apps import AppConfig


class PaymentsConfig(AppConfig):
    """Configuration for the payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "payments"
    verbose_name = "Payments"
