"""
Tests for payments app.

This package contains test modules for:
- test_models.py: PlatformSettings, WebhookEvent and Payout model tests
- test_stripe_adapter.py: Stripe adapter request shaping and error mapping
- test_escrow_service.py: EscrowService settlement tests
- test_payout_service.py: PayoutService tests
- test_webhook_views.py / test_webhook_handlers.py: Webhook ledger and handlers
- test_tasks.py / test_payout_executor.py: Celery task tests
- test_views.py: Payout admin endpoint tests

Usage:
    pytest payments/tests/
    pytest payments/tests/test_escrow_service.py
"""
