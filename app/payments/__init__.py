"""
Payments app for Stripe integration.

This app handles:
- Payment intents for bookings and the escrow held behind them
- Refunds and escrow release (exactly once per payment)
- Payout creation, weekly batching and transfer to connected accounts
- Webhook event handling with an idempotency ledger

Related apps:
    - bookings: Booking lifecycle driving every escrow transition
    - notifications: Payment and payout notifications

Usage:
    from payments.services import EscrowService, PayoutService

    # Release escrow and create the payout
    outcome = EscrowService.release(payment)
    PayoutService.create_payout_safely(booking, outcome.releasable_pence)
"""
