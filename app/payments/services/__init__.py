"""
Payment services.

- EscrowService: Payment intents and the held → released / refunded machine
- PayoutService: Payout creation, scheduling, transfer and admin overrides

Usage:
    from payments.services import EscrowService, PayoutService

    outcome = EscrowService.release(payment)
    if outcome.applied:
        PayoutService.create_payout_safely(booking, outcome.releasable_pence)
"""

from payments.services.escrow_service import EscrowOutcome, EscrowService
from payments.services.payout_service import (
    PayoutAmounts,
    PayoutExecutionResult,
    PayoutService,
)

__all__ = [
    "EscrowOutcome",
    "EscrowService",
    "PayoutAmounts",
    "PayoutExecutionResult",
    "PayoutService",
]
