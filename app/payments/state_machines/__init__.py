"""
State machine enums for payment models.
"""

from payments.state_machines.states import (
    EscrowStatus,
    PaymentStatus,
    PayoutSchedule,
    PayoutState,
    WebhookEventStatus,
)

__all__ = [
    "EscrowStatus",
    "PaymentStatus",
    "PayoutSchedule",
    "PayoutState",
    "WebhookEventStatus",
]
