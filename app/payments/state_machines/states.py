"""
State enums for payment models.

These are Django TextChoices for database storage and admin integration.
Payout.status is a django-fsm field; Payment status and escrow status are
advanced only by conditional updates in the escrow service.

State Machines Overview:

Payment status:
    initiated → succeeded (payment_intent.succeeded webhook)
    initiated → failed (payment_intent.payment_failed webhook)
    succeeded → refunded (full refund through the escrow engine)

Escrow status:
    held → released (terminal)
    held → refunded (terminal)

Payout States:
    pending → processing → paid
    scheduled → processing → paid
    pending/scheduled → processing → failed → pending (retry)
    pending/scheduled → cancelled
"""

from django.db import models


class PaymentStatus(models.TextChoices):
    """
    Status of the provider charge behind a booking.

    Only SUCCEEDED payments hold money that can be released or refunded.
    """

    INITIATED = "initiated", "Initiated"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"
    REFUNDED = "refunded", "Refunded"


class EscrowStatus(models.TextChoices):
    """
    Where the money of a succeeded payment currently is.

    HELD is the only non-terminal state. Every release or refund is a
    conditional update from HELD, so at most one of them ever wins.
    """

    HELD = "held", "Held"
    RELEASED = "released", "Released"
    REFUNDED = "refunded", "Refunded"


class PayoutState(models.TextChoices):
    """
    States for the Payout model lifecycle.

    Terminal states: PAID, CANCELLED (FAILED can be retried)

    State Flow:
        PENDING → PROCESSING → PAID (weekly / bi-weekly batch)
        SCHEDULED → PROCESSING → PAID (per-transaction)
        PROCESSING → FAILED → PENDING (retry)
        PENDING/SCHEDULED → CANCELLED (admin override)
    """

    PENDING = "pending", "Pending"
    SCHEDULED = "scheduled", "Scheduled"
    PROCESSING = "processing", "Processing"
    PAID = "paid", "Paid"
    FAILED = "failed", "Failed"
    CANCELLED = "cancelled", "Cancelled"


class PayoutSchedule(models.TextChoices):
    """How often a freelancer wants released earnings transferred."""

    PER_TRANSACTION = "per_transaction", "Per transaction"
    WEEKLY = "weekly", "Weekly"
    BI_WEEKLY = "bi_weekly", "Every two weeks"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status for WebhookEvent.

    Tracks the lifecycle of webhook event processing for idempotency.
    Deduplication keys off PROCESSED; FAILED rows are reprocessed when the
    provider redelivers the same event id.

    State Flow:
        PENDING → PROCESSING → PROCESSED
        PENDING → PROCESSING → FAILED → PROCESSING (redelivery or retry task)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"


__all__ = [
    "EscrowStatus",
    "PaymentStatus",
    "PayoutSchedule",
    "PayoutState",
    "WebhookEventStatus",
]
