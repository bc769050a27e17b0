"""
Payment domain models.

- Payment: The escrowed charge behind a booking
- PayoutAccount: A freelancer's Stripe Connect destination and schedule
- Payout: Released earnings transferred to a freelancer
- PayoutAuditLog: Append-only payout history
- WebhookEvent: Stripe webhook idempotency ledger
- PlatformSettings: Singleton of admin-editable commercial parameters
"""

from payments.models.payment import Payment
from payments.models.payout import Payout, PayoutAuditLog
from payments.models.payout_account import PayoutAccount
from payments.models.platform_settings import PlatformSettings
from payments.models.webhook_event import MAX_WEBHOOK_RETRIES, WebhookEvent

__all__ = [
    "MAX_WEBHOOK_RETRIES",
    "Payment",
    "Payout",
    "PayoutAccount",
    "PayoutAuditLog",
    "PlatformSettings",
    "WebhookEvent",
]
