"""
Workers for async payment processing.

This module contains Celery tasks for background payment operations:
- PayoutExecutor: Transfers due payouts to freelancers' connected accounts

Usage:
    from payments.workers import process_scheduled_payouts

    # Trigger manual processing
    process_scheduled_payouts.delay()
"""

from payments.workers.payout_executor import process_scheduled_payouts

__all__ = [
    "process_scheduled_payouts",
]
