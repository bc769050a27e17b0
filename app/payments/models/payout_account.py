"""
PayoutAccount model: where and how often a freelancer is paid.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import PayoutSchedule


class PayoutAccount(UUIDPrimaryKeyMixin, BaseModel):
    """
    A freelancer's Stripe Connect destination and payout preferences.

    Payouts are only processed for accounts with payouts_enabled and
    is_verified both set.

    Fields:
        freelancer: Owning freelancer (one account each)
        stripe_account_id: Stripe Connect account ID (acct_xxx)
        payout_schedule: per_transaction, weekly or bi_weekly
        payouts_enabled: Stripe reports the account can receive transfers
        is_verified: Platform-side verification completed
    """

    freelancer = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="payout_account",
    )
    stripe_account_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Connect account ID (acct_xxx)",
    )
    payout_schedule = models.CharField(
        max_length=20,
        choices=PayoutSchedule.choices,
        default=PayoutSchedule.WEEKLY,
    )
    payouts_enabled = models.BooleanField(default=False)
    is_verified = models.BooleanField(default=False)

    class Meta:
        verbose_name = "Payout Account"
        verbose_name_plural = "Payout Accounts"

    def __str__(self) -> str:
        return f"PayoutAccount({self.stripe_account_id}, {self.payout_schedule})"

    @property
    def is_ready_for_payouts(self) -> bool:
        return self.payouts_enabled and self.is_verified
