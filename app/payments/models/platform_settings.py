"""
PlatformSettings: admin-editable commercial and timing parameters.

A single row (pk=1) holds every value the pricing, refund, scheduling,
dispute and reliability rules read. Missing rows are created on first
load from the Django settings defaults. Loaded values are cached in the
Django cache and the cache entry is dropped whenever the row is saved.

Usage:
    from payments.models import PlatformSettings

    platform = PlatformSettings.load()
    grace = timedelta(hours=platform.auto_confirm_grace_hours)
"""

from __future__ import annotations

from django.conf import settings
from django.core.cache import cache
from django.db import models

from core.models import BaseModel

CACHE_KEY = "payments:platform_settings"


# Defaults are read from Django settings when the row is first created.


def default_commission_percent():
    return settings.PLATFORM_COMMISSION_PERCENT


def default_booking_fee_pence():
    return settings.PLATFORM_BOOKING_FEE_PENCE


def default_platform_fee_percent():
    return settings.PLATFORM_FEE_PERCENT


def default_free_cancel_hours():
    return settings.FREE_CANCEL_HOURS


def default_partial_refund_hours():
    return settings.PARTIAL_REFUND_HOURS


def default_partial_refund_percent():
    return settings.PARTIAL_REFUND_PERCENT


def default_auto_confirm_grace_hours():
    return settings.AUTO_CONFIRM_GRACE_HOURS


def default_pending_timeout_hours():
    return settings.PENDING_BOOKING_TIMEOUT_HOURS


def default_dispute_window_hours():
    return settings.DISPUTE_WINDOW_HOURS


def default_last_minute_cancel_hours():
    return settings.LAST_MINUTE_CANCEL_HOURS


def default_cancellation_warn_threshold():
    return settings.CANCELLATION_WARN_THRESHOLD


def default_cancellation_suspend_threshold():
    return settings.CANCELLATION_SUSPEND_THRESHOLD


def default_cancellation_window_days():
    return settings.CANCELLATION_WINDOW_DAYS


class PlatformSettings(BaseModel):
    """
    Singleton row of platform-wide parameters.

    Fields:
        commission_percent: Commission taken from the service amount on payout
        booking_fee_pence: Flat fee deducted from each payout
        platform_fee_percent: Fee computed at checkout, kept in escrow
        free_cancel_hours: Client cancels at or above this → 100% refund
        partial_refund_hours: Client cancels at or above this → partial refund
        partial_refund_percent: Refund percent of the partial tier
        auto_confirm_grace_hours: Hours after scheduled end before auto-release
        pending_timeout_hours: Hours a pending booking waits for the freelancer
        dispute_window_hours: Hours after scheduled end a dispute may be raised
        last_minute_cancel_hours: Freelancer cancels below this count against them
        cancellation_warn_threshold: Last-minute cancels that trigger a warning
        cancellation_suspend_threshold: Last-minute cancels that signal suspension
        cancellation_window_days: Rolling window for the reliability count
    """

    id = models.PositiveSmallIntegerField(primary_key=True, default=1, editable=False)

    commission_percent = models.PositiveSmallIntegerField(default=default_commission_percent)
    booking_fee_pence = models.PositiveIntegerField(default=default_booking_fee_pence)
    platform_fee_percent = models.PositiveSmallIntegerField(default=default_platform_fee_percent)

    free_cancel_hours = models.PositiveIntegerField(default=default_free_cancel_hours)
    partial_refund_hours = models.PositiveIntegerField(default=default_partial_refund_hours)
    partial_refund_percent = models.PositiveSmallIntegerField(default=default_partial_refund_percent)

    auto_confirm_grace_hours = models.PositiveIntegerField(default=default_auto_confirm_grace_hours)
    pending_timeout_hours = models.PositiveIntegerField(default=default_pending_timeout_hours)
    dispute_window_hours = models.PositiveIntegerField(default=default_dispute_window_hours)

    last_minute_cancel_hours = models.PositiveIntegerField(default=default_last_minute_cancel_hours)
    cancellation_warn_threshold = models.PositiveSmallIntegerField(
        default=default_cancellation_warn_threshold
    )
    cancellation_suspend_threshold = models.PositiveSmallIntegerField(
        default=default_cancellation_suspend_threshold
    )
    cancellation_window_days = models.PositiveIntegerField(default=default_cancellation_window_days)

    class Meta:
        verbose_name = "Platform Settings"
        verbose_name_plural = "Platform Settings"

    def __str__(self) -> str:
        return "PlatformSettings"

    def save(self, *args, **kwargs):
        self.pk = 1
        super().save(*args, **kwargs)
        cache.delete(CACHE_KEY)

    def delete(self, *args, **kwargs):
        cache.delete(CACHE_KEY)
        return super().delete(*args, **kwargs)

    @classmethod
    def load(cls) -> PlatformSettings:
        """Return the singleton, creating it from settings defaults if absent."""
        instance = cache.get(CACHE_KEY)
        if instance is None:
            instance, _ = cls.objects.get_or_create(pk=1)
            cache.set(
                CACHE_KEY,
                instance,
                timeout=getattr(settings, "PLATFORM_SETTINGS_CACHE_TIMEOUT", 300),
            )
        return instance
