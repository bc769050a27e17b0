"""
Core base models shared by every domain app.

Base Classes:
    BaseModel: Abstract model with timestamps (created_at, updated_at)
    AuditLogModel: Abstract append-only audit row (actor, action, status change)

For mixins (UUIDPrimaryKeyMixin, MetadataMixin), see core.model_mixins.

Usage:
    from core.models import AuditLogModel, BaseModel
    from core.model_mixins import UUIDPrimaryKeyMixin

    class Booking(UUIDPrimaryKeyMixin, BaseModel):
        ...

    class BookingAuditLog(UUIDPrimaryKeyMixin, AuditLogModel):
        booking = models.ForeignKey(Booking, on_delete=models.CASCADE)

Note:
    - Always list mixins before BaseModel in inheritance
    - Mixins are in core.model_mixins
"""

from __future__ import annotations

from django.conf import settings
from django.db import models


class BaseModel(models.Model):
    """
    Abstract base model providing common fields for all models.

    Fields:
        created_at: Automatically set when the object is first created
        updated_at: Automatically updated whenever the object is saved

    Note:
        Conditional ``QuerySet.update()`` calls bypass auto_now, so services
        that flip status with update() pass ``updated_at=timezone.now()``
        themselves.
    """

    created_at = models.DateTimeField(
        auto_now_add=True,
        db_index=True,  # Index for efficient time-based queries
        help_text="Timestamp when this record was created",
    )
    updated_at = models.DateTimeField(
        auto_now=True,
        help_text="Timestamp when this record was last modified",
    )

    class Meta:
        abstract = True
        # Default ordering by creation time (newest first)
        ordering = ["-created_at"]

    def __str__(self) -> str:
        """Default string representation using primary key."""
        return f"{self.__class__.__name__}(id={self.pk})"


class AuditLogModel(BaseModel):
    """
    Abstract append-only audit entry.

    Booking transitions, payout transitions and dispute actions each write
    one row per effective change. Rows are never updated.

    Fields:
        actor: User who triggered the change (null for scheduled jobs and
            provider webhooks)
        action: Short machine name (e.g. "accepted", "payout_failed")
        old_status: Status before the change, if the action changed one
        new_status: Status after the change
        details: Free-form JSON context (amounts, provider ids, errors)
    """

    actor = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="User who performed the action; empty for system jobs",
    )
    action = models.CharField(
        max_length=50,
        db_index=True,
        help_text="Machine-readable action name",
    )
    old_status = models.CharField(max_length=30, blank=True, default="")
    new_status = models.CharField(max_length=30, blank=True, default="")
    details = models.JSONField(default=dict, blank=True)

    class Meta:
        abstract = True
        ordering = ["created_at"]

    def __str__(self) -> str:
        return f"{self.__class__.__name__}({self.action}, {self.old_status}->{self.new_status})"
