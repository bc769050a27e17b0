"""
Dispute models.

Dispute lifecycle:

    new ──mark_in_review──▶ in_review ──resolve──▶ resolved
     └──────────────────resolve─────────────────────┘

A dispute is never deleted; ``resolved`` is its closed state.
"""

from __future__ import annotations

from django.conf import settings
from django.db import models
from django_fsm import FSMField, transition

from core.models import AuditLogModel, BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin


class DisputeCategory(models.TextChoices):
    NO_SHOW = "no_show", "No show"
    QUALITY = "quality", "Quality"
    SAFETY = "safety", "Safety"
    OTHER = "other", "Other"


class DisputeStatus(models.TextChoices):
    NEW = "new", "New"
    IN_REVIEW = "in_review", "In review"
    RESOLVED = "resolved", "Resolved"


class ResolutionType(models.TextChoices):
    FULL_REFUND = "full_refund", "Full refund"
    PARTIAL_REFUND = "partial_refund", "Partial refund"
    RELEASE_TO_FREELANCER = "release_to_freelancer", "Release to freelancer"
    NO_ACTION = "no_action", "No action"


OPEN_DISPUTE_STATUSES = [DisputeStatus.NEW, DisputeStatus.IN_REVIEW]


class Dispute(UUIDPrimaryKeyMixin, BaseModel):
    """A client's complaint about a booking, resolved by an admin."""

    booking = models.OneToOneField(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="dispute",
    )
    raised_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="disputes_raised",
    )
    category = models.CharField(max_length=20, choices=DisputeCategory.choices)
    description = models.TextField()

    status = FSMField(
        default=DisputeStatus.NEW,
        choices=DisputeStatus.choices,
        db_index=True,
    )

    resolution_type = models.CharField(
        max_length=30,
        choices=ResolutionType.choices,
        blank=True,
        default="",
    )
    resolution_amount_pence = models.PositiveIntegerField(null=True, blank=True)
    resolution_notes = models.TextField(blank=True, default="")
    resolved_by = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="disputes_resolved",
    )
    resolved_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status", "created_at"], name="dispute_status_created_idx"),
        ]

    def __str__(self) -> str:
        return f"Dispute({self.id}, {self.category}, {self.status})"

    @property
    def is_open(self) -> bool:
        return self.status in OPEN_DISPUTE_STATUSES

    @transition(field=status, source=DisputeStatus.NEW, target=DisputeStatus.IN_REVIEW)
    def mark_in_review(self):
        """Admin picks the dispute up."""

    @transition(
        field=status,
        source=[DisputeStatus.NEW, DisputeStatus.IN_REVIEW],
        target=DisputeStatus.RESOLVED,
    )
    def resolve(self):
        """Admin closes the dispute with a resolution."""


class DisputeAuditLog(UUIDPrimaryKeyMixin, AuditLogModel):
    """
    Every dispute decision and money movement.

    Actions: dispute_created, status_changed, refund_issued,
    escrow_released, escrow_already_settled, dispute_resolved,
    user_suspended.
    """

    dispute = models.ForeignKey(
        Dispute,
        on_delete=models.CASCADE,
        related_name="audit_logs",
    )

    class Meta(AuditLogModel.Meta):
        verbose_name = "Dispute Audit Log"
        verbose_name_plural = "Dispute Audit Logs"
