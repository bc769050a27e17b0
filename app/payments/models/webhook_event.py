"""
WebhookEvent model: the idempotency ledger for Stripe callbacks.

Every delivery is recorded by its Stripe event id. A row in PROCESSED is
never handled again; a FAILED row is handled again when Stripe redelivers
the same id (or when the retry task picks it up).

Claiming a row for processing is a conditional update:

    WebhookEvent.objects.filter(
        pk=event.pk,
        status__in=[WebhookEventStatus.PENDING, WebhookEventStatus.FAILED],
    ).update(status=WebhookEventStatus.PROCESSING, ...)

so two concurrent deliveries of the same event cannot both dispatch it.
"""

from __future__ import annotations

from django.db import models
from django.db.models import F
from django.utils import timezone

from core.models import BaseModel
from core.model_mixins import UUIDPrimaryKeyMixin

from payments.state_machines import WebhookEventStatus

MAX_WEBHOOK_RETRIES = 5


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Tracks Stripe webhook events for idempotent processing.

    Processing Flow:
        1. Webhook arrives, verify Stripe signature
        2. get_or_create WebhookEvent by stripe_event_id
        3. If PROCESSED -> 200 "Already processed"
        4. Claim PENDING/FAILED -> PROCESSING (lost claim -> 409)
        5. Dispatch to the handler registered for event_type
        6. PROCESSED (200) or FAILED with error_message (500)

    Fields:
        stripe_event_id: Unique Stripe Event ID (evt_xxx)
        event_type: Type of webhook event
        payload: Full JSON payload from Stripe
        status: Processing status
        processed_at: When event was successfully processed
        error_message: Error details if processing failed
        retry_count: Number of processing attempts
    """

    stripe_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Event ID (evt_xxx) - unique constraint for idempotency",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Stripe event type (e.g., 'payment_intent.succeeded')",
    )

    payload = models.JSONField(
        help_text="Full webhook payload from Stripe (JSON)",
    )

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
    )

    processed_at = models.DateTimeField(null=True, blank=True)
    error_message = models.TextField(null=True, blank=True)
    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    class Meta:
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "created_at"], name="webhook_status_created_idx"),
            models.Index(fields=["status", "retry_count"], name="webhook_status_retry_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.stripe_event_id}, {self.event_type})"

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def is_failed(self) -> bool:
        return self.status == WebhookEventStatus.FAILED

    @property
    def can_retry(self) -> bool:
        """Failed with attempts left."""
        return self.is_failed and self.retry_count < MAX_WEBHOOK_RETRIES

    # ==========================================================================
    # Ledger Transitions
    # ==========================================================================

    def claim(self) -> bool:
        """
        Atomically move a PENDING/FAILED row to PROCESSING.

        Returns:
            True if this caller won the claim, False if the row was already
            processed or is being processed by someone else.
        """
        claimed = WebhookEvent.objects.filter(
            pk=self.pk,
            status__in=[WebhookEventStatus.PENDING, WebhookEventStatus.FAILED],
        ).update(
            status=WebhookEventStatus.PROCESSING,
            retry_count=F("retry_count") + 1,
            updated_at=timezone.now(),
        )
        if claimed:
            self.refresh_from_db(fields=["status", "retry_count", "updated_at"])
        return bool(claimed)

    def mark_processed(self) -> None:
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None
        self.save(update_fields=["status", "processed_at", "error_message", "updated_at"])

    def mark_failed(self, error_message: str) -> None:
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message
        self.save(update_fields=["status", "error_message", "updated_at"])

    def get_object(self) -> dict:
        """The Stripe object carried by the event (payload.data.object)."""
        try:
            return self.payload.get("data", {}).get("object", {}) or {}
        except (AttributeError, TypeError):
            return {}

    def get_object_id(self) -> str | None:
        return self.get_object().get("id")
