import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models

import payments.models.platform_settings

PAYMENT_STATUS_CHOICES = [
    ("initiated", "Initiated"),
    ("succeeded", "Succeeded"),
    ("failed", "Failed"),
    ("refunded", "Refunded"),
]

ESCROW_STATUS_CHOICES = [
    ("held", "Held"),
    ("released", "Released"),
    ("refunded", "Refunded"),
]

PAYOUT_STATE_CHOICES = [
    ("pending", "Pending"),
    ("scheduled", "Scheduled"),
    ("processing", "Processing"),
    ("paid", "Paid"),
    ("failed", "Failed"),
    ("cancelled", "Cancelled"),
]

PAYOUT_SCHEDULE_CHOICES = [
    ("per_transaction", "Per transaction"),
    ("weekly", "Weekly"),
    ("bi_weekly", "Every two weeks"),
]

WEBHOOK_STATUS_CHOICES = [
    ("pending", "Pending"),
    ("processing", "Processing"),
    ("processed", "Processed"),
    ("failed", "Failed"),
]


def timestamp_fields():
    return [
        ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
        ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
    ]


def base_fields():
    return timestamp_fields() + [
        ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("bookings", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Payment",
            fields=base_fields()
            + [
                ("metadata", models.JSONField(blank=True, default=dict, help_text="Flexible key-value metadata storage")),
                ("stripe_payment_intent_id", models.CharField(help_text="Stripe PaymentIntent ID (pi_xxx)", max_length=255, unique=True)),
                (
                    "stripe_charge_id",
                    models.CharField(
                        blank=True,
                        db_index=True,
                        default="",
                        help_text="Stripe Charge ID (ch_xxx), set once the payment succeeds",
                        max_length=255,
                    ),
                ),
                ("client_secret", models.CharField(blank=True, default="", max_length=255)),
                ("status", models.CharField(choices=PAYMENT_STATUS_CHOICES, db_index=True, default="initiated", max_length=20)),
                ("escrow_status", models.CharField(choices=ESCROW_STATUS_CHOICES, db_index=True, default="held", max_length=20)),
                ("amount_pence", models.PositiveIntegerField()),
                ("platform_fee_pence", models.PositiveIntegerField(default=0)),
                ("freelancer_payout_pence", models.PositiveIntegerField(default=0)),
                ("refund_id", models.CharField(blank=True, default="", max_length=255)),
                ("refund_amount_pence", models.PositiveIntegerField(default=0)),
                ("refund_status", models.CharField(blank=True, default="", max_length=30)),
                ("escrow_released_at", models.DateTimeField(blank=True, null=True)),
                ("refunded_at", models.DateTimeField(blank=True, null=True)),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payments",
                        to="bookings.booking",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment",
                "verbose_name_plural": "Payments",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["booking", "status"], name="payment_booking_status_idx"),
                    models.Index(fields=["status", "escrow_status"], name="payment_escrow_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status__in", ["initiated", "succeeded"]), models.Q(("escrow_status", "refunded"), _negated=True)),
                        fields=("booking",),
                        name="payment_one_active_per_booking",
                    ),
                    models.CheckConstraint(check=models.Q(("amount_pence__gt", 0)), name="payment_amount_positive"),
                    models.CheckConstraint(
                        check=models.Q(("refund_amount_pence__lte", models.F("amount_pence"))),
                        name="payment_refund_within_amount",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="PayoutAccount",
            fields=base_fields()
            + [
                ("stripe_account_id", models.CharField(help_text="Stripe Connect account ID (acct_xxx)", max_length=255, unique=True)),
                ("payout_schedule", models.CharField(choices=PAYOUT_SCHEDULE_CHOICES, default="weekly", max_length=20)),
                ("payouts_enabled", models.BooleanField(default=False)),
                ("is_verified", models.BooleanField(default=False)),
                (
                    "freelancer",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="payout_account",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Payout Account",
                "verbose_name_plural": "Payout Accounts",
            },
        ),
        migrations.CreateModel(
            name="Payout",
            fields=base_fields()
            + [
                ("service_amount_pence", models.PositiveIntegerField()),
                ("commission_pence", models.PositiveIntegerField(default=0)),
                ("booking_fee_pence", models.PositiveIntegerField(default=0)),
                ("payout_amount_pence", models.PositiveIntegerField()),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=PAYOUT_STATE_CHOICES,
                        db_index=True,
                        default="pending",
                        help_text="Current state of the payout (managed by FSM)",
                        max_length=50,
                    ),
                ),
                ("scheduled_date", models.DateField(db_index=True, help_text="Earliest date the payout job will send this payout")),
                ("processed_date", models.DateTimeField(blank=True, null=True)),
                (
                    "stripe_transfer_id",
                    models.CharField(blank=True, help_text="Stripe Transfer ID (tr_xxx)", max_length=255, null=True, unique=True),
                ),
                ("error_message", models.TextField(blank=True, default="")),
                ("admin_notes", models.TextField(blank=True, default="")),
                ("version", models.PositiveIntegerField(default=1, help_text="Version for optimistic locking - incremented on each save")),
                (
                    "booking",
                    models.OneToOneField(
                        help_text="Booking whose released escrow this payout pays",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payout",
                        to="bookings.booking",
                    ),
                ),
                (
                    "freelancer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payouts",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Payout",
                "verbose_name_plural": "Payouts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["freelancer", "status"], name="payout_freelancer_status_idx"),
                    models.Index(fields=["status", "scheduled_date"], name="payout_status_scheduled_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(check=models.Q(("payout_amount_pence__gt", 0)), name="payout_amount_positive"),
                ],
            },
        ),
        migrations.CreateModel(
            name="PayoutAuditLog",
            fields=base_fields()
            + [
                ("action", models.CharField(db_index=True, help_text="Machine-readable action name", max_length=50)),
                ("old_status", models.CharField(blank=True, default="", max_length=30)),
                ("new_status", models.CharField(blank=True, default="", max_length=30)),
                ("details", models.JSONField(blank=True, default=dict)),
                (
                    "actor",
                    models.ForeignKey(
                        blank=True,
                        help_text="User who performed the action; empty for system jobs",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "payout",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="audit_logs",
                        to="payments.payout",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payout Audit Log",
                "verbose_name_plural": "Payout Audit Logs",
                "ordering": ["created_at"],
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="PlatformSettings",
            fields=timestamp_fields()
            + [
                ("id", models.PositiveSmallIntegerField(default=1, editable=False, primary_key=True, serialize=False)),
                ("commission_percent", models.PositiveSmallIntegerField(default=payments.models.platform_settings.default_commission_percent)),
                ("booking_fee_pence", models.PositiveIntegerField(default=payments.models.platform_settings.default_booking_fee_pence)),
                ("platform_fee_percent", models.PositiveSmallIntegerField(default=payments.models.platform_settings.default_platform_fee_percent)),
                ("free_cancel_hours", models.PositiveIntegerField(default=payments.models.platform_settings.default_free_cancel_hours)),
                ("partial_refund_hours", models.PositiveIntegerField(default=payments.models.platform_settings.default_partial_refund_hours)),
                ("partial_refund_percent", models.PositiveSmallIntegerField(default=payments.models.platform_settings.default_partial_refund_percent)),
                ("auto_confirm_grace_hours", models.PositiveIntegerField(default=payments.models.platform_settings.default_auto_confirm_grace_hours)),
                ("pending_timeout_hours", models.PositiveIntegerField(default=payments.models.platform_settings.default_pending_timeout_hours)),
                ("dispute_window_hours", models.PositiveIntegerField(default=payments.models.platform_settings.default_dispute_window_hours)),
                ("last_minute_cancel_hours", models.PositiveIntegerField(default=payments.models.platform_settings.default_last_minute_cancel_hours)),
                (
                    "cancellation_warn_threshold",
                    models.PositiveSmallIntegerField(default=payments.models.platform_settings.default_cancellation_warn_threshold),
                ),
                (
                    "cancellation_suspend_threshold",
                    models.PositiveSmallIntegerField(default=payments.models.platform_settings.default_cancellation_suspend_threshold),
                ),
                ("cancellation_window_days", models.PositiveIntegerField(default=payments.models.platform_settings.default_cancellation_window_days)),
            ],
            options={
                "verbose_name": "Platform Settings",
                "verbose_name_plural": "Platform Settings",
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=base_fields()
            + [
                (
                    "stripe_event_id",
                    models.CharField(
                        help_text="Stripe Event ID (evt_xxx) - unique constraint for idempotency",
                        max_length=255,
                        unique=True,
                    ),
                ),
                ("event_type", models.CharField(db_index=True, help_text="Stripe event type (e.g., 'payment_intent.succeeded')", max_length=100)),
                ("payload", models.JSONField(help_text="Full webhook payload from Stripe (JSON)")),
                ("status", models.CharField(choices=WEBHOOK_STATUS_CHOICES, db_index=True, default="pending", max_length=20)),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
                ("error_message", models.TextField(blank=True, null=True)),
                ("retry_count", models.PositiveSmallIntegerField(default=0, help_text="Number of processing attempts")),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="webhook_status_created_idx"),
                    models.Index(fields=["status", "retry_count"], name="webhook_status_retry_idx"),
                ],
            },
        ),
    ]
