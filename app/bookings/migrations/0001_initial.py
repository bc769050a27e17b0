import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models

BOOKING_STATUS_CHOICES = [
    ("pending", "Pending"),
    ("confirmed", "Confirmed"),
    ("completed", "Completed"),
    ("cancelled", "Cancelled"),
    ("expired", "Expired"),
]

BOOKING_PAYMENT_STATUS_CHOICES = [
    ("unpaid", "Unpaid"),
    ("payment_pending", "Payment pending"),
    ("payment_failed", "Payment failed"),
    ("paid", "Paid"),
    ("refunded", "Refunded"),
    ("partially_refunded", "Partially refunded"),
]

LOCATION_TYPE_CHOICES = [
    ("freelancer_travels_to_client", "Freelancer travels to client"),
    ("client_travels_to_freelancer", "Client travels to freelancer"),
    ("online", "Online"),
]

MATERIALS_POLICY_CHOICES = [
    ("freelancer_provides", "Freelancer provides"),
    ("client_provides", "Client provides"),
    ("both", "Either"),
]

CANCELLED_BY_CHOICES = [
    ("client", "Client"),
    ("freelancer", "Freelancer"),
    ("admin", "Admin"),
]


def base_fields():
    return [
        ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
        ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
        ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
    ]


def audit_fields():
    return [
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
        ("action", models.CharField(db_index=True, help_text="Machine-readable action name", max_length=50)),
        ("old_status", models.CharField(blank=True, default="", max_length=30)),
        ("new_status", models.CharField(blank=True, default="", max_length=30)),
        ("details", models.JSONField(blank=True, default=dict)),
    ]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Service",
            fields=[
                *base_fields(),
                ("title", models.CharField(max_length=200)),
                ("base_price_pence", models.PositiveIntegerField()),
                ("materials_price_pence", models.PositiveIntegerField(default=0)),
                ("travel_price_pence", models.PositiveIntegerField(default=0)),
                ("duration_minutes", models.PositiveIntegerField()),
                ("materials_policy", models.CharField(choices=MATERIALS_POLICY_CHOICES, default="freelancer_provides", max_length=30)),
                ("location_types", models.JSONField(default=list, help_text="List of supported location types")),
                ("is_active", models.BooleanField(default=True)),
                (
                    "freelancer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="services",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["title"],
            },
        ),
        migrations.CreateModel(
            name="Booking",
            fields=[
                *base_fields(),
                ("scheduled_start", models.DateTimeField(db_index=True)),
                ("scheduled_end", models.DateTimeField()),
                ("location_type", models.CharField(choices=LOCATION_TYPE_CHOICES, max_length=40)),
                ("address", models.TextField(blank=True, default="")),
                ("client_provides_materials", models.BooleanField(default=False)),
                ("base_price_pence", models.PositiveIntegerField()),
                ("materials_price_pence", models.PositiveIntegerField(default=0)),
                ("travel_price_pence", models.PositiveIntegerField(default=0)),
                ("platform_fee_pence", models.PositiveIntegerField(default=0)),
                ("total_pence", models.PositiveIntegerField()),
                ("status", django_fsm.FSMField(choices=BOOKING_STATUS_CHOICES, db_index=True, default="pending", max_length=50)),
                ("payment_status", models.CharField(choices=BOOKING_PAYMENT_STATUS_CHOICES, db_index=True, default="unpaid", max_length=30)),
                ("expires_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("auto_confirm_at", models.DateTimeField(blank=True, db_index=True, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("cancelled_by", models.CharField(blank=True, choices=CANCELLED_BY_CHOICES, default="", max_length=20)),
                ("cancellation_reason", models.TextField(blank=True, default="")),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("declined_reason", models.TextField(blank=True, default="")),
                ("declined_at", models.DateTimeField(blank=True, null=True)),
                (
                    "client",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="client_bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "freelancer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="freelancer_bookings",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "service",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="bookings",
                        to="bookings.service",
                    ),
                ),
            ],
            options={
                "ordering": ["-scheduled_start"],
                "indexes": [
                    models.Index(fields=["freelancer", "status", "scheduled_start"], name="booking_freelancer_sched_idx"),
                    models.Index(fields=["status", "expires_at"], name="booking_status_expires_idx"),
                    models.Index(fields=["status", "payment_status", "auto_confirm_at"], name="booking_auto_confirm_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        check=models.Q(scheduled_end__gt=models.F("scheduled_start")),
                        name="booking_end_after_start",
                    ),
                    models.CheckConstraint(
                        check=models.Q(expires_at__isnull=True) | models.Q(auto_confirm_at__isnull=True),
                        name="booking_single_timer",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="BookingAuditLog",
            fields=[
                *base_fields(),
                *audit_fields(),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="audit_logs",
                        to="bookings.booking",
                    ),
                ),
            ],
            options={
                "verbose_name": "Booking Audit Log",
                "verbose_name_plural": "Booking Audit Logs",
                "ordering": ["created_at"],
                "abstract": False,
            },
        ),
        migrations.CreateModel(
            name="FreelancerCancellation",
            fields=[
                *base_fields(),
                ("hours_before_service", models.IntegerField()),
                ("is_last_minute", models.BooleanField(db_index=True, default=False)),
                (
                    "booking",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="freelancer_cancellation",
                        to="bookings.booking",
                    ),
                ),
                (
                    "freelancer",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="freelancer_cancellations",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["freelancer", "is_last_minute", "created_at"], name="freelancer_cancel_window_idx"),
                ],
            },
        ),
    ]
