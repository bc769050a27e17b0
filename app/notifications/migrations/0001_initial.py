import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

NOTIFICATION_TYPE_CHOICES = [
    ("new_booking_request", "New booking request"),
    ("payment_confirmed", "Payment confirmed"),
    ("payment_failed", "Payment failed"),
    ("booking_confirmed", "Booking confirmed"),
    ("booking_declined", "Booking declined"),
    ("booking_cancelled", "Booking cancelled"),
    ("booking_expired", "Booking expired"),
    ("booking_refunded", "Booking refunded"),
    ("payment_released", "Payment released"),
    ("service_auto_confirmed", "Service auto-confirmed"),
    ("dispute_created", "Dispute created"),
    ("dispute_resolved", "Dispute resolved"),
    ("payout_paid", "Payout paid"),
    ("payout_failed", "Payout failed"),
    ("reliability_warning", "Reliability warning"),
]


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Notification",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("notification_type", models.CharField(choices=NOTIFICATION_TYPE_CHOICES, db_index=True, max_length=50)),
                ("title", models.CharField(help_text="Fully rendered notification title", max_length=500)),
                ("body", models.TextField(blank=True, default="", help_text="Fully rendered notification body")),
                ("data", models.JSONField(blank=True, default=dict, help_text="Arbitrary context data (booking ids, amounts)")),
                ("is_read", models.BooleanField(db_index=True, default=False, help_text="Whether recipient has read this notification")),
                ("email_sent_at", models.DateTimeField(blank=True, null=True)),
                (
                    "recipient",
                    models.ForeignKey(
                        help_text="User receiving this notification",
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="notifications",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["recipient", "is_read", "-created_at"], name="notif_recipient_unread_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="NotificationPreference",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("notification_type", models.CharField(choices=NOTIFICATION_TYPE_CHOICES, max_length=50)),
                ("in_app_enabled", models.BooleanField(default=True)),
                ("email_enabled", models.BooleanField(default=True)),
                (
                    "user",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="notification_preferences",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("user", "notification_type"), name="unique_user_notification_preference"),
                ],
            },
        ),
    ]
