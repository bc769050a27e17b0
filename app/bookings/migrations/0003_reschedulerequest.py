import uuid

import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

RESCHEDULE_STATUS_CHOICES = [
    ("pending", "Pending"),
    ("accepted", "Accepted"),
    ("declined", "Declined"),
    ("counter_proposed", "Counter-proposed"),
]


class Migration(migrations.Migration):
    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
        ("bookings", "0002_add_booking_sweep_schedules"),
    ]

    operations = [
        migrations.CreateModel(
            name="RescheduleRequest",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                ("original_start", models.DateTimeField()),
                ("original_end", models.DateTimeField()),
                ("proposed_start", models.DateTimeField()),
                ("proposed_end", models.DateTimeField()),
                ("reason", models.TextField(blank=True, default="")),
                ("status", models.CharField(choices=RESCHEDULE_STATUS_CHOICES, db_index=True, default="pending", max_length=20)),
                ("responded_at", models.DateTimeField(blank=True, null=True)),
                ("response_message", models.TextField(blank=True, default="")),
                ("counter_proposed_start", models.DateTimeField(blank=True, null=True)),
                ("counter_proposed_end", models.DateTimeField(blank=True, null=True)),
                (
                    "booking",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="reschedule_requests",
                        to="bookings.booking",
                    ),
                ),
                (
                    "requested_by",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="reschedule_requests",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "responded_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(status="pending"),
                        fields=("booking",),
                        name="reschedule_one_pending_per_booking",
                    ),
                ],
            },
        ),
    ]
