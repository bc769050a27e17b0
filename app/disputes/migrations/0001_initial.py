import uuid

import django.db.models.deletion
import django_fsm
from django.conf import settings
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("bookings", "0001_initial"),
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="Dispute",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
                (
                    "category",
                    models.CharField(
                        choices=[("no_show", "No show"), ("quality", "Quality"), ("safety", "Safety"), ("other", "Other")],
                        max_length=20,
                    ),
                ),
                ("description", models.TextField()),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[("new", "New"), ("in_review", "In review"), ("resolved", "Resolved")],
                        db_index=True,
                        default="new",
                        max_length=50,
                    ),
                ),
                (
                    "resolution_type",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("full_refund", "Full refund"),
                            ("partial_refund", "Partial refund"),
                            ("release_to_freelancer", "Release to freelancer"),
                            ("no_action", "No action"),
                        ],
                        default="",
                        max_length=30,
                    ),
                ),
                ("resolution_amount_pence", models.PositiveIntegerField(blank=True, null=True)),
                ("resolution_notes", models.TextField(blank=True, default="")),
                ("resolved_at", models.DateTimeField(blank=True, null=True)),
                (
                    "booking",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="dispute",
                        to="bookings.booking",
                    ),
                ),
                (
                    "raised_by",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="disputes_raised",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
                (
                    "resolved_by",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="disputes_resolved",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status", "created_at"], name="dispute_status_created_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="DisputeAuditLog",
            fields=[
                ("created_at", models.DateTimeField(auto_now_add=True, db_index=True, help_text="Timestamp when this record was created")),
                ("updated_at", models.DateTimeField(auto_now=True, help_text="Timestamp when this record was last modified")),
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, help_text="Unique identifier for this record", primary_key=True, serialize=False)),
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
                    "dispute",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="audit_logs",
                        to="disputes.dispute",
                    ),
                ),
            ],
            options={
                "verbose_name": "Dispute Audit Log",
                "verbose_name_plural": "Dispute Audit Logs",
                "ordering": ["created_at"],
                "abstract": False,
            },
        ),
    ]
