"""
Add celery-beat schedules for payouts and webhook maintenance.

- Process Scheduled Payouts: Fridays at 09:00
- Retry Failed Webhooks: every 5 minutes
- Cleanup Stuck Webhooks: every 30 minutes
- Cleanup Old Webhooks: daily at 03:00
"""

from django.db import migrations

TASK_NAMES = [
    "Payments: Process Scheduled Payouts",
    "Payments: Retry Failed Webhooks",
    "Payments: Cleanup Stuck Webhooks",
    "Payments: Cleanup Old Webhooks",
]


def create_periodic_tasks(apps, schema_editor):
    """Create the periodic tasks for payouts and the webhook ledger."""
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    friday_morning, _ = CrontabSchedule.objects.get_or_create(
        minute="0",
        hour="9",
        day_of_week="5",
        day_of_month="*",
        month_of_year="*",
    )
    nightly, _ = CrontabSchedule.objects.get_or_create(
        minute="0",
        hour="3",
        day_of_week="*",
        day_of_month="*",
        month_of_year="*",
    )
    schedule_5min, _ = IntervalSchedule.objects.get_or_create(
        every=5,
        period="minutes",
    )
    schedule_30min, _ = IntervalSchedule.objects.get_or_create(
        every=30,
        period="minutes",
    )

    PeriodicTask.objects.get_or_create(
        name="Payments: Process Scheduled Payouts",
        defaults={
            "task": "payments.workers.payout_executor.process_scheduled_payouts",
            "crontab": friday_morning,
            "enabled": True,
            "description": (
                "Transfers every pending or scheduled payout due today or earlier "
                "to freelancers with an enabled, verified payout account."
            ),
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Payments: Retry Failed Webhooks",
        defaults={
            "task": "payments.tasks.retry_failed_webhooks",
            "interval": schedule_5min,
            "enabled": True,
            "description": "Reprocesses failed Stripe webhook events that have retries left.",
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Payments: Cleanup Stuck Webhooks",
        defaults={
            "task": "payments.tasks.cleanup_stuck_webhooks",
            "interval": schedule_30min,
            "enabled": True,
            "description": "Marks webhook events stuck in processing as failed so they are retried.",
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Payments: Cleanup Old Webhooks",
        defaults={
            "task": "payments.tasks.cleanup_old_webhooks",
            "crontab": nightly,
            "enabled": True,
            "description": "Deletes processed webhook events older than 90 days.",
        },
    )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name__in=TASK_NAMES).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("payments", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
