"""
Add celery-beat schedules for the booking timers.

- Expire Pending Bookings: every 15 minutes
- Process Auto-Confirms: every 10 minutes
"""

from django.db import migrations

TASK_NAMES = [
    "Bookings: Expire Pending Bookings",
    "Bookings: Process Auto-Confirms",
]


def create_periodic_tasks(apps, schema_editor):
    """Create the periodic tasks for the booking sweeps."""
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    schedule_10min, _ = IntervalSchedule.objects.get_or_create(
        every=10,
        period="minutes",
    )
    schedule_15min, _ = IntervalSchedule.objects.get_or_create(
        every=15,
        period="minutes",
    )

    PeriodicTask.objects.get_or_create(
        name="Bookings: Expire Pending Bookings",
        defaults={
            "task": "bookings.tasks.expire_pending_bookings",
            "interval": schedule_15min,
            "enabled": True,
            "description": (
                "Expires pending bookings the freelancer did not answer in time "
                "and refunds any payment already taken."
            ),
        },
    )

    PeriodicTask.objects.get_or_create(
        name="Bookings: Process Auto-Confirms",
        defaults={
            "task": "bookings.tasks.process_auto_confirms",
            "interval": schedule_10min,
            "enabled": True,
            "description": (
                "Releases escrow for confirmed, paid bookings past their "
                "auto-confirm time unless a dispute is open."
            ),
        },
    )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name__in=TASK_NAMES).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("bookings", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
