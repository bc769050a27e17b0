"""
Celery configuration for the booking platform.

Celery runs two kinds of work here:
- Periodic sweeps driven by django-celery-beat (expire pending bookings,
  auto-confirm completed services, process scheduled payouts, retry failed
  webhooks)
- Fire-and-forget side effects (notification emails)

Beat schedules live in the database (DatabaseScheduler) and are installed by
data migrations in the owning apps, so a fresh deploy gets them automatically.

Usage:
    # Define a task in any app's tasks.py:
    from celery import shared_task

    @shared_task
    def expire_pending_bookings():
        ...

    # Call the task asynchronously:
    expire_pending_bookings.delay()

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Picks up bookings.tasks, payments.tasks, notifications.tasks
app.autodiscover_tasks()
