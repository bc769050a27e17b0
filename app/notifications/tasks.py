"""
Celery tasks for notification delivery.

Only email is delivered out of band. The in-app Notification row is written
synchronously by NotificationService.notify.
"""

from __future__ import annotations

import logging

from celery import shared_task
from django.conf import settings
from django.core.mail import send_mail
from django.utils import timezone
from django.utils.html import strip_tags

from notifications.models import Notification

logger = logging.getLogger(__name__)


@shared_task(
    bind=True,
    autoretry_for=(ConnectionError, TimeoutError),
    retry_backoff=True,
    retry_kwargs={"max_retries": 3},
)
def send_email_notification(self, notification_id: str, email_html: str) -> bool:
    """
    Send the email copy of a notification.

    Args:
        notification_id: UUID string of the Notification
        email_html: Rendered HTML body

    Returns:
        True if sent or skipped (already sent, no email address)
    """
    notification = (
        Notification.objects.select_related("recipient")
        .filter(id=notification_id)
        .first()
    )
    if notification is None:
        logger.warning(f"Notification {notification_id} not found for email delivery")
        return True

    if notification.email_sent_at is not None:
        return True

    recipient = notification.recipient
    if not recipient.email:
        logger.info(f"Email skipped for notification {notification_id}: no email")
        return True

    send_mail(
        subject=notification.title,
        message=strip_tags(email_html),
        from_email=settings.DEFAULT_FROM_EMAIL,
        recipient_list=[recipient.email],
        html_message=email_html,
    )

    Notification.objects.filter(id=notification.id).update(
        email_sent_at=timezone.now()
    )
    logger.info(
        f"Email notification sent for {notification_id} to {recipient.email}"
    )
    return True
