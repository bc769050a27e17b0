"""
Notification service.

The booking lifecycle only depends on one contract:

    NotificationService.notify(user_id, type, title, message, data=None, email_html=None)

It is best-effort and preference-gated. Any failure is logged and swallowed
so a notification problem never rolls back or fails the booking, payment or
dispute action that triggered it.

Email copies are sent by a Celery task enqueued on transaction commit, so an
email never goes out for a change that was rolled back.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.db import transaction

from core.services import BaseService, ServiceResult
from notifications.models import Notification, NotificationPreference

if TYPE_CHECKING:
    from authentication.models import User

logger = logging.getLogger(__name__)


class NotificationService(BaseService):
    """
    Service for notification operations.

    Methods:
        notify: Best-effort in-app (and optional email) notification
        mark_as_read: Mark a single notification as read
        mark_all_as_read: Mark all user's unread notifications as read
    """

    @classmethod
    def notify(
        cls,
        user_id,
        notification_type: str,
        title: str,
        message: str,
        data: dict | None = None,
        email_html: str | None = None,
    ) -> Notification | None:
        """
        Create an in-app notification and optionally queue an email.

        Args:
            user_id: Recipient user id
            notification_type: NotificationType value
            title: Rendered title
            message: Rendered body
            data: JSON context (booking_id etc.)
            email_html: When given (and email not disabled), an email copy
                is queued after commit

        Returns:
            The Notification, or None if skipped by preference or failed
        """
        try:
            preference = NotificationPreference.objects.filter(
                user_id=user_id,
                notification_type=notification_type,
            ).first()
            in_app_enabled = preference.in_app_enabled if preference else True
            email_enabled = preference.email_enabled if preference else True

            if not in_app_enabled and not (email_html and email_enabled):
                cls.get_logger().debug(
                    "Notification skipped by preference",
                    extra={"user_id": str(user_id), "type": notification_type},
                )
                return None

            # Savepoint so a failed insert cannot poison the caller's transaction
            with transaction.atomic():
                notification = Notification.objects.create(
                    recipient_id=user_id,
                    notification_type=notification_type,
                    title=title,
                    body=message,
                    data=data or {},
                    is_read=not in_app_enabled,
                )

            if email_html and email_enabled:
                cls._queue_email(notification.id, email_html)

            return notification
        except Exception:
            cls.get_logger().exception(
                "Failed to create notification",
                extra={"user_id": str(user_id), "type": notification_type},
            )
            return None

    @classmethod
    def _queue_email(cls, notification_id, email_html: str) -> None:
        from notifications.tasks import send_email_notification

        def enqueue():
            try:
                send_email_notification.delay(str(notification_id), email_html)
            except Exception:
                logger.exception(
                    "Failed to enqueue notification email",
                    extra={"notification_id": str(notification_id)},
                )

        transaction.on_commit(enqueue)

    @classmethod
    def mark_as_read(cls, user: User, notification_id) -> ServiceResult[Notification]:
        notification = Notification.objects.filter(
            id=notification_id, recipient=user
        ).first()
        if notification is None:
            return ServiceResult.failure(
                "Notification not found", error_code="NOT_FOUND"
            )
        if not notification.is_read:
            notification.is_read = True
            notification.save(update_fields=["is_read", "updated_at"])
        return ServiceResult.success(notification)

    @classmethod
    def mark_all_as_read(cls, user: User) -> ServiceResult[int]:
        count = Notification.objects.filter(recipient=user, is_read=False).update(
            is_read=True
        )
        return ServiceResult.success(count)
