"""
Tests for the email delivery task.
"""

from notifications.models import Notification
from notifications.tasks import send_email_notification
from notifications.tests.factories import NotificationFactory


class TestSendEmailNotification:
    def test_sends_and_stamps(self, db, client_user, mailoutbox):
        notification = NotificationFactory(recipient=client_user, title="Booking confirmed")

        assert send_email_notification(str(notification.id), "<p>See you <b>soon</b></p>") is True

        assert len(mailoutbox) == 1
        message = mailoutbox[0]
        assert message.subject == "Booking confirmed"
        assert message.to == [client_user.email]
        assert message.body == "See you soon"
        notification.refresh_from_db()
        assert notification.email_sent_at is not None

    def test_already_sent_is_not_resent(self, db, client_user, mailoutbox):
        notification = NotificationFactory(recipient=client_user)
        send_email_notification(str(notification.id), "<p>Hi</p>")

        send_email_notification(str(notification.id), "<p>Hi</p>")

        assert len(mailoutbox) == 1

    def test_missing_notification(self, db, mailoutbox):
        notification = NotificationFactory()
        notification_id = str(notification.id)
        Notification.objects.filter(id=notification_id).delete()

        assert send_email_notification(notification_id, "<p>Hi</p>") is True
        assert mailoutbox == []
