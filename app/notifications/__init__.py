"""
Notifications app.

Provides the best-effort ``notify`` contract used by the booking lifecycle,
per-type user preferences, an email delivery task and a small read API.

Usage:
    from notifications.services import NotificationService

    NotificationService.notify(
        user_id=booking.client_id,
        notification_type=NotificationType.BOOKING_CONFIRMED,
        title="Booking confirmed",
        message="Your booking has been accepted.",
        data={"booking_id": str(booking.id)},
    )
"""
