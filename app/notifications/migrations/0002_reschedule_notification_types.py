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
    ("reschedule_requested", "Reschedule requested"),
    ("booking_rescheduled", "Booking rescheduled"),
    ("reschedule_declined", "Reschedule declined"),
]


class Migration(migrations.Migration):
    dependencies = [
        ("notifications", "0001_initial"),
    ]

    operations = [
        migrations.AlterField(
            model_name="notification",
            name="notification_type",
            field=models.CharField(choices=NOTIFICATION_TYPE_CHOICES, db_index=True, max_length=50),
        ),
        migrations.AlterField(
            model_name="notificationpreference",
            name="notification_type",
            field=models.CharField(choices=NOTIFICATION_TYPE_CHOICES, max_length=50),
        ),
    ]
