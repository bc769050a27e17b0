"""Admin registration for notifications."""

from django.contrib import admin

from notifications.models import Notification, NotificationPreference


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ("recipient", "notification_type", "title", "is_read", "created_at")
    list_filter = ("notification_type", "is_read")
    search_fields = ("recipient__email", "title")
    raw_id_fields = ("recipient",)
    readonly_fields = ("created_at", "updated_at", "email_sent_at")


@admin.register(NotificationPreference)
class NotificationPreferenceAdmin(admin.ModelAdmin):
    list_display = ("user", "notification_type", "in_app_enabled", "email_enabled")
    list_filter = ("notification_type",)
    raw_id_fields = ("user",)
