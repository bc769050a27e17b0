"""URL configuration for the notifications app."""

from django.urls import path

from notifications.views import (
    NotificationListView,
    NotificationReadAllView,
    NotificationReadView,
)

app_name = "notifications"

urlpatterns = [
    path("", NotificationListView.as_view(), name="list"),
    path("read-all/", NotificationReadAllView.as_view(), name="read_all"),
    path("<uuid:pk>/read/", NotificationReadView.as_view(), name="read"),
]
