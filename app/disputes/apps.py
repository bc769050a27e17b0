"""Django app configuration for disputes."""

from django.apps import AppConfig


class DisputesConfig(AppConfig):
    """Configuration for the disputes app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "disputes"
    verbose_name = "Disputes"
