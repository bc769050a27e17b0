"""
WSGI config for the booking platform.

WSGI is the entry point for gunicorn in production. Webhook callbacks,
booking actions and admin endpoints are all plain request/response, so
there is nothing here that needs ASGI.

This file exposes the WSGI callable as a module-level variable named `application`.

For more information on this file, see:
https://docs.djangoproject.com/en/5.2/howto/deployment/wsgi/
"""

import os

from django.core.wsgi import get_wsgi_application

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

application = get_wsgi_application()
