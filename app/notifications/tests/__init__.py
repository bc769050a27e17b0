"""
Tests for notifications app.

This package contains test modules for:
- test_services.py: NotificationService notify/read operations
- test_tasks.py: Email delivery task
- test_views.py: Notification list and read endpoints
- factories.py: Factory Boy factories
"""
