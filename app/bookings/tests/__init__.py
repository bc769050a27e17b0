"""
Tests for bookings app.

This package contains test modules for:
- test_pricing.py / test_refund_policy.py: Pure money rules
- test_reliability.py / test_availability.py: Freelancer rules
- test_services.py: BookingService lifecycle tests
- test_tasks.py: Expiry and auto-confirm sweeps
- test_views.py: API endpoint tests

Usage:
    pytest bookings/tests/
"""
