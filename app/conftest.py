"""
Root pytest configuration for the Django project.

This module configures pytest-django and provides project-wide fixtures.
App-specific fixtures are defined in each app's tests/conftest.py.

Every test runs with a mocked Stripe adapter injected into EscrowService
and PayoutService, so no test reaches the network.
"""

import itertools
import os
from unittest.mock import MagicMock

import django
import pytest

# Ensure Django settings are configured before any tests run
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")


def pytest_configure():
    """Configure Django settings before tests run."""
    django.setup()

    from django.conf import settings

    # Disable throttling during tests to prevent rate limit failures
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    settings.REST_FRAMEWORK["DEFAULT_THROTTLE_RATES"] = {}

    # Use fast password hasher for tests (PBKDF2 is too slow with 870K iterations)
    settings.PASSWORD_HASHERS = [
        "django.contrib.auth.hashers.MD5PasswordHasher",
    ]

    # PlatformSettings.load() caches; keep it in-process so tests need no Redis
    settings.CACHES = {
        "default": {
            "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
            "LOCATION": "tests",
        }
    }

    settings.CELERY_TASK_ALWAYS_EAGER = True

    # The test client speaks plain HTTP; don't redirect it to HTTPS
    settings.SECURE_SSL_REDIRECT = False


def pytest_collection_modifyitems(items):
    """
    Auto-mark tests based on filename patterns.

    Mapping:
    - test_views.py, test_services.py, test_tasks.py, etc. → integration
    - test_models.py, test_pricing.py, test_refund_policy.py, etc. → unit
    - Unmatched files → integration (safe default for Django)

    Explicit markers on test functions/classes take precedence.
    """
    integration_patterns = [
        "test_views.py",
        "test_services.py",
        "test_tasks.py",
        "test_webhook_views.py",
        "test_webhook_handlers.py",
        "test_escrow_service.py",
        "test_payout_service.py",
        "test_payout_executor.py",
    ]

    unit_patterns = [
        "test_models.py",
        "test_managers.py",
        "test_pricing.py",
        "test_refund_policy.py",
        "test_reliability.py",
        "test_helpers.py",
        "test_stripe_adapter.py",
    ]

    for item in items:
        # Skip if test already has unit/integration/e2e marker
        existing_markers = {m.name for m in item.iter_markers()}
        if existing_markers & {"unit", "integration", "e2e"}:
            continue

        filename = str(item.fspath).split("/")[-1]

        if any(pattern in filename for pattern in integration_patterns):
            item.add_marker(pytest.mark.integration)
        elif any(pattern in filename for pattern in unit_patterns):
            item.add_marker(pytest.mark.unit)
        else:
            item.add_marker(pytest.mark.integration)


# =============================================================================
# Isolation Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clear_cache():
    """Drop cached PlatformSettings between tests."""
    from django.core.cache import cache

    cache.clear()
    yield
    cache.clear()


@pytest.fixture(autouse=True)
def mock_stripe():
    """
    Inject a mocked Stripe adapter into the payment services.

    Each call returns a result with a unique id. Tests override
    ``side_effect`` to simulate provider failures:

        mock_stripe.create_transfer.side_effect = StripeCardDeclinedError("declined")
    """
    from payments.adapters import (
        PaymentIntentResult,
        RefundResult,
        TransferResult,
    )
    from payments.services import EscrowService, PayoutService

    counter = itertools.count(1)

    def create_payment_intent(params):
        n = next(counter)
        return PaymentIntentResult(
            id=f"pi_test_{n}",
            status="requires_payment_method",
            amount_pence=params.amount_pence,
            currency=params.currency,
            client_secret=f"pi_test_{n}_secret",
            metadata=params.metadata,
        )

    def create_refund(payment_intent_id, idempotency_key, amount_pence=None, reason=None, metadata=None):
        return RefundResult(
            id=f"re_test_{next(counter)}",
            amount_pence=amount_pence or 0,
            currency="gbp",
            status="succeeded",
            payment_intent_id=payment_intent_id,
        )

    def create_transfer(amount_pence, destination_account, idempotency_key, metadata=None):
        return TransferResult(
            id=f"tr_test_{next(counter)}",
            amount_pence=amount_pence,
            currency="gbp",
            destination_account=destination_account,
        )

    adapter = MagicMock()
    adapter.create_payment_intent.side_effect = create_payment_intent
    adapter.create_refund.side_effect = create_refund
    adapter.create_transfer.side_effect = create_transfer

    EscrowService.set_stripe_adapter(adapter)
    PayoutService.set_stripe_adapter(adapter)
    yield adapter
    EscrowService.set_stripe_adapter(None)
    PayoutService.set_stripe_adapter(None)


# =============================================================================
# User Fixtures
# =============================================================================


@pytest.fixture
def client_user(db):
    """A verified client."""
    from authentication.tests.factories import UserFactory

    return UserFactory()


@pytest.fixture
def freelancer(db):
    """A verified freelancer with no lead time or daily limit."""
    from authentication.tests.factories import FreelancerFactory

    return FreelancerFactory()


@pytest.fixture
def admin_user(db):
    from authentication.tests.factories import AdminFactory

    return AdminFactory()


# =============================================================================
# API Client Fixtures
# =============================================================================


@pytest.fixture
def api_client():
    from rest_framework.test import APIClient

    return APIClient()


@pytest.fixture
def auth_client():
    """
    Factory returning an APIClient authenticated as the given user.

    Usage:
        def test_accept(auth_client, freelancer):
            response = auth_client(freelancer).post(url)
    """
    from rest_framework.test import APIClient

    def make(user):
        client = APIClient()
        client.force_authenticate(user=user)
        return client

    return make
