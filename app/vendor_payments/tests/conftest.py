"""
Pytest fixtures for vendor payment tests.

Stripe is replaced by FakeProcessor and Redis by a MagicMock, so these
tests need a database but no network.

Usage:
    def test_withdrawal(api_client, vendor_user, ready_account, earnings):
        earnings.set(ready_account.vendor_id, 5000)
        ...
"""

from unittest.mock import MagicMock

import pytest
from rest_framework.test import APIClient

from vendor_payments.tests.factories import (
    PaymentAttemptFactory,
    UserFactory,
    VendorPaymentAccountFactory,
)
from vendor_payments.tests.fakes import (
    FakeEarningsProvider,
    FakeProcessor,
    RecordingOrderService,
)

# =============================================================================
# Collaborators
# =============================================================================


@pytest.fixture
def mock_redis(mocker):
    """Redis connection used by DistributedLock; every lock is granted."""
    redis = MagicMock()
    redis.set.return_value = True
    redis.eval.return_value = 1
    mocker.patch("vendor_payments.locks.get_redis_connection", return_value=redis)
    return redis


@pytest.fixture
def processor():
    return FakeProcessor()


@pytest.fixture
def earnings():
    return FakeEarningsProvider()


@pytest.fixture
def order_service():
    return RecordingOrderService()


@pytest.fixture
def patched_collaborators(mocker, processor, earnings, order_service, mock_redis):
    """
    Route services built without arguments (as the API views build them)
    to the in-memory fakes.
    """
    mocker.patch("vendor_payments.services.accounts.StripeAdapter", processor)
    mocker.patch("vendor_payments.services.confirmation.StripeAdapter", processor)
    mocker.patch("vendor_payments.services.ledger.StripeAdapter", processor)
    mocker.patch(
        "vendor_payments.services.ledger.get_earnings_provider",
        return_value=earnings,
    )
    mocker.patch(
        "vendor_payments.services.confirmation.get_order_service",
        return_value=order_service,
    )
    mocker.patch(
        "vendor_payments.permissions.get_order_service",
        return_value=order_service,
    )
    return processor


# =============================================================================
# Users & API
# =============================================================================


@pytest.fixture
def vendor_user(db):
    return UserFactory()


@pytest.fixture
def api_client(vendor_user):
    """API client authenticated as the vendor."""
    client = APIClient()
    client.force_authenticate(user=vendor_user)
    return client


# =============================================================================
# Model Fixtures
# =============================================================================


@pytest.fixture
def ready_account(db, vendor_user):
    """READY account owned by vendor_user."""
    return VendorPaymentAccountFactory(vendor_id=str(vendor_user.pk))


@pytest.fixture
def pending_account(db, vendor_user):
    return VendorPaymentAccountFactory(vendor_id=str(vendor_user.pk), pending=True)


@pytest.fixture
def payment_attempt(db):
    """INITIATED attempt for a fresh order."""
    return PaymentAttemptFactory()
