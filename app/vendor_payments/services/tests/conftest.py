"""
Pytest fixtures for vendor payment service tests.

Every service is built with in-memory collaborators; Redis locks are
granted by a mocked connection.
"""

from unittest.mock import MagicMock

import pytest

from vendor_payments.services import (
    AccountLifecycleService,
    PaymentConfirmationService,
    PayoutLedgerService,
)
from vendor_payments.tests.fakes import (
    FakeEarningsProvider,
    FakeProcessor,
    RecordingOrderService,
)


@pytest.fixture(autouse=True)
def mock_redis(mocker):
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
def account_service(processor):
    return AccountLifecycleService(processor=processor)


@pytest.fixture
def confirmation_service(processor, order_service):
    return PaymentConfirmationService(processor=processor, order_service=order_service)


@pytest.fixture
def ledger(processor, earnings):
    return PayoutLedgerService(processor=processor, earnings_provider=earnings)
