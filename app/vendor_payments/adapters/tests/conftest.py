"""
Pytest fixtures for Stripe adapter tests.

Sections:
    - Mock Stripe Objects
    - Stripe Patching
    - Webhook Signing
"""

import hashlib
import hmac
import time
from dataclasses import dataclass
from typing import Any

import pytest


# =============================================================================
# Mock Stripe Objects
# =============================================================================


@dataclass
class MockStripeObject:
    """Attribute access over a plain dict, like a StripeObject."""

    data: dict[str, Any]

    def __getattr__(self, name: str) -> Any:
        if name == "data":
            return self.__dict__["data"]
        return self.data.get(name)


@dataclass
class MockStripeList:
    """A ListObject page; next_page stands in for the follow-up request."""

    items: list[MockStripeObject]
    next_page: "MockStripeList | None" = None

    @property
    def data(self) -> list[MockStripeObject]:
        return self.items

    @property
    def has_more(self) -> bool:
        return self.next_page is not None

    def auto_paging_iter(self):
        page = self
        while page is not None:
            yield from page.items
            page = page.next_page


@pytest.fixture
def mock_account():
    def _create(
        id: str = "acct_test123",
        charges_enabled: bool = False,
        payouts_enabled: bool = False,
        details_submitted: bool = False,
        country: str = "GB",
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "account",
                "type": "express",
                "country": country,
                "charges_enabled": charges_enabled,
                "payouts_enabled": payouts_enabled,
                "details_submitted": details_submitted,
            }
        )

    return _create


@pytest.fixture
def mock_transfer():
    def _create(
        id: str = "tr_test123",
        amount: int = 2000,
        currency: str = "gbp",
        destination: str = "acct_test123",
        reversed: bool = False,
        livemode: bool = False,
        metadata: dict | None = None,
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "transfer",
                "amount": amount,
                "currency": currency,
                "destination": destination,
                "reversed": reversed,
                "livemode": livemode,
                "metadata": metadata or {},
            }
        )

    return _create


@pytest.fixture
def mock_transfer_list(mock_transfer):
    def _create(*transfer_ids: str, next_page: MockStripeList | None = None) -> MockStripeList:
        return MockStripeList(
            items=[mock_transfer(id=tid) for tid in transfer_ids],
            next_page=next_page,
        )

    return _create


@pytest.fixture
def mock_payment_intent():
    def _create(
        id: str = "pi_test123",
        status: str = "requires_payment_method",
        amount: int = 2500,
        currency: str = "gbp",
        next_action: dict | None = None,
        last_payment_error: dict | None = None,
    ) -> MockStripeObject:
        return MockStripeObject(
            {
                "id": id,
                "object": "payment_intent",
                "status": status,
                "amount": amount,
                "currency": currency,
                "client_secret": f"{id}_secret_abc",
                "next_action": next_action,
                "last_payment_error": last_payment_error,
            }
        )

    return _create


# =============================================================================
# Stripe Patching
# =============================================================================


@pytest.fixture(autouse=True)
def skip_stripe_configuration(request, mocker):
    """Leave the global stripe client alone unless a test opts in."""
    if "real_configuration" in request.keywords:
        return
    mocker.patch("vendor_payments.adapters.stripe_adapter.StripeAdapter._configure_stripe")


@pytest.fixture
def stripe_api(mocker):
    """Patch the Stripe resource classes used by the adapter."""
    base = "vendor_payments.adapters.stripe_adapter.stripe"
    return {
        "Account": mocker.patch(f"{base}.Account"),
        "AccountLink": mocker.patch(f"{base}.AccountLink"),
        "Transfer": mocker.patch(f"{base}.Transfer"),
        "PaymentIntent": mocker.patch(f"{base}.PaymentIntent"),
    }


# =============================================================================
# Webhook Signing
# =============================================================================


@pytest.fixture
def webhook_secret(settings):
    settings.STRIPE_WEBHOOK_SECRET = "whsec_test_secret"
    return settings.STRIPE_WEBHOOK_SECRET


@pytest.fixture
def sign_payload(webhook_secret):
    """Produce a Stripe-Signature header value for a payload."""

    def _sign(payload: str, timestamp: int | None = None, secret: str | None = None) -> str:
        timestamp = timestamp if timestamp is not None else int(time.time())
        signed = f"{timestamp}.{payload}".encode()
        digest = hmac.new((secret or webhook_secret).encode(), signed, hashlib.sha256).hexdigest()
        return f"t={timestamp},v1={digest}"

    return _sign
