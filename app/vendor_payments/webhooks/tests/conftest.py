"""
Pytest fixtures for webhook tests.

Handlers build their services with default collaborators; these
fixtures swap Stripe and the order service for in-memory fakes.
"""

import json
import time

import pytest

from vendor_payments.tests.fakes import FakeProcessor, RecordingOrderService


@pytest.fixture
def processor(mocker):
    fake = FakeProcessor()
    for module in ("accounts", "confirmation", "ledger"):
        mocker.patch(f"vendor_payments.services.{module}.StripeAdapter", fake)
    return fake


@pytest.fixture
def order_service(mocker):
    recorder = RecordingOrderService()
    mocker.patch(
        "vendor_payments.services.confirmation.get_order_service",
        return_value=recorder,
    )
    return recorder


@pytest.fixture
def make_event():
    """Build a verified Stripe event body."""

    def _make(event_type, data_object, event_id="evt_test_1", created=None):
        return {
            "id": event_id,
            "type": event_type,
            "created": created if created is not None else int(time.time()),
            "data": {"object": data_object},
        }

    return _make


@pytest.fixture
def webhook_request(rf):
    """POST a JSON body to the webhook endpoint with a Stripe-Signature header."""

    def _request(payload, signature="t=1,v1=test_sig"):
        kwargs = {"content_type": "application/json"}
        if signature:
            kwargs["HTTP_STRIPE_SIGNATURE"] = signature
        return rf.post("/api/v1/vendor-payments/webhooks/stripe/", data=json.dumps(payload), **kwargs)

    return _request
