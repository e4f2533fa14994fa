"""
Webhook endpoint for Stripe.

Unlike a fire-and-forget queue, this endpoint applies the event before
answering: Stripe only receives a 2xx once the state change is
committed, and a 5xx makes it redeliver.

Usage:
    # In urls.py
    from vendor_payments.webhooks.views import processor_webhook

    urlpatterns = [
        path("webhooks/stripe/", processor_webhook, name="processor_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from vendor_payments.adapters import StripeAdapter
from vendor_payments.exceptions import (
    DuplicateEventError,
    InvalidSignatureError,
    PaymentValidationError,
)
from vendor_payments.webhooks.ingestion import WebhookIngestionService

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def processor_webhook(request: HttpRequest) -> HttpResponse:
    """
    Verify, record and apply a Stripe webhook event.

    Returns:
        HttpResponse with status:
        - 200: Event applied, or a duplicate of an applied event
        - 400: Missing/invalid signature or malformed event (never applied)
        - 500: Processing failed; Stripe will retry
    """
    payload = request.body
    signature = request.headers.get("Stripe-Signature", "")

    if not signature:
        logger.warning("Webhook received without Stripe-Signature header")
        return HttpResponse("Missing signature", status=400)

    try:
        event_data = StripeAdapter.verify_webhook_signature(payload, signature)
    except InvalidSignatureError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error_code": e.error_code, "reason": e.details.get("reason")},
        )
        return HttpResponse("Invalid signature", status=400)

    service = WebhookIngestionService()

    try:
        webhook_event = service.ingest(event_data)
    except DuplicateEventError:
        return HttpResponse("Already processed", status=200)
    except PaymentValidationError:
        logger.warning("Webhook missing required fields")
        return HttpResponse("Invalid event", status=400)

    logger.info(
        f"Received Stripe webhook: {webhook_event.event_type}",
        extra={
            "processor_event_id": webhook_event.processor_event_id,
            "event_type": webhook_event.event_type,
        },
    )

    try:
        result = service.process(webhook_event)
    except Exception:
        logger.error(
            "Webhook processing raised, asking sender to retry",
            extra={"processor_event_id": webhook_event.processor_event_id},
        )
        return HttpResponse("Processing failed", status=500)

    if not result.success:
        return HttpResponse("Processing failed", status=500)

    return HttpResponse("Processed", status=200)
