"""
Webhook handling for Stripe events.

Events are verified, stored by event id and applied exactly once.

Usage:
    # In urls.py
    from vendor_payments.webhooks.views import processor_webhook

    urlpatterns = [
        path("webhooks/stripe/", processor_webhook, name="processor_webhook"),
    ]
"""

from vendor_payments.webhooks.handlers import dispatch_webhook, register_handler
from vendor_payments.webhooks.ingestion import WebhookIngestionService

__all__ = [
    "WebhookIngestionService",
    "dispatch_webhook",
    "register_handler",
]
