"""
Vendor payments app configuration.

This app owns the vendor-facing payment subsystem:
- Processor account onboarding and capability tracking
- Checkout payment confirmation
- Vendor withdrawal ledger and reconciliation
- Stripe webhook ingestion
"""

from django.apps import AppConfig


class VendorPaymentsConfig(AppConfig):
    """Configuration for the vendor payments application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "vendor_payments"
    verbose_name = "Vendor Payments"

    def ready(self):
        # Registers the webhook handlers with the dispatcher
        from vendor_payments.webhooks import handlers  # noqa: F401
