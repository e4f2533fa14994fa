"""
Vendor payment models.

- VendorPaymentAccount: A vendor's Stripe Connect account and capability flags
- AccountStatusChange: Audit trail of account status changes
- PaymentAttempt: One PaymentIntent created for an order at checkout
- Withdrawal: Money moving from the platform to a vendor
- WebhookEvent: Processor webhook events for deduplicated processing
"""

from vendor_payments.models.payment_attempt import PaymentAttempt
from vendor_payments.models.vendor_account import (
    AccountStatusChange,
    VendorPaymentAccount,
)
from vendor_payments.models.webhook_event import WebhookEvent
from vendor_payments.models.withdrawal import Withdrawal

__all__ = [
    "AccountStatusChange",
    "PaymentAttempt",
    "VendorPaymentAccount",
    "WebhookEvent",
    "Withdrawal",
]
