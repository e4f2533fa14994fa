"""
Payment processor adapters.

All Stripe calls go through StripeAdapter so that timeouts, idempotency,
error redaction and logging are consistent.

Usage:
    from vendor_payments.adapters import StripeAdapter

    flags = StripeAdapter.retrieve_account("acct_123")
"""

from vendor_payments.adapters.protocols import PaymentProcessor
from vendor_payments.adapters.stripe_adapter import (
    AccountResult,
    IdempotencyKeyGenerator,
    IntentConfirmationResult,
    PaymentIntentResult,
    StripeAdapter,
    TransferResult,
    backoff_delay,
    is_retryable_provider_error,
)

__all__ = [
    "AccountResult",
    "IdempotencyKeyGenerator",
    "IntentConfirmationResult",
    "PaymentIntentResult",
    "PaymentProcessor",
    "StripeAdapter",
    "TransferResult",
    "backoff_delay",
    "is_retryable_provider_error",
]
