"""
Vendor payment services.

- AccountLifecycleService: Connected account creation, onboarding links, capability flags
- PaymentConfirmationService: Checkout confirmation and customer-safe messages
- PayoutLedgerService: Withdrawals, summaries and reconciliation
"""

from vendor_payments.services.accounts import AccountLifecycleService, AccountRef
from vendor_payments.services.confirmation import (
    GENERIC_PAYMENT_ERROR_MESSAGE,
    CheckoutSession,
    ConfirmationOutcome,
    PaymentConfirmationService,
    classify_error_message,
    resolve_confirmation,
)
from vendor_payments.services.ledger import (
    PayoutLedgerService,
    ReconciliationResult,
    WithdrawalSummary,
)

__all__ = [
    "AccountLifecycleService",
    "AccountRef",
    "CheckoutSession",
    "ConfirmationOutcome",
    "GENERIC_PAYMENT_ERROR_MESSAGE",
    "PaymentConfirmationService",
    "PayoutLedgerService",
    "ReconciliationResult",
    "WithdrawalSummary",
    "classify_error_message",
    "resolve_confirmation",
]
