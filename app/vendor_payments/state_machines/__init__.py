"""
State enums and pure transition rules for vendor payment models.
"""

from vendor_payments.state_machines.rules import (
    CapabilityFlags,
    derive_account_status,
)
from vendor_payments.state_machines.states import (
    AccountStatus,
    PaymentAttemptStatus,
    PaymentErrorCategory,
    StatusChangeSource,
    WebhookEventStatus,
    WithdrawalStatus,
)

__all__ = [
    "AccountStatus",
    "CapabilityFlags",
    "PaymentAttemptStatus",
    "PaymentErrorCategory",
    "StatusChangeSource",
    "WebhookEventStatus",
    "WithdrawalStatus",
    "derive_account_status",
]
