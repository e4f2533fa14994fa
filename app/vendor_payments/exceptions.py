"""
Vendor payment exceptions.

Exception Hierarchy:
    VendorPaymentError (base for the vendor payment domain)
    ├── PaymentNotFoundError - Account / attempt / withdrawal lookup failures (NotFoundError)
    ├── PaymentValidationError - Invalid amounts, currencies, filters (ValidationError)
    ├── AccountNotProvisionedError - No processor account yet (precondition)
    ├── AccountNotReadyError - Account cannot receive payouts (precondition)
    ├── InsufficientBalanceError - Withdrawal exceeds available balance
    ├── DuplicateEventError - Webhook already applied (treated as success)
    ├── InvalidSignatureError - Webhook authenticity check failed
    └── ProviderError - Base for payment processor failures (ExternalServiceError)
        ├── ProviderUnavailableError - Network / timeout / 5xx (retryable)
        └── ProviderRejectedError - Definitive 4xx refusal (not retryable)

    OrderAlreadyPaidError - Order has a succeeded attempt (inherits ConflictError)
    LockAcquisitionError - Distributed lock timeout (inherits ConflictError)
    InvalidStateTransitionError - FSM transition not allowed (inherits ConflictError)

Provider errors never carry the processor's raw error body. Only a
redacted reason code is kept in ``details`` for callers to branch on;
the full error is logged server-side by the adapter.

Usage:
    from vendor_payments.exceptions import ProviderUnavailableError

    try:
        ledger.request_withdrawal(vendor_id, 2000, "gbp")
    except ProviderUnavailableError as e:
        if e.is_retryable:
            schedule_retry(delay=backoff_delay(attempt))
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Vendor Payment Domain Exceptions
# =============================================================================


class VendorPaymentError(BaseApplicationError):
    """
    Base exception for all vendor payment operations.

    Example:
        try:
            service.generate_onboarding_link(vendor_id, refresh_url, return_url)
        except VendorPaymentError as e:
            return Response(e.to_dict(), status=400)
    """

    default_error_code: str = "VENDOR_PAYMENT_ERROR"


class PaymentNotFoundError(VendorPaymentError, NotFoundError):
    """Raised when an account, attempt or withdrawal cannot be found."""

    default_error_code: str = "PAYMENT_NOT_FOUND"


class PaymentValidationError(VendorPaymentError, ValidationError):
    """
    Raised when payment input validation fails.

    Use for:
    - Non-positive amounts
    - Unknown currency codes
    - Status filters that do not name a withdrawal status
    """

    default_error_code: str = "PAYMENT_VALIDATION_ERROR"


class AccountNotProvisionedError(VendorPaymentError):
    """
    Raised when an operation needs a processor account that does not exist.

    The vendor must call create_account first.
    """

    default_error_code: str = "ACCOUNT_NOT_PROVISIONED"


class AccountNotReadyError(VendorPaymentError):
    """
    Raised when a vendor requests a payout before onboarding is complete.

    Ready means charges enabled, payouts enabled and details submitted.
    """

    default_error_code: str = "ACCOUNT_NOT_READY"


class InsufficientBalanceError(VendorPaymentError):
    """
    Raised when a withdrawal exceeds the vendor's available balance.

    Available balance is settled earnings minus every PROCESSING and
    COMPLETED withdrawal. No withdrawal row is created.
    """

    default_error_code: str = "INSUFFICIENT_BALANCE"


class DuplicateEventError(VendorPaymentError):
    """
    Raised when a webhook event has already been applied.

    The webhook endpoint answers 200 so the sender stops redelivering.
    """

    default_error_code: str = "DUPLICATE_EVENT"


class InvalidSignatureError(VendorPaymentError):
    """Raised when a webhook payload fails signature verification."""

    default_error_code: str = "INVALID_SIGNATURE"


# =============================================================================
# Processor Exceptions
# =============================================================================


class ProviderError(VendorPaymentError, ExternalServiceError):
    """
    Base exception for payment processor failures.

    Attributes:
        reason_code: Redacted processor error code (e.g. "country_unsupported")
        is_retryable: Whether the caller may retry with backoff
    """

    default_error_code: str = "PROVIDER_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        reason_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if reason_code:
            details["reason_code"] = reason_code
        super().__init__(message, error_code=error_code, details=details)
        self.reason_code = reason_code


class ProviderUnavailableError(ProviderError):
    """
    The processor could not be reached or answered with a server error.

    Covers connection failures, timeouts, rate limiting and 5xx
    responses. Nothing retries internally; callers decide.
    """

    default_error_code: str = "PROVIDER_UNAVAILABLE"
    is_retryable: bool = True


class ProviderRejectedError(ProviderError):
    """
    The processor definitively refused the request (4xx class).

    Not retryable without changing the input.
    """

    default_error_code: str = "PROVIDER_REJECTED"
    is_retryable: bool = False


# =============================================================================
# Concurrency / State Exceptions
# =============================================================================


class OrderAlreadyPaidError(ConflictError):
    """Raised when an order that already has a succeeded attempt is paid again."""

    default_error_code: str = "ORDER_ALREADY_PAID"


class LockAcquisitionError(ConflictError):
    """
    Raised when a distributed lock cannot be acquired in time.

    Example:
        raise LockAcquisitionError(
            "Could not acquire lock for withdrawal:vendor:V1 within 5s",
            details={"key": "withdrawal:vendor:V1", "timeout": 5}
        )
    """

    default_error_code: str = "LOCK_ACQUISITION_FAILED"


class InvalidStateTransitionError(ConflictError):
    """
    Raised when a state transition is not allowed.

    Wraps django-fsm's TransitionNotAllowed and guards immutable fields
    such as the processor account id.
    """

    default_error_code: str = "INVALID_STATE_TRANSITION"


__all__ = [
    "VendorPaymentError",
    "PaymentNotFoundError",
    "PaymentValidationError",
    "AccountNotProvisionedError",
    "AccountNotReadyError",
    "InsufficientBalanceError",
    "DuplicateEventError",
    "InvalidSignatureError",
    "ProviderError",
    "ProviderUnavailableError",
    "ProviderRejectedError",
    "OrderAlreadyPaidError",
    "LockAcquisitionError",
    "InvalidStateTransitionError",
]
