"""
State enums for vendor payment models.

These are Django TextChoices for database storage and admin integration.

State Machines Overview:

VendorPaymentAccount:
    not_created → pending_verification → ready ⇄ restricted

PaymentAttempt:
    initiated → requires_action → succeeded / failed / canceled
    initiated → succeeded / failed / canceled

Withdrawal:
    processing → completed
    processing → failed
"""

from django.db import models


class AccountStatus(models.TextChoices):
    """
    Lifecycle of a vendor's connected account.

    READY requires charges, payouts and submitted details. An account
    that loses any capability after READY becomes RESTRICTED; it never
    goes back to PENDING_VERIFICATION.
    """

    NOT_CREATED = "not_created", "Not Created"
    PENDING_VERIFICATION = "pending_verification", "Pending Verification"
    READY = "ready", "Ready"
    RESTRICTED = "restricted", "Restricted"


class StatusChangeSource(models.TextChoices):
    """Where an account status change was observed."""

    CREATE = "create", "Account Creation"
    REFRESH = "refresh", "On-demand Refresh"
    WEBHOOK = "webhook", "Webhook"


class PaymentAttemptStatus(models.TextChoices):
    """
    States for a checkout payment attempt.

    Terminal states: SUCCEEDED, FAILED, CANCELED
    REQUIRES_ACTION waits for the customer to finish authentication;
    a follow-up confirmation of the same attempt resolves it.
    """

    INITIATED = "initiated", "Initiated"
    REQUIRES_ACTION = "requires_action", "Requires Action"
    SUCCEEDED = "succeeded", "Succeeded"
    FAILED = "failed", "Failed"
    CANCELED = "canceled", "Canceled"


class PaymentErrorCategory(models.TextChoices):
    """Coarse category stored on a failed attempt. Never the raw error text."""

    CARD_DECLINED = "card_declined", "Card Declined"
    AUTHENTICATION_FAILED = "authentication_failed", "Authentication Failed"
    PAYMENT_METHOD_REQUIRED = "payment_method_required", "Payment Method Required"
    VALIDATION_FAILED = "validation_failed", "Validation Failed"
    PROCESSING_ERROR = "processing_error", "Processing Error"
    DUPLICATE_CHARGE = "duplicate_charge", "Duplicate Charge"


class WithdrawalStatus(models.TextChoices):
    """
    States for a vendor withdrawal.

    Terminal states: COMPLETED, FAILED
    """

    PROCESSING = "PROCESSING", "Processing"
    COMPLETED = "COMPLETED", "Completed"
    FAILED = "FAILED", "Failed"


class WebhookEventStatus(models.TextChoices):
    """
    Processing status of a stored Stripe webhook event.

    PENDING → PROCESSING → PROCESSED
    PENDING → PROCESSING → FAILED → PROCESSING (retry)
    """

    PENDING = "pending", "Pending"
    PROCESSING = "processing", "Processing"
    PROCESSED = "processed", "Processed"
    FAILED = "failed", "Failed"
