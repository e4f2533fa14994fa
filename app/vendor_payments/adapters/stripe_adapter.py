"""
Stripe API adapter for vendor payment operations.

All Stripe calls made by the vendor payment services go through
StripeAdapter so that timeouts, idempotency, error translation and
logging are applied the same way everywhere.

Features:
- Bounded HTTP timeout on every call (STRIPE_API_TIMEOUT_SECONDS)
- Stripe SDK errors translated to ProviderUnavailableError (retryable)
  or ProviderRejectedError (definitive); no internal retries
- Raw Stripe error bodies are logged server-side only; callers see a
  generic message plus a redacted reason code
- Plain dataclass results, so no SDK object reaches a service

Configuration (via settings):
- STRIPE_SECRET_KEY: Stripe API secret key
- STRIPE_WEBHOOK_SECRET: Webhook signing secret
- STRIPE_API_TIMEOUT_SECONDS: API call timeout (default: 10)
- STRIPE_WEBHOOK_TOLERANCE_SECONDS: Allowed webhook timestamp skew (default: 300)

Usage:
    from vendor_payments.adapters import IdempotencyKeyGenerator, StripeAdapter

    account = StripeAdapter.create_account(
        email="shop@example.com",
        country="GB",
        business_name="Acme Ltd",
        business_type="company",
        idempotency_key=IdempotencyKeyGenerator.generate("create_account", "V1"),
    )
"""

from __future__ import annotations

import hashlib
import json
import logging
import random
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

import stripe
from django.conf import settings

from vendor_payments.exceptions import (
    InvalidSignatureError,
    ProviderError,
    ProviderRejectedError,
    ProviderUnavailableError,
)


# =============================================================================
# Data Types
# =============================================================================


@dataclass
class AccountResult:
    """
    Result from Stripe Account operations.

    Attributes:
        id: Connected account ID (acct_xxx)
        charges_enabled: Whether the account can accept charges
        payouts_enabled: Whether the account can receive payouts
        details_submitted: Whether onboarding details were submitted
        country: Account country
        type: Account type (express, standard, custom)
    """

    id: str
    charges_enabled: bool = False
    payouts_enabled: bool = False
    details_submitted: bool = False
    country: str | None = None
    type: str | None = None


@dataclass
class TransferResult:
    """
    Result from Stripe Transfer operations.

    Attributes:
        id: Transfer ID (tr_xxx)
        amount_minor: Amount transferred in minor units
        currency: Currency code
        destination_account: Destination Stripe account ID
        reversed: Whether the transfer has been fully reversed
        livemode: False for test-mode transfers
        metadata: Attached metadata
    """

    id: str
    amount_minor: int
    currency: str
    destination_account: str
    reversed: bool = False
    livemode: bool = False
    metadata: dict[str, str] = field(default_factory=dict)


@dataclass
class PaymentIntentResult:
    """
    Result from PaymentIntent creation.

    The client secret is handed to the customer's browser; it is never
    logged by this adapter.
    """

    id: str
    status: str
    amount_minor: int
    currency: str
    client_secret: str | None = field(default=None, repr=False)


@dataclass
class IntentConfirmationResult:
    """
    Outcome of a ConfirmPaymentIntent round-trip.

    Attributes:
        intent_id: PaymentIntent ID (pi_xxx)
        status: PaymentIntent status after confirmation
            (succeeded, processing, requires_action, requires_payment_method,
            canceled, ...)
        error_message: Customer-facing error from the processor, if any
        error_code: Processor error code, if any
        next_action_url: Redirect URL when status is requires_action
    """

    intent_id: str
    status: str
    error_message: str | None = None
    error_code: str | None = None
    next_action_url: str | None = None


# =============================================================================
# Idempotency Key Generator
# =============================================================================


class IdempotencyKeyGenerator:
    """
    Generate idempotency keys for Stripe API calls.

    Format: "{operation}:{entity_id}:{attempt}:{hash}"

    Keys are deterministic, so concurrent callers acting on the same
    entity collapse onto one Stripe object.

    Example:
        key = IdempotencyKeyGenerator.generate("create_account", "V1")
        # "create_account:V1:1:a1b2c3d4"
    """

    @staticmethod
    def generate(
        operation: str,
        entity_id: uuid.UUID | str,
        attempt: int = 1,
    ) -> str:
        entity_str = str(entity_id)
        hash_input = f"{operation}:{entity_str}:{attempt}:{settings.SECRET_KEY}"
        short_hash = hashlib.sha256(hash_input.encode()).hexdigest()[:8]

        return f"{operation}:{entity_str}:{attempt}:{short_hash}"


# =============================================================================
# Retry Logic Helpers
# =============================================================================


def is_retryable_provider_error(error: Exception) -> bool:
    """True for ProviderError subclasses flagged as retryable."""
    if isinstance(error, ProviderError):
        return getattr(error, "is_retryable", False)
    return False


def backoff_delay(attempt: int, base: float = 1.0, max_delay: float = 60.0) -> float:
    """
    Calculate exponential backoff delay with jitter.

    Offered to callers of operations that raise ProviderUnavailableError;
    the services themselves never retry.

    Args:
        attempt: Current attempt number (0-indexed)
        base: Base delay in seconds (default: 1.0)
        max_delay: Maximum delay in seconds (default: 60.0)

    Returns:
        Delay in seconds with jitter (0-25% of calculated delay)
    """
    delay = min(base * (2**attempt), max_delay)
    jitter = delay * random.uniform(0, 0.25)
    return delay + jitter


# =============================================================================
# Stripe Adapter
# =============================================================================


class StripeAdapter:
    """
    Adapter for Stripe API operations.

    All methods are classmethods - no instance state is maintained.
    Thread-safe for use from Celery workers. Satisfies the
    PaymentProcessor protocol.
    """

    # =========================================================================
    # Configuration
    # =========================================================================

    @staticmethod
    def _configure_stripe() -> None:
        """Configure Stripe client with API key and timeout."""
        stripe.api_key = settings.STRIPE_SECRET_KEY
        timeout = getattr(settings, "STRIPE_API_TIMEOUT_SECONDS", 10)
        stripe.default_http_client = stripe.RequestsClient(timeout=timeout)
        stripe.max_network_retries = 0

    @classmethod
    def get_logger(cls) -> logging.Logger:
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")

    @staticmethod
    def _to_account_result(account: Any) -> AccountResult:
        return AccountResult(
            id=account.id,
            charges_enabled=bool(account.charges_enabled),
            payouts_enabled=bool(account.payouts_enabled),
            details_submitted=bool(account.details_submitted),
            country=account.country,
            type=account.type,
        )

    @staticmethod
    def _to_transfer_result(transfer: Any) -> TransferResult:
        return TransferResult(
            id=transfer.id,
            amount_minor=transfer.amount,
            currency=transfer.currency,
            destination_account=transfer.destination,
            reversed=bool(transfer.reversed),
            livemode=bool(transfer.livemode),
            metadata=dict(transfer.metadata or {}),
        )

    # =========================================================================
    # Connected Accounts
    # =========================================================================

    @classmethod
    def create_account(
        cls,
        email: str,
        country: str,
        business_name: str,
        business_type: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> AccountResult:
        """
        Create an Express connected account.

        Card payments and transfers capabilities are requested up front.

        Raises:
            ProviderRejectedError: Stripe refused the account (e.g. country)
            ProviderUnavailableError: Stripe could not be reached
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_account",
            "country": country,
            "business_type": business_type,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            account = stripe.Account.create(
                type="express",
                email=email,
                country=country,
                business_type=business_type,
                company={"name": business_name} if business_name else None,
                capabilities={
                    "card_payments": {"requested": True},
                    "transfers": {"requested": True},
                },
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "account_id": account.id,
                    "duration_ms": duration_ms,
                },
            )
            return cls._to_account_result(account)

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def update_account(
        cls,
        account_id: str,
        business_name: str,
        business_type: str,
    ) -> AccountResult:
        """Update the business details of a connected account."""
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "update_account",
            "account_id": account_id,
            "business_type": business_type,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            account = stripe.Account.modify(
                account_id,
                business_type=business_type,
                company={"name": business_name},
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={**log_context, "duration_ms": duration_ms},
            )
            return cls._to_account_result(account)

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def retrieve_account(
        cls,
        account_id: str,
    ) -> AccountResult:
        """Retrieve a connected account and its capability flags."""
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "retrieve_account",
            "account_id": account_id,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            account = stripe.Account.retrieve(account_id)

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "charges_enabled": account.charges_enabled,
                    "payouts_enabled": account.payouts_enabled,
                    "details_submitted": account.details_submitted,
                    "duration_ms": duration_ms,
                },
            )
            return cls._to_account_result(account)

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def create_account_link(
        cls,
        account_id: str,
        refresh_url: str,
        return_url: str,
    ) -> str:
        """
        Create a single-use hosted onboarding link.

        Returns:
            The link URL. It expires quickly and must not be stored.
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_account_link",
            "account_id": account_id,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            link = stripe.AccountLink.create(
                account=account_id,
                refresh_url=refresh_url,
                return_url=return_url,
                type="account_onboarding",
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={**log_context, "duration_ms": duration_ms},
            )
            return link.url

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Transfers
    # =========================================================================

    @classmethod
    def create_transfer(
        cls,
        amount_minor: int,
        currency: str,
        destination_account: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> TransferResult:
        """
        Create a transfer to a connected account.

        Raises:
            ProviderRejectedError: Invalid destination, insufficient platform balance
            ProviderUnavailableError: Stripe could not be reached
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_transfer",
            "amount_minor": amount_minor,
            "currency": currency,
            "destination_account": destination_account,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            transfer = stripe.Transfer.create(
                amount=amount_minor,
                currency=currency,
                destination=destination_account,
                metadata=metadata or {},
                idempotency_key=idempotency_key,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "transfer_id": transfer.id,
                    "duration_ms": duration_ms,
                },
            )
            return cls._to_transfer_result(transfer)

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def retrieve_transfer(
        cls,
        transfer_id: str,
    ) -> TransferResult:
        """Retrieve a Transfer by ID; used by withdrawal reconciliation."""
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "retrieve_transfer",
            "transfer_id": transfer_id,
        }

        start_time = time.time()
        logger.debug("Starting Stripe operation", extra=log_context)

        try:
            transfer = stripe.Transfer.retrieve(transfer_id)

            duration_ms = (time.time() - start_time) * 1000
            logger.debug(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "reversed": transfer.reversed,
                    "duration_ms": duration_ms,
                },
            )
            return cls._to_transfer_result(transfer)

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def list_recent_transfers(
        cls,
        created_after: datetime,
        page_size: int = 100,
    ) -> list[TransferResult]:
        """
        Every Transfer created at or after ``created_after``.

        Stripe returns newest first and the list spans all connected
        accounts, so the pages are followed until has_more is false. Used
        to find transfers whose id was never recorded locally.

        Args:
            created_after: Only return Transfers created at or after this time
            page_size: Transfers fetched per request (capped at 100)
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        created_timestamp = int(created_after.timestamp())

        log_context = {
            "operation": "list_recent_transfers",
            "created_after": created_timestamp,
            "page_size": page_size,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            first_page = stripe.Transfer.list(
                created={"gte": created_timestamp},
                limit=min(page_size, 100),
            )
            results = [
                cls._to_transfer_result(transfer)
                for transfer in first_page.auto_paging_iter()
            ]

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "count": len(results),
                    "duration_ms": duration_ms,
                },
            )
            return results

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Payment Intents
    # =========================================================================

    @classmethod
    def create_payment_intent(
        cls,
        amount_minor: int,
        currency: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> PaymentIntentResult:
        """Create a PaymentIntent for a checkout."""
        cls._configure_stripe()
        logger = cls.get_logger()

        log_context = {
            "operation": "create_payment_intent",
            "amount_minor": amount_minor,
            "currency": currency,
            "idempotency_key": idempotency_key,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            intent = stripe.PaymentIntent.create(
                amount=amount_minor,
                currency=currency,
                metadata=metadata or {},
                automatic_payment_methods={"enabled": True},
                idempotency_key=idempotency_key,
            )

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "payment_intent_id": intent.id,
                    "status": intent.status,
                    "duration_ms": duration_ms,
                },
            )
            return PaymentIntentResult(
                id=intent.id,
                status=intent.status,
                amount_minor=intent.amount,
                currency=intent.currency,
                client_secret=intent.client_secret,
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    @classmethod
    def confirm_payment_intent(
        cls,
        client_secret: str,
        return_url: str,
        payment_method: str | None = None,
    ) -> IntentConfirmationResult:
        """
        Confirm a PaymentIntent, redirecting only if required.

        A card decline is an outcome of the confirmation, not an adapter
        failure: it is returned with status ``requires_payment_method``
        and the processor's customer-facing message.

        Raises:
            ProviderRejectedError: Request refused for non-card reasons
            ProviderUnavailableError: Stripe could not be reached
        """
        cls._configure_stripe()
        logger = cls.get_logger()

        intent_id = client_secret.split("_secret_")[0]
        log_context = {
            "operation": "confirm_payment_intent",
            "payment_intent_id": intent_id,
        }

        start_time = time.time()
        logger.info("Starting Stripe operation", extra=log_context)

        try:
            params: dict[str, Any] = {"return_url": return_url}
            if payment_method:
                params["payment_method"] = payment_method
            intent = stripe.PaymentIntent.confirm(intent_id, **params)

            duration_ms = (time.time() - start_time) * 1000
            logger.info(
                "Stripe operation completed",
                extra={
                    **log_context,
                    "status": intent.status,
                    "duration_ms": duration_ms,
                },
            )

            next_action_url = None
            next_action = intent.next_action
            if next_action is not None:
                redirect = next_action.get("redirect_to_url") or {}
                next_action_url = redirect.get("url")

            last_error = intent.last_payment_error
            return IntentConfirmationResult(
                intent_id=intent.id,
                status=intent.status,
                error_message=last_error.get("message") if last_error else None,
                error_code=last_error.get("code") if last_error else None,
                next_action_url=next_action_url,
            )

        except stripe.CardError as e:
            duration_ms = (time.time() - start_time) * 1000
            logger.warning(
                "Card error from Stripe",
                extra={
                    **log_context,
                    "stripe_code": e.code,
                    "decline_code": getattr(e, "decline_code", None),
                    "duration_ms": duration_ms,
                },
            )
            return IntentConfirmationResult(
                intent_id=intent_id,
                status="requires_payment_method",
                error_message=e.user_message,
                error_code=e.code,
            )

        except Exception as e:
            duration_ms = (time.time() - start_time) * 1000
            cls._handle_stripe_error(e, log_context, duration_ms)
            raise

    # =========================================================================
    # Webhook Verification
    # =========================================================================

    @classmethod
    def verify_webhook_signature(
        cls,
        payload: bytes,
        signature: str,
    ) -> dict[str, Any]:
        """
        Verify a webhook signature and parse the event.

        Stripe signs ``{timestamp}.{payload}`` with HMAC-SHA256; the SDK
        compares signatures in constant time and rejects stale timestamps.

        Returns:
            Parsed event dict

        Raises:
            InvalidSignatureError: Signature missing, wrong, or too old,
                or the payload is not JSON
        """
        tolerance = getattr(settings, "STRIPE_WEBHOOK_TOLERANCE_SECONDS", 300)
        body = payload.decode("utf-8") if isinstance(payload, bytes) else payload
        try:
            stripe.WebhookSignature.verify_header(
                body,
                signature,
                settings.STRIPE_WEBHOOK_SECRET,
                tolerance,
            )
        except stripe.SignatureVerificationError as e:
            cls.get_logger().warning(
                "Webhook signature verification failed",
                extra={"error": str(e)},
            )
            raise InvalidSignatureError(
                "Invalid webhook signature",
                details={"reason": "signature_verification_failed"},
            ) from e

        try:
            event = json.loads(body)
        except ValueError as e:
            raise InvalidSignatureError(
                "Webhook payload is not valid JSON",
                details={"reason": "invalid_payload"},
            ) from e
        if not isinstance(event, dict):
            raise InvalidSignatureError(
                "Webhook payload is not an event object",
                details={"reason": "invalid_payload"},
            )
        return event

    # =========================================================================
    # Error Handling
    # =========================================================================

    @classmethod
    def _handle_stripe_error(
        cls,
        error: Exception,
        log_context: dict[str, Any],
        duration_ms: float,
    ) -> None:
        """
        Translate Stripe exceptions to provider errors.

        The full Stripe error is logged here and nowhere else. The raised
        exception carries a generic message and, for rejections, only the
        Stripe error code as ``reason_code``.

        Raises:
            ProviderRejectedError: Invalid request, authentication, card errors
            ProviderUnavailableError: Rate limit, connection, 5xx, unknown
        """
        logger = cls.get_logger()
        log_context = {**log_context, "duration_ms": duration_ms}

        if isinstance(error, stripe.CardError):
            logger.warning(
                "Card error from Stripe",
                extra={
                    **log_context,
                    "stripe_code": error.code,
                    "decline_code": getattr(error, "decline_code", None),
                },
            )
            raise ProviderRejectedError(
                "The payment processor declined the request",
                reason_code=error.code or "card_error",
            )

        elif isinstance(error, stripe.InvalidRequestError):
            logger.error(
                "Invalid request to Stripe",
                extra={
                    **log_context,
                    "stripe_code": error.code,
                    "stripe_param": getattr(error, "param", None),
                    "stripe_message": str(error),
                },
            )
            raise ProviderRejectedError(
                "The payment processor rejected the request",
                reason_code=error.code or "invalid_request",
            )

        elif isinstance(error, stripe.AuthenticationError):
            logger.critical(
                "Stripe authentication failed - check API key",
                extra=log_context,
            )
            raise ProviderRejectedError(
                "The payment processor rejected the request",
                reason_code="authentication_error",
            )

        elif isinstance(error, stripe.RateLimitError):
            logger.warning("Rate limited by Stripe", extra=log_context)
            raise ProviderUnavailableError(
                "The payment processor is busy. Please retry.",
                reason_code="rate_limit",
            )

        elif isinstance(error, stripe.APIConnectionError):
            logger.error(
                "Connection error to Stripe",
                extra=log_context,
                exc_info=True,
            )
            raise ProviderUnavailableError(
                "Could not reach the payment processor. Please retry.",
                reason_code="api_connection_error",
            )

        elif isinstance(error, stripe.APIError):
            logger.error(
                "Stripe API error",
                extra=log_context,
                exc_info=True,
            )
            raise ProviderUnavailableError(
                "The payment processor returned an error. Please retry.",
                reason_code="api_error",
            )

        else:
            logger.error(
                f"Unexpected error from Stripe: {type(error).__name__}",
                extra=log_context,
                exc_info=True,
            )
            raise ProviderUnavailableError(
                "The payment processor returned an unexpected error.",
                reason_code="unknown_error",
            )


__all__ = [
    "AccountResult",
    "TransferResult",
    "PaymentIntentResult",
    "IntentConfirmationResult",
    "IdempotencyKeyGenerator",
    "StripeAdapter",
    "backoff_delay",
    "is_retryable_provider_error",
]
