"""
Payment confirmation for checkout.

The confirmation protocol (submit -> confirm intent -> classify) is kept
apart from presentation: resolve_confirmation() is a pure state machine
that turns a PaymentIntent status into the next PaymentAttempt status
and a customer-safe message, and classify_error_message() is a pure
function deciding whether a processor message may be shown to the
customer at all.

Usage:
    from vendor_payments.services import PaymentConfirmationService

    service = PaymentConfirmationService()
    session = service.start_checkout(order_id, amount_minor=2500, currency="gbp")
    outcome = service.confirm_payment(session.attempt_id, return_url)
    if outcome.next_action_url:
        redirect(outcome.next_action_url)
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field

from django.conf import settings

from core.services import BaseService, ServiceResult
from vendor_payments.adapters import IdempotencyKeyGenerator, StripeAdapter
from vendor_payments.adapters.protocols import PaymentProcessor
from vendor_payments.collaborators import OrderService, get_order_service
from vendor_payments.exceptions import (
    OrderAlreadyPaidError,
    PaymentNotFoundError,
    PaymentValidationError,
)
from vendor_payments.models import PaymentAttempt
from vendor_payments.money import normalize_currency
from vendor_payments.state_machines import PaymentAttemptStatus, PaymentErrorCategory

# =============================================================================
# Customer Messages
# =============================================================================

GENERIC_PAYMENT_ERROR_MESSAGE = "An unexpected error occurred. Please try again."

SUCCEEDED_MESSAGE = "Payment succeeded. Finalising your order."
PROCESSING_MESSAGE = "Your payment is processing. We'll update you once it's complete."
FAILED_MESSAGE = "Your payment was not successful, please try again."
REQUIRES_ACTION_MESSAGE = "Additional authentication is required to complete your payment."
CANCELED_MESSAGE = "This payment was canceled."
UNKNOWN_STATUS_MESSAGE = "Payment status unknown. Please check your card details and try again."
DUPLICATE_CHARGE_MESSAGE = (
    "This order has already been paid. The duplicate charge will be refunded."
)

# Substrings that mark a processor message as internal. Matched
# case-insensitively; extended by PAYMENT_ERROR_TECHNICAL_INDICATORS.
DEFAULT_TECHNICAL_INDICATORS: tuple[str, ...] = (
    "stripe",
    "paymentintent",
    "payment_intent",
    "setupintent",
    "setup_intent",
    "client_secret",
    "_secret",
    "pi_",
    "seti_",
    "acct_",
    "sk_",
    "pk_",
    "api key",
    "api_key",
    "unexpected state",
    "no such",
    "param",
    "invalid request",
    "idempotency",
    "webhook",
    "endpoint",
    "http",
    "status code",
    "timeout",
    "internal",
)

CARD_DECLINE_CODES = frozenset(
    {
        "card_declined",
        "expired_card",
        "incorrect_cvc",
        "incorrect_number",
        "incorrect_zip",
        "insufficient_funds",
        "invalid_cvc",
        "invalid_expiry_month",
        "invalid_expiry_year",
        "invalid_number",
        "lost_card",
        "stolen_card",
    }
)

AUTHENTICATION_ERROR_CODES = frozenset(
    {
        "authentication_required",
        "payment_intent_authentication_failure",
        "setup_intent_authentication_failure",
    }
)


def get_technical_indicators() -> tuple[str, ...]:
    extra = getattr(settings, "PAYMENT_ERROR_TECHNICAL_INDICATORS", None) or ()
    return DEFAULT_TECHNICAL_INDICATORS + tuple(
        indicator.lower() for indicator in extra if indicator
    )


def classify_error_message(
    message: str | None,
    indicators: Iterable[str] | None = None,
) -> str:
    """
    Return a message that is safe to show the customer.

    Args:
        message: Raw error text from the processor or client validation
        indicators: Substrings marking internal detail; defaults to
            the built-in list plus PAYMENT_ERROR_TECHNICAL_INDICATORS

    Returns:
        GENERIC_PAYMENT_ERROR_MESSAGE if the message is empty or contains
        any indicator (case-insensitive), otherwise the message unchanged

    Example:
        classify_error_message("paymentintent is in an unexpected state")
        # "An unexpected error occurred. Please try again."
        classify_error_message("Your card was declined.")
        # "Your card was declined."
    """
    if not message or not message.strip():
        return GENERIC_PAYMENT_ERROR_MESSAGE

    if indicators is None:
        indicators = get_technical_indicators()

    lowered = message.lower()
    for indicator in indicators:
        if indicator and indicator.lower() in lowered:
            return GENERIC_PAYMENT_ERROR_MESSAGE
    return message


def categorize_error(error_code: str | None, current_status: str) -> str:
    if error_code in AUTHENTICATION_ERROR_CODES:
        return PaymentErrorCategory.AUTHENTICATION_FAILED
    if error_code in CARD_DECLINE_CODES:
        return PaymentErrorCategory.CARD_DECLINED
    if error_code is None:
        if current_status == PaymentAttemptStatus.REQUIRES_ACTION:
            return PaymentErrorCategory.AUTHENTICATION_FAILED
        return PaymentErrorCategory.PAYMENT_METHOD_REQUIRED
    return PaymentErrorCategory.PROCESSING_ERROR


# =============================================================================
# Pure State Machine
# =============================================================================


@dataclass(frozen=True)
class Resolution:
    """Next attempt status and what to tell the customer."""

    status: str
    message: str
    is_error: bool = False
    error_category: str | None = None


DUPLICATE_CHARGE_RESOLUTION = Resolution(
    PaymentAttemptStatus.FAILED,
    DUPLICATE_CHARGE_MESSAGE,
    is_error=True,
    error_category=PaymentErrorCategory.DUPLICATE_CHARGE,
)


def resolve_confirmation(
    current_status: str,
    intent_status: str,
    error_message: str | None = None,
    error_code: str | None = None,
) -> Resolution:
    """
    Map a PaymentIntent status onto the PaymentAttempt state machine.

    Terminal attempts never move. ``processing`` and unrecognized intent
    statuses leave the attempt where it is.
    """
    if current_status == PaymentAttemptStatus.SUCCEEDED:
        return Resolution(PaymentAttemptStatus.SUCCEEDED, SUCCEEDED_MESSAGE)
    if current_status == PaymentAttemptStatus.FAILED:
        return Resolution(PaymentAttemptStatus.FAILED, FAILED_MESSAGE, is_error=True)
    if current_status == PaymentAttemptStatus.CANCELED:
        return Resolution(PaymentAttemptStatus.CANCELED, CANCELED_MESSAGE, is_error=True)

    if intent_status == "succeeded":
        return Resolution(PaymentAttemptStatus.SUCCEEDED, SUCCEEDED_MESSAGE)

    if intent_status == "processing":
        return Resolution(current_status, PROCESSING_MESSAGE)

    if intent_status == "requires_action":
        return Resolution(PaymentAttemptStatus.REQUIRES_ACTION, REQUIRES_ACTION_MESSAGE)

    if intent_status == "canceled":
        return Resolution(PaymentAttemptStatus.CANCELED, CANCELED_MESSAGE, is_error=True)

    if intent_status == "requires_payment_method" or error_message:
        message = (
            classify_error_message(error_message) if error_message else FAILED_MESSAGE
        )
        return Resolution(
            PaymentAttemptStatus.FAILED,
            message,
            is_error=True,
            error_category=categorize_error(error_code, current_status),
        )

    return Resolution(current_status, UNKNOWN_STATUS_MESSAGE, is_error=True)


# =============================================================================
# Result Types
# =============================================================================


@dataclass
class CheckoutSession:
    """Returned once per checkout; the client secret goes to the browser."""

    attempt_id: uuid.UUID
    client_secret: str = field(repr=False)
    amount_minor: int = 0
    currency: str = ""


@dataclass
class ConfirmationOutcome:
    attempt_id: uuid.UUID
    status: str
    message: str
    is_error: bool = False
    next_action_url: str | None = None
    error_category: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status == PaymentAttemptStatus.SUCCEEDED


# =============================================================================
# Service
# =============================================================================


class PaymentConfirmationService(BaseService):
    """
    Drive a checkout PaymentAttempt to a terminal state.

    State Flow:
        INITIATED -> {SUCCEEDED | FAILED | REQUIRES_ACTION | CANCELED}
        REQUIRES_ACTION -> {SUCCEEDED | FAILED | CANCELED}

    The order-paid side effect runs at most once per attempt, claimed
    with a conditional update on order_marked_paid_at in the same
    transaction as the SUCCEEDED transition.
    Only one attempt per order can succeed; a later success is failed
    with the duplicate_charge category and logged for refund.
    """

    def __init__(
        self,
        processor: PaymentProcessor | None = None,
        order_service: OrderService | None = None,
    ):
        self.processor = processor or StripeAdapter
        self.order_service = order_service or get_order_service()

    def start_checkout(
        self,
        order_id: str,
        amount_minor: int,
        currency: str,
    ) -> CheckoutSession:
        """
        Create a PaymentIntent and an INITIATED attempt for an order.

        Raises:
            OrderAlreadyPaidError: The order already has a succeeded attempt
            PaymentValidationError: Non-positive amount or bad currency
        """
        currency = normalize_currency(currency)
        if isinstance(amount_minor, bool) or not isinstance(amount_minor, int) or amount_minor <= 0:
            raise PaymentValidationError(
                "Amount must be a positive integer in minor units",
                details={"amount_minor": amount_minor},
            )

        attempts = PaymentAttempt.objects.filter(order_id=order_id)
        if attempts.filter(status=PaymentAttemptStatus.SUCCEEDED).exists():
            raise OrderAlreadyPaidError(
                "Order has already been paid",
                details={"order_id": order_id},
            )

        attempt_number = attempts.count() + 1
        intent = self.processor.create_payment_intent(
            amount_minor=amount_minor,
            currency=currency,
            idempotency_key=IdempotencyKeyGenerator.generate(
                "create_intent", order_id, attempt=attempt_number
            ),
            metadata={"order_id": str(order_id)},
        )

        attempt = PaymentAttempt.objects.create(
            order_id=order_id,
            processor_intent_id=intent.id,
            client_secret=intent.client_secret,
            amount_minor=amount_minor,
            currency=currency,
        )

        self.get_logger().info(
            "Checkout started",
            extra={
                "order_id": order_id,
                "payment_attempt_id": str(attempt.id),
                "payment_intent_id": intent.id,
                "amount_minor": amount_minor,
                "currency": currency,
            },
        )
        return CheckoutSession(
            attempt_id=attempt.id,
            client_secret=intent.client_secret,
            amount_minor=amount_minor,
            currency=currency,
        )

    def confirm_payment(
        self,
        attempt_id: uuid.UUID | str,
        return_url: str,
        submit: Callable[[], str | None] | None = None,
        payment_method: str | None = None,
    ) -> ConfirmationOutcome:
        """
        Run one confirmation round-trip for an attempt.

        Args:
            attempt_id: PaymentAttempt to confirm
            return_url: Where the customer lands after authentication
            submit: Field validation run before contacting the processor;
                returns an error message or None
            payment_method: Optional PaymentMethod to confirm with

        Returns:
            ConfirmationOutcome with a customer-safe message

        Raises:
            PaymentNotFoundError: Unknown attempt
            OrderAlreadyPaidError: Another attempt paid the order first; this
                charge has been recorded as a duplicate for refund
            ProviderUnavailableError: Stripe unreachable; attempt unchanged
            ProviderRejectedError: Stripe refused the request; attempt unchanged
        """
        logger = self.get_logger()
        attempt = PaymentAttempt.objects.filter(pk=attempt_id).first()
        if attempt is None:
            raise PaymentNotFoundError(
                "Payment attempt not found",
                details={"payment_attempt_id": str(attempt_id)},
            )

        if attempt.is_succeeded:
            logger.info(
                "Attempt already succeeded, skipping confirmation",
                extra={"payment_attempt_id": str(attempt.id)},
            )
            return self._outcome(attempt, resolve_confirmation(attempt.status, "succeeded"))

        if attempt.is_terminal:
            return self._outcome(attempt, resolve_confirmation(attempt.status, ""))

        if submit is not None:
            submit_error = submit()
            if submit_error:
                logger.info(
                    "Payment details failed validation, processor not contacted",
                    extra={"payment_attempt_id": str(attempt.id)},
                )
                return ConfirmationOutcome(
                    attempt_id=attempt.id,
                    status=attempt.status,
                    message=classify_error_message(submit_error),
                    is_error=True,
                )

        result = self.processor.confirm_payment_intent(
            client_secret=attempt.client_secret,
            return_url=return_url,
            payment_method=payment_method,
        )

        outcome = self._apply(
            attempt.pk,
            intent_status=result.status,
            error_message=result.error_message,
            error_code=result.error_code,
            next_action_url=result.next_action_url,
        )
        if outcome.error_category == PaymentErrorCategory.DUPLICATE_CHARGE:
            raise OrderAlreadyPaidError(
                "Order has already been paid",
                details={"order_id": attempt.order_id, "payment_attempt_id": str(attempt.id)},
            )
        return outcome

    def apply_intent_status(
        self,
        processor_intent_id: str,
        intent_status: str,
        error_message: str | None = None,
        error_code: str | None = None,
        next_action_url: str | None = None,
    ) -> ServiceResult[ConfirmationOutcome | None]:
        """
        Apply a PaymentIntent status reported by webhook.

        Unknown intents and conflicting updates to terminal attempts are
        logged and acknowledged so the sender stops redelivering.
        A success for an order another attempt already paid is recorded as
        a duplicate charge (FAILED, duplicate_charge) and acknowledged.
        """
        logger = self.get_logger()
        attempt = (
            PaymentAttempt.objects.filter(processor_intent_id=processor_intent_id)
            .only("id")
            .first()
        )
        if attempt is None:
            logger.info(
                "No payment attempt for intent, ignoring",
                extra={"payment_intent_id": processor_intent_id},
            )
            return ServiceResult.success(None)

        outcome = self._apply(
            attempt.pk,
            intent_status=intent_status,
            error_message=error_message,
            error_code=error_code,
            next_action_url=next_action_url,
        )
        return ServiceResult.success(outcome)

    # =========================================================================
    # Internals
    # =========================================================================

    def _apply(
        self,
        attempt_pk: uuid.UUID,
        intent_status: str,
        error_message: str | None,
        error_code: str | None,
        next_action_url: str | None,
    ) -> ConfirmationOutcome:
        logger = self.get_logger()

        with self.atomic():
            order_id = PaymentAttempt.objects.values_list("order_id", flat=True).get(pk=attempt_pk)
            # Every attempt on the order is locked so only one can become SUCCEEDED.
            siblings = list(
                PaymentAttempt.objects.select_for_update()
                .filter(order_id=order_id)
                .order_by("pk")
            )
            attempt = next(sibling for sibling in siblings if sibling.pk == attempt_pk)
            previous_status = attempt.status
            resolution = resolve_confirmation(
                previous_status, intent_status, error_message, error_code
            )

            if attempt.is_terminal:
                reported = resolve_confirmation(
                    PaymentAttemptStatus.INITIATED, intent_status, error_message, error_code
                )
                if reported.status != previous_status:
                    logger.warning(
                        "Ignoring update for terminal payment attempt",
                        extra={
                            "payment_attempt_id": str(attempt.id),
                            "current_status": previous_status,
                            "intent_status": intent_status,
                        },
                    )
            elif resolution.status != previous_status or (
                resolution.status == PaymentAttemptStatus.REQUIRES_ACTION
            ):
                paid_by = None
                if resolution.status == PaymentAttemptStatus.SUCCEEDED:
                    paid_by = next(
                        (s for s in siblings if s.pk != attempt.pk and s.is_succeeded),
                        None,
                    )
                if paid_by is not None:
                    resolution = DUPLICATE_CHARGE_RESOLUTION
                    self._record_duplicate_charge(attempt, paid_by)
                else:
                    self._transition(attempt, resolution, next_action_url)
                    attempt.save()
                    logger.info(
                        "Payment attempt status changed",
                        extra={
                            "payment_attempt_id": str(attempt.id),
                            "from_status": previous_status,
                            "to_status": attempt.status,
                            "error_category": attempt.last_error_category,
                        },
                    )

            if attempt.is_succeeded:
                self._mark_order_paid(attempt)

        return self._outcome(attempt, resolution)

    def _record_duplicate_charge(self, attempt: PaymentAttempt, paid_by: PaymentAttempt) -> None:
        """
        Fail an attempt whose charge succeeded after the order was already paid.

        The customer has been charged twice; the second charge is left for
        an operator to refund.
        """
        attempt.fail(PaymentErrorCategory.DUPLICATE_CHARGE)
        attempt.save()
        self.get_logger().error(
            "Charge succeeded for an order that is already paid; refund required",
            extra={
                "order_id": attempt.order_id,
                "payment_attempt_id": str(attempt.id),
                "payment_intent_id": attempt.processor_intent_id,
                "paid_payment_attempt_id": str(paid_by.id),
                "amount_minor": attempt.amount_minor,
                "currency": attempt.currency,
            },
        )

    @staticmethod
    def _transition(
        attempt: PaymentAttempt,
        resolution: Resolution,
        next_action_url: str | None,
    ) -> None:
        if resolution.status == PaymentAttemptStatus.SUCCEEDED:
            attempt.succeed()
        elif resolution.status == PaymentAttemptStatus.REQUIRES_ACTION:
            attempt.require_action(next_action_url)
        elif resolution.status == PaymentAttemptStatus.FAILED:
            attempt.fail(resolution.error_category or PaymentErrorCategory.PROCESSING_ERROR)
        elif resolution.status == PaymentAttemptStatus.CANCELED:
            attempt.cancel()

    def _mark_order_paid(self, attempt: PaymentAttempt) -> None:
        """Invoke the order-paid side effect unless already done for this attempt."""
        if not attempt.mark_order_paid_at():
            self.get_logger().info(
                "Order already marked paid for attempt, skipping",
                extra={"payment_attempt_id": str(attempt.id)},
            )
            return

        self.order_service.mark_paid(attempt.order_id, str(attempt.id))
        self.get_logger().info(
            "Order marked paid",
            extra={"order_id": attempt.order_id, "payment_attempt_id": str(attempt.id)},
        )

    @staticmethod
    def _outcome(attempt: PaymentAttempt, resolution: Resolution) -> ConfirmationOutcome:
        return ConfirmationOutcome(
            attempt_id=attempt.id,
            status=attempt.status,
            message=resolution.message,
            is_error=resolution.is_error,
            error_category=resolution.error_category,
            next_action_url=(
                attempt.next_action_url
                if attempt.status == PaymentAttemptStatus.REQUIRES_ACTION
                else None
            ),
        )


__all__ = [
    "GENERIC_PAYMENT_ERROR_MESSAGE",
    "DEFAULT_TECHNICAL_INDICATORS",
    "DUPLICATE_CHARGE_MESSAGE",
    "CheckoutSession",
    "ConfirmationOutcome",
    "PaymentConfirmationService",
    "Resolution",
    "classify_error_message",
    "categorize_error",
    "get_technical_indicators",
    "resolve_confirmation",
]
