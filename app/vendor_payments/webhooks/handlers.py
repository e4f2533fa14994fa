"""
Webhook event handlers for Stripe events.

Each handler translates one Stripe event type into a call on the
vendor payment services and returns a ServiceResult. Handlers run inside
the transaction opened by WebhookIngestionService.process, so the state
change and the PROCESSED mark commit together.

Usage:
    from vendor_payments.webhooks.handlers import dispatch_webhook, register_handler

    @register_handler("custom.event")
    def handle_custom_event(webhook_event: WebhookEvent) -> ServiceResult:
        ...

    result = dispatch_webhook(webhook_event)
"""

from __future__ import annotations

import logging
from typing import Callable

from core.services import ServiceResult
from vendor_payments.models import WebhookEvent
from vendor_payments.services import (
    AccountLifecycleService,
    PaymentConfirmationService,
    PayoutLedgerService,
)
from vendor_payments.services.accounts import observation_time
from vendor_payments.state_machines import CapabilityFlags, StatusChangeSource

logger = logging.getLogger(__name__)


# =============================================================================
# Handler Registry
# =============================================================================


WEBHOOK_HANDLERS: dict[str, Callable[[WebhookEvent], ServiceResult]] = {}


def register_handler(event_type: str) -> Callable:
    """
    Decorator to register a webhook event handler.

    Args:
        event_type: The Stripe event type (e.g., "transfer.paid")
    """

    def decorator(func: Callable[[WebhookEvent], ServiceResult]) -> Callable:
        WEBHOOK_HANDLERS[event_type] = func
        logger.debug(f"Registered webhook handler for {event_type}")
        return func

    return decorator


def dispatch_webhook(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Dispatch a webhook event to its handler.

    Unknown event types are acknowledged with success so Stripe stops
    redelivering them.
    """
    handler = WEBHOOK_HANDLERS.get(webhook_event.event_type)

    if not handler:
        logger.info(
            f"No handler registered for event type: {webhook_event.event_type}",
            extra={"processor_event_id": webhook_event.processor_event_id},
        )
        return ServiceResult.success(None)

    logger.info(
        f"Dispatching {webhook_event.event_type} to handler",
        extra={"processor_event_id": webhook_event.processor_event_id},
    )

    return handler(webhook_event)


def _missing_object_id(webhook_event: WebhookEvent) -> ServiceResult:
    logger.error(
        f"{webhook_event.event_type}: Could not extract object id",
        extra={"processor_event_id": webhook_event.processor_event_id},
    )
    return ServiceResult.failure(
        "Could not extract object id from webhook",
        error_code="INVALID_WEBHOOK_PAYLOAD",
    )


# =============================================================================
# Account Handlers
# =============================================================================


@register_handler("account.updated")
def handle_account_updated(webhook_event: WebhookEvent) -> ServiceResult:
    """
    Apply the capability flags carried by account.updated.

    The event's ``created`` time is the observation time, so a snapshot
    older than the stored flags is ignored.
    """
    data_object = webhook_event.get_object()
    account_id = data_object.get("id")
    if not account_id:
        return _missing_object_id(webhook_event)

    flags = CapabilityFlags(
        charges_enabled=bool(data_object.get("charges_enabled", False)),
        payouts_enabled=bool(data_object.get("payouts_enabled", False)),
        details_submitted=bool(data_object.get("details_submitted", False)),
    )

    logger.info(
        "Processing account.updated",
        extra={
            "processor_event_id": webhook_event.processor_event_id,
            "account_id": account_id,
            **flags.as_dict(),
        },
    )

    applied = AccountLifecycleService().apply_capability_snapshot(
        processor_account_id=account_id,
        flags=flags,
        observed_at=webhook_event.get_event_created_at() or observation_time(),
        source=StatusChangeSource.WEBHOOK,
        event_id=webhook_event.processor_event_id,
    )
    return ServiceResult.success({"applied": applied})


# =============================================================================
# Transfer Handlers
# =============================================================================


@register_handler("transfer.created")
def handle_transfer_created(webhook_event: WebhookEvent) -> ServiceResult:
    """Attach the transfer id to its withdrawal via metadata.withdrawal_id."""
    data_object = webhook_event.get_object()
    transfer_id = data_object.get("id")
    if not transfer_id:
        return _missing_object_id(webhook_event)

    withdrawal_id = (data_object.get("metadata") or {}).get("withdrawal_id")
    livemode = data_object.get("livemode")

    return PayoutLedgerService().attach_transfer(
        withdrawal_id,
        transfer_id,
        livemode=bool(livemode) if livemode is not None else None,
    )


@register_handler("transfer.paid")
def handle_transfer_paid(webhook_event: WebhookEvent) -> ServiceResult:
    """PROCESSING -> COMPLETED."""
    data_object = webhook_event.get_object()
    transfer_id = data_object.get("id")
    if not transfer_id:
        return _missing_object_id(webhook_event)

    withdrawal_id = (data_object.get("metadata") or {}).get("withdrawal_id")
    return PayoutLedgerService().complete_withdrawal(transfer_id, withdrawal_id=withdrawal_id)


@register_handler("transfer.failed")
def handle_transfer_failed(webhook_event: WebhookEvent) -> ServiceResult:
    """PROCESSING -> FAILED."""
    data_object = webhook_event.get_object()
    transfer_id = data_object.get("id")
    if not transfer_id:
        return _missing_object_id(webhook_event)

    withdrawal_id = (data_object.get("metadata") or {}).get("withdrawal_id")
    reason = data_object.get("failure_message") or data_object.get("failure_code") or "Transfer failed"
    return PayoutLedgerService().fail_withdrawal(
        transfer_id,
        reason,
        withdrawal_id=withdrawal_id,
    )


@register_handler("transfer.reversed")
def handle_transfer_reversed(webhook_event: WebhookEvent) -> ServiceResult:
    """PROCESSING -> FAILED; a completed withdrawal is never reopened."""
    data_object = webhook_event.get_object()
    transfer_id = data_object.get("id")
    if not transfer_id:
        return _missing_object_id(webhook_event)

    withdrawal_id = (data_object.get("metadata") or {}).get("withdrawal_id")
    return PayoutLedgerService().fail_withdrawal(
        transfer_id,
        "Transfer reversed",
        withdrawal_id=withdrawal_id,
    )


# =============================================================================
# Payment Intent Handlers
# =============================================================================


def _apply_intent_event(webhook_event: WebhookEvent, intent_status: str | None = None) -> ServiceResult:
    data_object = webhook_event.get_object()
    intent_id = data_object.get("id")
    if not intent_id:
        return _missing_object_id(webhook_event)

    last_error = data_object.get("last_payment_error") or {}
    next_action = data_object.get("next_action") or {}
    redirect = next_action.get("redirect_to_url") or {}

    result = PaymentConfirmationService().apply_intent_status(
        processor_intent_id=intent_id,
        intent_status=intent_status or data_object.get("status", ""),
        error_message=last_error.get("message"),
        error_code=last_error.get("code"),
        next_action_url=redirect.get("url"),
    )
    return result.map(lambda outcome: {"status": outcome.status})


@register_handler("payment_intent.succeeded")
def handle_payment_intent_succeeded(webhook_event: WebhookEvent) -> ServiceResult:
    return _apply_intent_event(webhook_event, "succeeded")


@register_handler("payment_intent.payment_failed")
def handle_payment_intent_failed(webhook_event: WebhookEvent) -> ServiceResult:
    return _apply_intent_event(webhook_event, "requires_payment_method")


@register_handler("payment_intent.canceled")
def handle_payment_intent_canceled(webhook_event: WebhookEvent) -> ServiceResult:
    return _apply_intent_event(webhook_event, "canceled")


@register_handler("payment_intent.requires_action")
def handle_payment_intent_requires_action(webhook_event: WebhookEvent) -> ServiceResult:
    return _apply_intent_event(webhook_event, "requires_action")


__all__ = [
    "WEBHOOK_HANDLERS",
    "dispatch_webhook",
    "register_handler",
]
