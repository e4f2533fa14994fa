"""
Background jobs for vendor payments.

Webhooks are applied synchronously by the endpoint; these tasks pick up
whatever that path could not finish:

    process_webhook_event   one stored event, retried with backoff
    retry_failed_webhooks   beat: re-queue FAILED events under the ceiling
    cleanup_stuck_webhooks  beat: PROCESSING events orphaned by a crash
    reconcile_withdrawals   beat: PROCESSING withdrawals no webhook settled

Beat schedules are created by migration 0002_periodic_tasks. Stored
events are kept forever so a late redelivery always finds its row.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from uuid import UUID

from celery import shared_task
from django.conf import settings
from django.utils import timezone

from vendor_payments.models import WebhookEvent
from vendor_payments.state_machines import WebhookEventStatus

logger = logging.getLogger(__name__)

MAX_WEBHOOK_RETRIES = getattr(settings, "WEBHOOK_MAX_RETRIES", 5)
RETRY_BATCH_SIZE = 100


def _outcome(status: str, webhook_event_id, **extra) -> dict:
    return {"status": status, "webhook_event_id": str(webhook_event_id), **extra}


@shared_task(
    bind=True,
    autoretry_for=(Exception,),
    retry_backoff=True,
    retry_backoff_max=300,
    retry_kwargs={"max_retries": MAX_WEBHOOK_RETRIES},
    acks_late=True,
)
def process_webhook_event(self, webhook_event_id: str) -> dict:
    """
    Run the handler for one stored event.

    Unexpected exceptions propagate so Celery retries the task; a handler
    that reports failure leaves the event FAILED for retry_failed_webhooks.
    """
    from vendor_payments.webhooks.ingestion import WebhookIngestionService

    webhook_event = WebhookEvent.objects.filter(id=UUID(str(webhook_event_id))).first()
    if webhook_event is None:
        logger.error("Queued webhook event no longer exists", extra={"webhook_event_id": str(webhook_event_id)})
        return _outcome("not_found", webhook_event_id)

    if webhook_event.is_processed:
        logger.info(
            "Skipping webhook event that is already applied",
            extra={"processor_event_id": webhook_event.processor_event_id},
        )
        return _outcome("already_processed", webhook_event_id)

    result = WebhookIngestionService().process(webhook_event)
    if not result:
        return _outcome("handler_failed", webhook_event_id, error=result.error)
    return _outcome(
        "processed",
        webhook_event_id,
        processor_event_id=webhook_event.processor_event_id,
    )


@shared_task
def retry_failed_webhooks() -> dict:
    """Queue FAILED events whose retry_count is still below the ceiling, oldest first."""
    retryable = list(
        WebhookEvent.objects.filter(
            status=WebhookEventStatus.FAILED,
            retry_count__lt=MAX_WEBHOOK_RETRIES,
        )
        .order_by("created_at")
        .values_list("id", flat=True)[:RETRY_BATCH_SIZE]
    )

    for webhook_event_id in retryable:
        process_webhook_event.delay(str(webhook_event_id))

    if retryable:
        logger.info("Re-queued failed webhook events", extra={"queued_count": len(retryable)})
    return {"queued_count": len(retryable)}


@shared_task
def cleanup_stuck_webhooks() -> dict:
    """
    Flip PROCESSING events untouched for WEBHOOK_STUCK_AFTER_MINUTES to FAILED.

    A worker that dies mid-handler leaves its event PROCESSING, and nothing
    else would ever pick it up again.
    """
    now = timezone.now()
    stuck_after = timedelta(minutes=getattr(settings, "WEBHOOK_STUCK_AFTER_MINUTES", 30))

    stuck = WebhookEvent.objects.filter(
        status=WebhookEventStatus.PROCESSING,
        updated_at__lt=now - stuck_after,
    )
    stuck_ids = [str(pk) for pk in stuck.values_list("id", flat=True)]
    reset_count = stuck.update(
        status=WebhookEventStatus.FAILED,
        error_message="Processing timed out; reset for retry",
        updated_at=now,
    )

    if reset_count:
        logger.warning(
            "Reset webhook events stuck in processing",
            extra={"reset_count": reset_count, "webhook_event_ids": stuck_ids},
        )
    return {"reset_count": reset_count}


@shared_task
def reconcile_withdrawals(older_than_minutes: int | None = None) -> dict:
    """Ask Stripe about PROCESSING withdrawals older than the threshold and settle them."""
    from vendor_payments.services import PayoutLedgerService

    older_than = None if older_than_minutes is None else timedelta(minutes=older_than_minutes)
    result = PayoutLedgerService().reconcile_stale_withdrawals(older_than=older_than)
    return {
        "checked": result.checked,
        "completed": result.completed,
        "failed": result.failed,
        "unresolved": result.unresolved,
        "flagged": result.flagged,
    }
