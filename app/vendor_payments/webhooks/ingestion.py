"""
Exactly-once application of verified webhook events.

ingest() stores the event keyed by its Stripe event id; process() claims
the row, runs the handler and marks the row PROCESSED in the same
transaction. A row is only PROCESSED if the state change it caused was
committed, and a PROCESSED row is never applied again.
"""

from __future__ import annotations

from typing import Any

from django.db import transaction
from django.db.models import F, Q

from core.services import BaseService, ServiceResult
from vendor_payments.exceptions import DuplicateEventError, PaymentValidationError
from vendor_payments.models import WebhookEvent
from vendor_payments.state_machines import WebhookEventStatus
from vendor_payments.webhooks.handlers import dispatch_webhook


class WebhookIngestionService(BaseService):
    """
    Store and apply processor webhook events.

    Usage:
        service = WebhookIngestionService()
        try:
            event = service.ingest(verified_event)
        except DuplicateEventError:
            return HttpResponse(status=200)
        result = service.process(event)
    """

    def ingest(self, event_data: dict[str, Any]) -> WebhookEvent:
        """
        Record a verified event.

        Raises:
            PaymentValidationError: Event has no id or type
            DuplicateEventError: Event was already processed
        """
        event_id = event_data.get("id")
        event_type = event_data.get("type")
        if not event_id or not event_type:
            raise PaymentValidationError(
                "Webhook event is missing id or type",
                details={"has_id": bool(event_id), "has_type": bool(event_type)},
            )

        webhook_event, created = WebhookEvent.objects.get_or_create(
            processor_event_id=event_id,
            defaults={
                "event_type": event_type,
                "payload": event_data,
                "status": WebhookEventStatus.PENDING,
            },
        )

        if not created and webhook_event.is_processed:
            self.get_logger().info(
                "Webhook already processed",
                extra={"processor_event_id": event_id},
            )
            raise DuplicateEventError(
                "Webhook event already processed",
                details={"processor_event_id": event_id},
            )

        return webhook_event

    def _claim(self, webhook_event: WebhookEvent) -> bool:
        claimed = WebhookEvent.objects.filter(
            Q(status=WebhookEventStatus.PENDING) | Q(status=WebhookEventStatus.FAILED),
            pk=webhook_event.pk,
        ).update(
            status=WebhookEventStatus.PROCESSING,
            retry_count=F("retry_count") + 1,
        )
        return bool(claimed)

    def process(self, webhook_event: WebhookEvent) -> ServiceResult:
        """
        Apply a stored event once.

        Returns:
            Success when the event is (or already was) applied; failure
            when the handler reported one or another worker holds the event

        Raises:
            Exception: Whatever the handler raised, after marking the row FAILED
        """
        logger = self.get_logger()
        log_context = {
            "webhook_event_id": str(webhook_event.id),
            "processor_event_id": webhook_event.processor_event_id,
            "event_type": webhook_event.event_type,
        }

        if not self._claim(webhook_event):
            current = WebhookEvent.objects.get(pk=webhook_event.pk)
            if current.is_processed:
                return ServiceResult.success(None)
            logger.info("Webhook is being processed elsewhere", extra=log_context)
            return ServiceResult.failure(
                "Webhook processing already in progress",
                error_code="WEBHOOK_IN_PROGRESS",
            )

        webhook_event.refresh_from_db(fields=["status", "retry_count"])

        try:
            with transaction.atomic():
                result = dispatch_webhook(webhook_event)
                if result.success:
                    webhook_event.mark_processed()
                    webhook_event.save()
        except Exception as e:
            webhook_event.mark_failed(f"{type(e).__name__}: {e}")
            webhook_event.save()
            logger.exception("Webhook processing failed with exception", extra=log_context)
            raise

        if not result.success:
            error_msg = result.error or "Handler returned failure"
            webhook_event.mark_failed(error_msg)
            webhook_event.save()
            logger.warning(
                f"Webhook handler failed: {error_msg}",
                extra={**log_context, "error_code": result.error_code},
            )
            return result

        logger.info("Webhook processed successfully", extra=log_context)
        return result


__all__ = ["WebhookIngestionService"]
