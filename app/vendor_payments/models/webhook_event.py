"""
WebhookEvent model for processor webhook deduplication.

Every verified event received from Stripe is stored here before it is
applied. The unique processor_event_id is the dedup key: an event whose
row is PROCESSED is never applied again, however many times Stripe
redelivers it.

Rows are never deleted, since that would let a late redelivery of an
old event be applied a second time.
"""

from __future__ import annotations

from datetime import datetime, timezone as dt_timezone

from django.conf import settings
from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from vendor_payments.state_machines import WebhookEventStatus


class WebhookEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    One row per Stripe event id, applied at most once.

    The webhook view verifies the signature, then get-or-creates the row.
    A PROCESSED row means the delivery is a duplicate and is acknowledged
    untouched. Otherwise the row is claimed as PROCESSING (retry_count
    goes up), and the handler runs in the same transaction that marks it
    PROCESSED. A handler failure leaves it FAILED for the retry task.

    payload is the verified event body; handlers read data.object from it.
    """

    processor_event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe Event ID (evt_xxx) - unique constraint for dedup",
    )

    event_type = models.CharField(
        max_length=100,
        db_index=True,
        help_text="Stripe event type (e.g., 'account.updated')",
    )

    payload = models.JSONField(
        help_text="Full verified webhook payload",
    )

    status = models.CharField(
        max_length=20,
        choices=WebhookEventStatus.choices,
        default=WebhookEventStatus.PENDING,
        db_index=True,
        help_text="Current processing status",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the event was successfully applied",
    )

    error_message = models.TextField(
        null=True,
        blank=True,
        help_text="Error message if processing failed",
    )

    retry_count = models.PositiveSmallIntegerField(
        default=0,
        help_text="Number of processing attempts",
    )

    class Meta:
        db_table = "processor_webhook_events"
        ordering = ["-created_at"]
        verbose_name = "Webhook Event"
        verbose_name_plural = "Webhook Events"
        indexes = [
            models.Index(fields=["status", "created_at"], name="processor_w_status_8c4d2a_idx"),
            models.Index(fields=["event_type", "created_at"], name="processor_w_event_t_1f6b3e_idx"),
            models.Index(fields=["status", "retry_count"], name="processor_w_status_6e9a7c_idx"),
        ]

    def __str__(self) -> str:
        return f"WebhookEvent({self.processor_event_id}, {self.event_type})"

    @property
    def is_processed(self) -> bool:
        return self.status == WebhookEventStatus.PROCESSED

    @property
    def can_retry(self) -> bool:
        return (
            self.status == WebhookEventStatus.FAILED
            and self.retry_count < getattr(settings, "WEBHOOK_MAX_RETRIES", 5)
        )

    # mark_* only set fields; the caller saves inside its own transaction

    def mark_processed(self) -> None:
        self.status = WebhookEventStatus.PROCESSED
        self.processed_at = timezone.now()
        self.error_message = None

    def mark_failed(self, error_message: str) -> None:
        self.status = WebhookEventStatus.FAILED
        self.error_message = error_message

    def get_object(self) -> dict:
        """Return payload.data.object, or an empty dict if absent."""
        try:
            obj = self.payload.get("data", {}).get("object", {})
        except (AttributeError, TypeError):
            return {}
        return obj if isinstance(obj, dict) else {}

    def get_object_id(self) -> str | None:
        return self.get_object().get("id")

    def get_event_created_at(self) -> datetime | None:
        """
        Processor-side creation time of the event (payload ``created``).

        Used as the observation time of snapshots carried by the event.
        """
        created = self.payload.get("created") if isinstance(self.payload, dict) else None
        if created is None:
            return None
        try:
            return datetime.fromtimestamp(int(created), tz=dt_timezone.utc)
        except (TypeError, ValueError, OverflowError):
            return None
