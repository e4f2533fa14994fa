"""
Withdrawal model for vendor payouts.

A Withdrawal is inserted as PROCESSING before the Stripe transfer is
requested, so a crash after the processor call can never lose the
record. Transfer webhooks (or the reconciliation sweep) then move it to
COMPLETED or FAILED. Terminal rows are never modified again.
"""

from __future__ import annotations

from django.db import models
from django.db.models import F
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from vendor_payments.money import from_minor_units
from vendor_payments.state_machines import WithdrawalStatus

TERMINAL_WITHDRAWAL_STATUSES = (
    WithdrawalStatus.COMPLETED,
    WithdrawalStatus.FAILED,
)

# Statuses whose amounts are committed against the vendor's earnings
BALANCE_COMMITTED_STATUSES = (
    WithdrawalStatus.PROCESSING,
    WithdrawalStatus.COMPLETED,
)


class Withdrawal(UUIDPrimaryKeyMixin, BaseModel):
    """
    Money moving from the platform to a vendor's connected account.

    State Flow:
        PROCESSING -> COMPLETED (transfer.paid webhook or reconciliation)
        PROCESSING -> FAILED (processor error, transfer.failed/reversed)

    Fields:
        vendor_id: Owning vendor
        amount_minor: Amount in smallest currency unit
        currency: ISO 4217 currency code (lowercase)
        status: Current FSM state
        processor_transfer_id: Stripe Transfer ID (tr_xxx), set once accepted
        estimated_arrival: Date the vendor can expect the funds
        processed_at: When the withdrawal reached a terminal state
        failure_reason: Internal failure description (never shown to vendors)
        mock_mode: True for transfers made with Stripe test keys
        version: Optimistic locking version
        metadata: Flexible JSON storage
    """

    vendor_id = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Identifier of the owning vendor",
    )

    amount_minor = models.PositiveBigIntegerField(
        help_text="Withdrawal amount in smallest currency unit (e.g., pence)",
    )

    currency = models.CharField(
        max_length=3,
        help_text="ISO 4217 currency code (lowercase)",
    )

    status = FSMField(
        default=WithdrawalStatus.PROCESSING,
        choices=WithdrawalStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the withdrawal (managed by FSM)",
    )

    processor_transfer_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe Transfer ID (tr_xxx)",
    )

    estimated_arrival = models.DateField(
        null=True,
        blank=True,
        help_text="Estimated date the funds reach the vendor",
    )

    processed_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="When the withdrawal completed or failed",
    )

    failure_reason = models.TextField(
        null=True,
        blank=True,
        help_text="Failure details for operators",
    )

    mock_mode = models.BooleanField(
        default=False,
        help_text="Whether the transfer was made in Stripe test mode",
    )

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary JSON metadata for extensibility",
    )

    class Meta:
        db_table = "withdrawals"
        ordering = ["-created_at"]
        verbose_name = "Withdrawal"
        verbose_name_plural = "Withdrawals"
        indexes = [
            models.Index(fields=["vendor_id", "status"], name="withdrawals_vendor__4e8a1c_idx"),
            models.Index(fields=["vendor_id", "processed_at"], name="withdrawals_vendor__9b2f6d_idx"),
            models.Index(fields=["status", "created_at"], name="withdrawals_status_3a7e5b_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(amount_minor__gt=0),
                name="withdrawal_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        amount_display = f"{from_minor_units(self.amount_minor, self.currency)} {self.currency.upper()}"
        return f"Withdrawal({self.id}, {self.status}, {amount_display})"

    def save(self, *args, **kwargs):
        """Save with version auto-increment for optimistic locking."""
        is_update = self.pk and not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=WithdrawalStatus.PROCESSING,
        target=WithdrawalStatus.COMPLETED,
    )
    def complete(self):
        """
        Mark the withdrawal as paid out.

        Transition: PROCESSING -> COMPLETED
        """
        self.processed_at = timezone.now()

    @transition(
        field=status,
        source=WithdrawalStatus.PROCESSING,
        target=WithdrawalStatus.FAILED,
    )
    def fail(self, reason: str | None = None):
        """
        Mark the withdrawal as failed; the amount returns to the balance.

        Transition: PROCESSING -> FAILED
        """
        self.processed_at = timezone.now()
        if reason:
            self.failure_reason = reason

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_WITHDRAWAL_STATUSES

    @property
    def amount(self):
        """Amount in major units, for display."""
        return from_minor_units(self.amount_minor, self.currency)
