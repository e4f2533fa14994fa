"""
PaymentAttempt model for checkout payment confirmation.

One PaymentAttempt wraps one Stripe PaymentIntent created for an order.
The client secret is handed to the customer's browser once and is never
logged, rendered in admin, or included in repr output.
"""

from __future__ import annotations

from django.db import models
from django.db.models import F
from django.utils import timezone
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from vendor_payments.exceptions import InvalidStateTransitionError
from vendor_payments.state_machines import PaymentAttemptStatus, PaymentErrorCategory

TERMINAL_ATTEMPT_STATUSES = (
    PaymentAttemptStatus.SUCCEEDED,
    PaymentAttemptStatus.FAILED,
    PaymentAttemptStatus.CANCELED,
)


class PaymentAttempt(UUIDPrimaryKeyMixin, BaseModel):
    """
    A single attempt to pay for an order.

    State Flow:
        INITIATED -> REQUIRES_ACTION (3DS or similar)
        INITIATED/REQUIRES_ACTION -> SUCCEEDED
        INITIATED/REQUIRES_ACTION -> FAILED
        INITIATED/REQUIRES_ACTION -> CANCELED

    Fields:
        order_id: Owning order
        processor_intent_id: Stripe PaymentIntent ID (pi_xxx)
        client_secret: PaymentIntent client secret, write-once
        status: Current FSM state
        last_error_category: Coarse category of the last failure
        amount_minor: Amount in minor currency units
        currency: ISO 4217 currency code (lowercase)
        next_action_url: Where the customer completes authentication
        order_marked_paid_at: Set once when the order-paid side effect ran
        version: Optimistic locking version

    Note:
        A partial unique constraint allows a single SUCCEEDED attempt
        per order.
    """

    order_id = models.CharField(
        max_length=64,
        db_index=True,
        help_text="Identifier of the order being paid",
    )

    processor_intent_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Stripe PaymentIntent ID (pi_xxx)",
    )

    client_secret = models.CharField(
        max_length=255,
        editable=False,
        help_text="PaymentIntent client secret; never logged",
    )

    status = FSMField(
        default=PaymentAttemptStatus.INITIATED,
        choices=PaymentAttemptStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current state of the attempt (managed by FSM)",
    )

    last_error_category = models.CharField(
        max_length=32,
        choices=PaymentErrorCategory.choices,
        null=True,
        blank=True,
        help_text="Category of the last failure; never the raw processor message",
    )

    amount_minor = models.PositiveBigIntegerField(
        help_text="Amount in smallest currency unit (e.g., pence)",
    )

    currency = models.CharField(
        max_length=3,
        help_text="ISO 4217 currency code (lowercase)",
    )

    next_action_url = models.URLField(
        max_length=2048,
        null=True,
        blank=True,
        help_text="Authentication URL while the attempt requires action",
    )

    order_marked_paid_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the order-paid side effect was performed",
    )

    version = models.PositiveIntegerField(
        default=1,
        help_text="Version for optimistic locking - incremented on each save",
    )

    class Meta:
        db_table = "payment_attempts"
        ordering = ["-created_at"]
        verbose_name = "Payment Attempt"
        verbose_name_plural = "Payment Attempts"
        indexes = [
            models.Index(fields=["order_id", "status"], name="payment_att_order_i_7d3b9f_idx"),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["order_id"],
                condition=models.Q(status=PaymentAttemptStatus.SUCCEEDED),
                name="payment_attempt_one_success_per_order",
            ),
            models.CheckConstraint(
                condition=models.Q(amount_minor__gt=0),
                name="payment_attempt_amount_positive",
            ),
        ]

    def __str__(self) -> str:
        return f"PaymentAttempt({self.id}, {self.status})"

    def __repr__(self) -> str:
        return (
            f"<PaymentAttempt id={self.id} order_id={self.order_id} "
            f"status={self.status}>"
        )

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_client_secret = instance.__dict__.get("client_secret")
        return instance

    def save(self, *args, **kwargs):
        """Save with version auto-increment; the client secret is write-once."""
        loaded_secret = getattr(self, "_loaded_client_secret", None)
        if loaded_secret and self.client_secret != loaded_secret:
            raise InvalidStateTransitionError(
                "Client secret cannot be changed once set",
                details={"payment_attempt_id": str(self.id)},
            )

        is_update = self.pk and not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])
        self._loaded_client_secret = self.client_secret

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=[PaymentAttemptStatus.INITIATED, PaymentAttemptStatus.REQUIRES_ACTION],
        target=PaymentAttemptStatus.REQUIRES_ACTION,
    )
    def require_action(self, next_action_url: str | None = None):
        """Transition: INITIATED/REQUIRES_ACTION -> REQUIRES_ACTION"""
        self.next_action_url = next_action_url

    @transition(
        field=status,
        source=[PaymentAttemptStatus.INITIATED, PaymentAttemptStatus.REQUIRES_ACTION],
        target=PaymentAttemptStatus.SUCCEEDED,
    )
    def succeed(self):
        """Transition: INITIATED/REQUIRES_ACTION -> SUCCEEDED"""
        self.last_error_category = None
        self.next_action_url = None

    @transition(
        field=status,
        source=[PaymentAttemptStatus.INITIATED, PaymentAttemptStatus.REQUIRES_ACTION],
        target=PaymentAttemptStatus.FAILED,
    )
    def fail(self, category: str = PaymentErrorCategory.PROCESSING_ERROR):
        """Transition: INITIATED/REQUIRES_ACTION -> FAILED"""
        self.last_error_category = category
        self.next_action_url = None

    @transition(
        field=status,
        source=[PaymentAttemptStatus.INITIATED, PaymentAttemptStatus.REQUIRES_ACTION],
        target=PaymentAttemptStatus.CANCELED,
    )
    def cancel(self):
        """Transition: INITIATED/REQUIRES_ACTION -> CANCELED"""
        self.next_action_url = None

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_ATTEMPT_STATUSES

    @property
    def is_succeeded(self) -> bool:
        return self.status == PaymentAttemptStatus.SUCCEEDED

    def mark_order_paid_at(self) -> bool:
        """
        Claim the order-paid side effect for this attempt.

        Conditional update, so concurrent callers cannot both claim it.

        Returns:
            True if this caller claimed it, False if it was already claimed
        """
        now = timezone.now()
        claimed = PaymentAttempt.objects.filter(
            pk=self.pk,
            order_marked_paid_at__isnull=True,
        ).update(order_marked_paid_at=now)
        if claimed:
            self.order_marked_paid_at = now
        return bool(claimed)
