"""
VendorPaymentAccount and AccountStatusChange models.

A VendorPaymentAccount is the vendor's Stripe Connect account as seen by
the marketplace: the connected account id, the capability flags Stripe
last reported, and the status derived from them. Every status change is
appended to AccountStatusChange for auditing.

Usage:
    from vendor_payments.models import VendorPaymentAccount

    account = VendorPaymentAccount.objects.get(vendor_id="V1")
    if account.is_ready_for_payouts:
        ...
"""

from __future__ import annotations

from django.db import models
from django.db.models import F
from django_fsm import FSMField, transition

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from vendor_payments.exceptions import InvalidStateTransitionError
from vendor_payments.state_machines import (
    AccountStatus,
    CapabilityFlags,
    StatusChangeSource,
)


class VendorPaymentAccount(UUIDPrimaryKeyMixin, BaseModel):
    """
    A vendor's connected account with the payment processor.

    State Flow:
        NOT_CREATED -> PENDING_VERIFICATION (processor account created)
        PENDING_VERIFICATION -> READY (all capability flags true)
        READY -> RESTRICTED (any capability flag lost)
        RESTRICTED -> READY (capabilities restored)

    Fields:
        vendor_id: Owning vendor (unique; one account per vendor)
        processor_account_id: Stripe account id (acct_xxx), immutable once set
        email: Contact email given to Stripe at creation
        country: ISO 3166-1 alpha-2 country code
        business_name: Company name registered with Stripe
        business_type: Stripe business type (company, individual, ...)
        charges_enabled / payouts_enabled / details_submitted: Capability flags
        flags_observed_at: Processor time the stored flags were observed
        status: Derived lifecycle status (managed by FSM)
        sensitive_edit_count: Number of business detail edits
        version: Optimistic locking version
        metadata: Flexible JSON storage

    Note:
        flags_observed_at only moves forward. A snapshot observed before
        the stored time is ignored, so a slow refresh can never overwrite
        a newer webhook.
    """

    # ==========================================================================
    # Ownership & Identity
    # ==========================================================================

    vendor_id = models.CharField(
        max_length=64,
        unique=True,
        help_text="Identifier of the owning vendor",
    )

    processor_account_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        unique=True,
        help_text="Stripe connected account ID (acct_xxx); immutable once set",
    )

    # ==========================================================================
    # Business Details
    # ==========================================================================

    email = models.EmailField(
        blank=True,
        default="",
        help_text="Contact email sent to Stripe at account creation",
    )

    country = models.CharField(
        max_length=2,
        help_text="ISO 3166-1 alpha-2 country code (upper case)",
    )

    business_name = models.CharField(
        max_length=255,
        blank=True,
        default="",
        help_text="Company name registered with Stripe",
    )

    business_type = models.CharField(
        max_length=32,
        default="company",
        help_text="Stripe business type",
    )

    sensitive_edit_count = models.PositiveIntegerField(
        default=0,
        help_text="Number of times business details were edited",
    )

    # ==========================================================================
    # Capability Flags
    # ==========================================================================

    charges_enabled = models.BooleanField(default=False)
    payouts_enabled = models.BooleanField(default=False)
    details_submitted = models.BooleanField(default=False)

    flags_observed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Processor-side time of the snapshot the flags came from",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=AccountStatus.NOT_CREATED,
        choices=AccountStatus.choices,
        db_index=True,
        protected=True,
        help_text="Lifecycle status derived from capability flags (managed by FSM)",
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
        db_table = "vendor_payment_accounts"
        ordering = ["-created_at"]
        verbose_name = "Vendor Payment Account"
        verbose_name_plural = "Vendor Payment Accounts"
        indexes = [
            models.Index(fields=["status", "updated_at"], name="vendor_paym_status_5c1a2e_idx"),
        ]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(processor_account_id__isnull=False)
                | models.Q(status=AccountStatus.NOT_CREATED),
                name="vendor_account_id_required_after_creation",
            ),
        ]

    def __str__(self) -> str:
        return f"VendorPaymentAccount({self.vendor_id}, {self.status})"

    @classmethod
    def from_db(cls, db, field_names, values):
        instance = super().from_db(db, field_names, values)
        instance._loaded_processor_account_id = instance.__dict__.get(
            "processor_account_id"
        )
        return instance

    def save(self, *args, **kwargs):
        """
        Save with version auto-increment and processor id immutability.

        Raises:
            InvalidStateTransitionError: If a stored processor account id
                would be replaced or cleared
        """
        loaded_id = getattr(self, "_loaded_processor_account_id", None)
        if loaded_id and self.processor_account_id != loaded_id:
            raise InvalidStateTransitionError(
                "Processor account id cannot be changed once set",
                details={"vendor_id": self.vendor_id},
            )

        is_update = self.pk and not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])
        self._loaded_processor_account_id = self.processor_account_id

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=AccountStatus.NOT_CREATED,
        target=AccountStatus.PENDING_VERIFICATION,
    )
    def provision(self, processor_account_id: str):
        """
        Attach the processor account created for this vendor.

        Transition: NOT_CREATED -> PENDING_VERIFICATION
        """
        self.processor_account_id = processor_account_id

    @transition(
        field=status,
        source=[AccountStatus.PENDING_VERIFICATION, AccountStatus.RESTRICTED],
        target=AccountStatus.READY,
    )
    def mark_ready(self):
        """Transition: PENDING_VERIFICATION/RESTRICTED -> READY"""

    @transition(
        field=status,
        source=AccountStatus.READY,
        target=AccountStatus.RESTRICTED,
    )
    def restrict(self):
        """Transition: READY -> RESTRICTED"""

    def move_to(self, target: str) -> bool:
        """
        Apply the transition that leads to ``target``.

        Returns:
            True if the status changed, False if already there

        Raises:
            InvalidStateTransitionError: If no transition leads there
        """
        if target == self.status:
            return False

        transitions = {
            AccountStatus.READY: self.mark_ready,
            AccountStatus.RESTRICTED: self.restrict,
        }
        method = transitions.get(target)
        if method is None:
            raise InvalidStateTransitionError(
                f"Cannot move account from '{self.status}' to '{target}'",
                details={"current_state": self.status, "target_state": target},
            )
        method()
        return True

    # ==========================================================================
    # Properties
    # ==========================================================================

    @property
    def capability_flags(self) -> CapabilityFlags:
        return CapabilityFlags(
            charges_enabled=self.charges_enabled,
            payouts_enabled=self.payouts_enabled,
            details_submitted=self.details_submitted,
        )

    @property
    def is_provisioned(self) -> bool:
        return self.processor_account_id is not None

    @property
    def is_ready_for_payouts(self) -> bool:
        """Derived from the persisted flags, never from the cached status."""
        return self.capability_flags.all_enabled


class AccountStatusChange(UUIDPrimaryKeyMixin, BaseModel):
    """
    Append-only audit trail of account status changes.

    Rows are written in the same transaction as the status change and are
    never updated or deleted.
    """

    account = models.ForeignKey(
        VendorPaymentAccount,
        on_delete=models.PROTECT,
        related_name="status_changes",
    )
    from_status = models.CharField(max_length=32, choices=AccountStatus.choices)
    to_status = models.CharField(max_length=32, choices=AccountStatus.choices)
    source = models.CharField(max_length=16, choices=StatusChangeSource.choices)
    processor_event_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Stripe event id when the change came from a webhook",
    )
    flags = models.JSONField(
        default=dict,
        help_text="Capability flags that caused the change",
    )
    observed_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Processor-side time of the snapshot",
    )

    class Meta:
        db_table = "vendor_account_status_changes"
        ordering = ["-created_at"]
        verbose_name = "Account Status Change"
        verbose_name_plural = "Account Status Changes"

    def __str__(self) -> str:
        return f"AccountStatusChange({self.from_status} -> {self.to_status})"
