"""
Account lifecycle service for vendor Stripe Connect accounts.

Creates the vendor's connected account, hands out onboarding links and
keeps the persisted capability flags in step with Stripe. Both the
on-demand refresh and the account.updated webhook write flags through
apply_capability_snapshot, which only accepts snapshots newer than the
stored one.

Usage:
    from vendor_payments.services import AccountLifecycleService

    service = AccountLifecycleService()
    ref = service.create_account("V1", "shop@example.com", "Acme Ltd")
    url = service.generate_onboarding_link("V1", refresh_url, return_url)
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from django.conf import settings
from django.utils import timezone

from core.services import BaseService
from vendor_payments.adapters import IdempotencyKeyGenerator, StripeAdapter
from vendor_payments.adapters.protocols import PaymentProcessor
from vendor_payments.exceptions import (
    AccountNotProvisionedError,
    PaymentNotFoundError,
)
from vendor_payments.models import AccountStatusChange, VendorPaymentAccount
from vendor_payments.state_machines import (
    AccountStatus,
    CapabilityFlags,
    StatusChangeSource,
    derive_account_status,
)


def observation_time() -> datetime:
    """
    Current time truncated to whole seconds.

    Stripe event ``created`` stamps have one-second resolution. Locally
    stamped snapshots use the same resolution so a webhook from the same
    second as a refresh compares equal and is applied.
    """
    return timezone.now().replace(microsecond=0)


@dataclass(frozen=True)
class AccountRef:
    """Reference to a vendor's processor account, safe to return to callers."""

    vendor_id: str
    processor_account_id: str | None
    status: str

    @classmethod
    def from_account(cls, account: VendorPaymentAccount) -> AccountRef:
        return cls(
            vendor_id=account.vendor_id,
            processor_account_id=account.processor_account_id,
            status=account.status,
        )


class AccountLifecycleService(BaseService):
    """
    Provision and track vendors' connected accounts.

    Concurrency:
        - One row per vendor (unique vendor_id), so concurrent
          create_account calls share a row
        - Deterministic idempotency key per vendor, so they share one
          Stripe account
        - The id is attached under a row lock only while still empty

    Failure policy:
        Nothing here retries. ProviderUnavailableError is raised for the
        caller to retry with backoff_delay; ProviderRejectedError carries
        a redacted reason code only.
    """

    def __init__(self, processor: PaymentProcessor | None = None):
        self.processor = processor or StripeAdapter

    # =========================================================================
    # Lookups
    # =========================================================================

    def get_account(self, vendor_id: str) -> AccountRef:
        """
        Raises:
            PaymentNotFoundError: No account row exists for the vendor
        """
        account = VendorPaymentAccount.objects.filter(vendor_id=vendor_id).first()
        if account is None:
            raise PaymentNotFoundError(
                "No payment account for vendor",
                details={"vendor_id": vendor_id},
            )
        return AccountRef.from_account(account)

    def _get_provisioned(self, vendor_id: str) -> VendorPaymentAccount:
        account = VendorPaymentAccount.objects.filter(vendor_id=vendor_id).first()
        if (
            account is None
            or account.status == AccountStatus.NOT_CREATED
            or not account.is_provisioned
        ):
            raise AccountNotProvisionedError(
                "Vendor has no payment processor account yet",
                details={"vendor_id": vendor_id},
            )
        return account

    def is_ready_for_payouts(self, vendor_id: str) -> bool:
        """True iff all three persisted capability flags are true."""
        account = VendorPaymentAccount.objects.filter(vendor_id=vendor_id).first()
        return bool(account is not None and account.is_ready_for_payouts)

    # =========================================================================
    # Creation & Updates
    # =========================================================================

    def create_account(
        self,
        vendor_id: str,
        email: str,
        business_name: str,
        country: str | None = None,
        business_type: str = "company",
    ) -> AccountRef:
        """
        Create the vendor's connected account, or return the existing one.

        Args:
            vendor_id: Owning vendor
            email: Contact email for Stripe
            business_name: Registered company name
            country: ISO 3166-1 alpha-2 code (defaults to STRIPE_DEFAULT_ACCOUNT_COUNTRY)
            business_type: Stripe business type

        Returns:
            AccountRef for the vendor's account

        Raises:
            ProviderUnavailableError: Stripe unreachable; row stays NOT_CREATED
            ProviderRejectedError: Stripe refused; row stays NOT_CREATED
        """
        logger = self.get_logger()
        country = (country or settings.STRIPE_DEFAULT_ACCOUNT_COUNTRY).upper()

        account, created = VendorPaymentAccount.objects.get_or_create(
            vendor_id=vendor_id,
            defaults={
                "email": email,
                "country": country,
                "business_name": business_name,
                "business_type": business_type,
            },
        )

        if account.is_provisioned:
            logger.info(
                "Account already exists for vendor, returning existing reference",
                extra={
                    "vendor_id": vendor_id,
                    "processor_account_id": account.processor_account_id,
                },
            )
            return AccountRef.from_account(account)

        logger.info(
            "Creating processor account for vendor",
            extra={"vendor_id": vendor_id, "country": country, "row_created": created},
        )

        observed_at = observation_time()
        result = self.processor.create_account(
            email=email,
            country=country,
            business_name=business_name,
            business_type=business_type,
            idempotency_key=IdempotencyKeyGenerator.generate("create_account", vendor_id),
            metadata={"vendor_id": vendor_id},
        )

        with self.atomic():
            locked = VendorPaymentAccount.objects.select_for_update().get(pk=account.pk)
            if locked.processor_account_id is None:
                previous_status = locked.status
                locked.provision(result.id)
                locked.save()
                AccountStatusChange.objects.create(
                    account=locked,
                    from_status=previous_status,
                    to_status=locked.status,
                    source=StatusChangeSource.CREATE,
                    flags=locked.capability_flags.as_dict(),
                )
            elif locked.processor_account_id != result.id:
                logger.error(
                    "Processor returned a different account than the one stored",
                    extra={
                        "vendor_id": vendor_id,
                        "stored_account_id": locked.processor_account_id,
                        "returned_account_id": result.id,
                    },
                )

        self.apply_capability_snapshot(
            processor_account_id=locked.processor_account_id,
            flags=CapabilityFlags(
                charges_enabled=result.charges_enabled,
                payouts_enabled=result.payouts_enabled,
                details_submitted=result.details_submitted,
            ),
            observed_at=observed_at,
            source=StatusChangeSource.CREATE,
        )

        account = VendorPaymentAccount.objects.get(pk=account.pk)
        logger.info(
            "Processor account attached to vendor",
            extra={
                "vendor_id": vendor_id,
                "processor_account_id": account.processor_account_id,
                "status": account.status,
            },
        )
        return AccountRef.from_account(account)

    def update_account(
        self,
        vendor_id: str,
        business_name: str,
        business_type: str,
    ) -> AccountRef:
        """
        Change the vendor's business details at Stripe and locally.

        Raises:
            AccountNotProvisionedError: No processor account yet
        """
        account = self._get_provisioned(vendor_id)

        self.processor.update_account(
            account_id=account.processor_account_id,
            business_name=business_name,
            business_type=business_type,
        )

        with self.atomic():
            locked = VendorPaymentAccount.objects.select_for_update().get(pk=account.pk)
            locked.business_name = business_name
            locked.business_type = business_type
            locked.sensitive_edit_count += 1
            locked.save()

        self.get_logger().info(
            "Vendor business details updated",
            extra={
                "vendor_id": vendor_id,
                "sensitive_edit_count": locked.sensitive_edit_count,
            },
        )
        return AccountRef.from_account(locked)

    # =========================================================================
    # Onboarding
    # =========================================================================

    def generate_onboarding_link(
        self,
        vendor_id: str,
        refresh_url: str,
        return_url: str,
    ) -> str:
        """
        Create a hosted onboarding link.

        The link is single-use and short-lived; it is never stored.

        Raises:
            AccountNotProvisionedError: Account is NOT_CREATED
        """
        account = self._get_provisioned(vendor_id)
        return self.processor.create_account_link(
            account_id=account.processor_account_id,
            refresh_url=refresh_url,
            return_url=return_url,
        )

    # =========================================================================
    # Capability Flags
    # =========================================================================

    def refresh_account_status(self, vendor_id: str) -> CapabilityFlags:
        """
        Pull capability flags from Stripe and persist them.

        Returns:
            The flags persisted after the refresh. If a newer webhook
            landed while the refresh was in flight, those flags win.
        """
        account = self._get_provisioned(vendor_id)

        observed_at = observation_time()
        result = self.processor.retrieve_account(account.processor_account_id)

        self.apply_capability_snapshot(
            processor_account_id=account.processor_account_id,
            flags=CapabilityFlags(
                charges_enabled=result.charges_enabled,
                payouts_enabled=result.payouts_enabled,
                details_submitted=result.details_submitted,
            ),
            observed_at=observed_at,
            source=StatusChangeSource.REFRESH,
        )

        return VendorPaymentAccount.objects.get(pk=account.pk).capability_flags

    def apply_capability_snapshot(
        self,
        processor_account_id: str,
        flags: CapabilityFlags,
        observed_at: datetime,
        source: str,
        event_id: str | None = None,
    ) -> bool:
        """
        Persist a capability snapshot unless a newer one is already stored.

        Args:
            processor_account_id: Stripe account the snapshot describes
            flags: Capability flags in the snapshot
            observed_at: When Stripe reported the snapshot
            source: StatusChangeSource of the snapshot
            event_id: Stripe event id for webhook snapshots

        Returns:
            True if the snapshot was applied, False if the account is
            unknown or the snapshot is older than the stored flags
        """
        logger = self.get_logger()
        log_context = {
            "processor_account_id": processor_account_id,
            "source": source,
            "processor_event_id": event_id,
        }

        with self.atomic():
            account = (
                VendorPaymentAccount.objects.select_for_update()
                .filter(processor_account_id=processor_account_id)
                .first()
            )

            if account is None:
                logger.warning("Capability snapshot for unknown account", extra=log_context)
                return False

            if account.flags_observed_at and observed_at < account.flags_observed_at:
                logger.info(
                    "Ignoring capability snapshot older than stored flags",
                    extra={
                        **log_context,
                        "observed_at": observed_at.isoformat(),
                        "stored_observed_at": account.flags_observed_at.isoformat(),
                    },
                )
                return False

            previous_status = account.status
            account.charges_enabled = flags.charges_enabled
            account.payouts_enabled = flags.payouts_enabled
            account.details_submitted = flags.details_submitted
            account.flags_observed_at = observed_at

            target = derive_account_status(previous_status, flags, account.is_provisioned)
            changed = account.move_to(target)
            account.save()

            if changed:
                AccountStatusChange.objects.create(
                    account=account,
                    from_status=previous_status,
                    to_status=account.status,
                    source=source,
                    processor_event_id=event_id,
                    flags=flags.as_dict(),
                    observed_at=observed_at,
                )
                logger.info(
                    "Vendor account status changed",
                    extra={
                        **log_context,
                        "vendor_id": account.vendor_id,
                        "from_status": previous_status,
                        "to_status": account.status,
                    },
                )

        return True


__all__ = [
    "AccountRef",
    "AccountLifecycleService",
    "observation_time",
]
