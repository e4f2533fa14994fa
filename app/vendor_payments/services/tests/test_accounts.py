"""
Tests for AccountLifecycleService.

Tests cover:
- Account creation, idempotency and processor failures
- Onboarding links
- Capability refresh and status derivation
- Stale snapshots never overwrite newer flags
"""

from datetime import datetime, timedelta
from datetime import timezone as dt_timezone

import pytest
from django.utils import timezone
from freezegun import freeze_time

from vendor_payments.exceptions import (
    AccountNotProvisionedError,
    PaymentNotFoundError,
    ProviderRejectedError,
    ProviderUnavailableError,
)
from vendor_payments.models import AccountStatusChange, VendorPaymentAccount
from vendor_payments.state_machines import (
    AccountStatus,
    CapabilityFlags,
    StatusChangeSource,
)
from vendor_payments.tests.factories import VendorPaymentAccountFactory

ALL_FLAGS = CapabilityFlags(True, True, True)


def provisioned(account_service, vendor_id="V1"):
    """Create an account through the service and return the stored row."""
    account_service.create_account(vendor_id, "shop@example.com", "Acme Ltd")
    return VendorPaymentAccount.objects.get(vendor_id=vendor_id)


# =============================================================================
# Creation
# =============================================================================


@pytest.mark.django_db
class TestCreateAccount:
    def test_creates_pending_account(self, account_service, processor):
        ref = account_service.create_account("V1", "shop@example.com", "Acme Ltd")

        assert ref.vendor_id == "V1"
        assert ref.processor_account_id.startswith("acct_")
        assert ref.status == AccountStatus.PENDING_VERIFICATION
        assert account_service.is_ready_for_payouts("V1") is False

    def test_sends_defaults_to_processor(self, account_service, processor, settings):
        settings.STRIPE_DEFAULT_ACCOUNT_COUNTRY = "gb"

        account_service.create_account("V1", "shop@example.com", "Acme Ltd")

        (call,) = processor.calls_to("create_account")
        assert call["country"] == "GB"
        assert call["business_type"] == "company"
        assert call["metadata"] == {"vendor_id": "V1"}
        assert call["idempotency_key"].startswith("create_account:V1:1:")

    def test_country_is_uppercased(self, account_service, processor):
        account_service.create_account("V1", "shop@example.com", "Acme GmbH", country="de")

        assert processor.calls_to("create_account")[0]["country"] == "DE"
        assert VendorPaymentAccount.objects.get(vendor_id="V1").country == "DE"

    def test_records_creation_audit_row(self, account_service):
        account_service.create_account("V1", "shop@example.com", "Acme Ltd")

        change = AccountStatusChange.objects.get()
        assert change.from_status == AccountStatus.NOT_CREATED
        assert change.to_status == AccountStatus.PENDING_VERIFICATION
        assert change.source == StatusChangeSource.CREATE

    def test_second_call_returns_existing_account(self, account_service, processor):
        first = account_service.create_account("V1", "shop@example.com", "Acme Ltd")
        second = account_service.create_account("V1", "shop@example.com", "Acme Ltd")

        assert first == second
        assert len(processor.calls_to("create_account")) == 1
        assert VendorPaymentAccount.objects.filter(vendor_id="V1").count() == 1

    def test_rejection_leaves_account_not_created(self, account_service, processor):
        processor.fail_with(
            "create_account",
            ProviderRejectedError("rejected", reason_code="country_unsupported"),
        )

        with pytest.raises(ProviderRejectedError) as exc_info:
            account_service.create_account("V1", "shop@example.com", "Acme", country="XX")

        assert exc_info.value.reason_code == "country_unsupported"
        account = VendorPaymentAccount.objects.get(vendor_id="V1")
        assert account.status == AccountStatus.NOT_CREATED
        assert account.processor_account_id is None

    def test_retry_after_outage_reuses_idempotency_key(self, account_service, processor):
        processor.fail_with("create_account", ProviderUnavailableError("down"))
        with pytest.raises(ProviderUnavailableError):
            account_service.create_account("V1", "shop@example.com", "Acme Ltd")

        processor.clear_failures()
        ref = account_service.create_account("V1", "shop@example.com", "Acme Ltd")

        first_call, second_call = processor.calls_to("create_account")
        assert first_call["idempotency_key"] == second_call["idempotency_key"]
        assert ref.status == AccountStatus.PENDING_VERIFICATION

    def test_account_ready_at_creation(self, account_service, processor, mocker):
        # Some accounts come back fully enabled (e.g. pre-verified platforms)
        original = processor.create_account

        def create_enabled(**kwargs):
            result = original(**kwargs)
            processor.set_capabilities(result.id)
            return processor.accounts[result.id]

        mocker.patch.object(processor, "create_account", side_effect=create_enabled)

        ref = account_service.create_account("V1", "shop@example.com", "Acme Ltd")

        assert ref.status == AccountStatus.READY
        assert account_service.is_ready_for_payouts("V1") is True


# =============================================================================
# Lookups & Updates
# =============================================================================


@pytest.mark.django_db
class TestLookups:
    def test_get_account_unknown_vendor(self, account_service):
        with pytest.raises(PaymentNotFoundError):
            account_service.get_account("nobody")

    def test_get_account(self, account_service):
        account = VendorPaymentAccountFactory(vendor_id="V1")

        ref = account_service.get_account("V1")

        assert ref.processor_account_id == account.processor_account_id
        assert ref.status == AccountStatus.READY

    def test_unknown_vendor_is_not_ready(self, account_service):
        assert account_service.is_ready_for_payouts("nobody") is False

    def test_update_account_counts_sensitive_edits(self, account_service, processor):
        provisioned(account_service)

        ref = account_service.update_account("V1", "Acme Holdings Ltd", "company")

        account = VendorPaymentAccount.objects.get(vendor_id="V1")
        assert account.business_name == "Acme Holdings Ltd"
        assert account.sensitive_edit_count == 1
        assert ref.processor_account_id == account.processor_account_id
        assert processor.calls_to("update_account")[0]["account_id"] == account.processor_account_id

    def test_update_requires_processor_account(self, account_service):
        VendorPaymentAccountFactory(vendor_id="V1", not_created=True)

        with pytest.raises(AccountNotProvisionedError):
            account_service.update_account("V1", "Acme", "company")


# =============================================================================
# Onboarding Links
# =============================================================================


@pytest.mark.django_db
class TestOnboardingLink:
    def test_returns_link_for_account(self, account_service, processor):
        account = provisioned(account_service)

        url = account_service.generate_onboarding_link(
            "V1",
            refresh_url="https://shop.example.com/refresh",
            return_url="https://shop.example.com/done",
        )

        assert account.processor_account_id in url
        (call,) = processor.calls_to("create_account_link")
        assert call["refresh_url"] == "https://shop.example.com/refresh"
        assert call["return_url"] == "https://shop.example.com/done"

    def test_each_call_gets_a_fresh_link(self, account_service, processor):
        provisioned(account_service)

        first = account_service.generate_onboarding_link("V1", "https://a.test/r", "https://a.test/d")
        second = account_service.generate_onboarding_link("V1", "https://a.test/r", "https://a.test/d")

        assert first != second

    def test_not_created_account(self, account_service, processor):
        VendorPaymentAccountFactory(vendor_id="V1", not_created=True)

        with pytest.raises(AccountNotProvisionedError):
            account_service.generate_onboarding_link("V1", "https://a.test/r", "https://a.test/d")

        assert processor.calls_to("create_account_link") == []

    def test_missing_account(self, account_service):
        with pytest.raises(AccountNotProvisionedError):
            account_service.generate_onboarding_link("nobody", "https://a.test/r", "https://a.test/d")


# =============================================================================
# Capability Refresh
# =============================================================================


@pytest.mark.django_db
class TestRefreshAccountStatus:
    def test_all_flags_makes_account_ready(self, account_service, processor):
        account = provisioned(account_service)
        processor.set_capabilities(account.processor_account_id)

        flags = account_service.refresh_account_status("V1")

        assert flags == ALL_FLAGS
        assert account_service.is_ready_for_payouts("V1") is True
        assert VendorPaymentAccount.objects.get(pk=account.pk).status == AccountStatus.READY
        change = AccountStatusChange.objects.filter(source=StatusChangeSource.REFRESH).get()
        assert change.to_status == AccountStatus.READY

    def test_losing_payouts_restricts_account(self, account_service, processor):
        account = provisioned(account_service)
        processor.set_capabilities(account.processor_account_id)
        account_service.refresh_account_status("V1")

        processor.set_capabilities(account.processor_account_id, payouts_enabled=False)
        account_service.refresh_account_status("V1")

        stored = VendorPaymentAccount.objects.get(pk=account.pk)
        assert stored.status == AccountStatus.RESTRICTED
        assert stored.is_ready_for_payouts is False

    def test_refresh_without_changes_writes_no_audit_row(self, account_service, processor):
        provisioned(account_service)
        before = AccountStatusChange.objects.count()

        account_service.refresh_account_status("V1")

        assert AccountStatusChange.objects.count() == before

    def test_refresh_requires_processor_account(self, account_service):
        VendorPaymentAccountFactory(vendor_id="V1", not_created=True)

        with pytest.raises(AccountNotProvisionedError):
            account_service.refresh_account_status("V1")

    def test_processor_outage_leaves_flags_untouched(self, account_service, processor):
        account = provisioned(account_service)
        processor.fail_with("retrieve_account", ProviderUnavailableError("down"))

        with pytest.raises(ProviderUnavailableError):
            account_service.refresh_account_status("V1")

        stored = VendorPaymentAccount.objects.get(pk=account.pk)
        assert stored.flags_observed_at == account.flags_observed_at

    def test_newer_webhook_wins_over_slow_refresh(self, account_service, processor):
        account = provisioned(account_service)
        later = timezone.now() + timedelta(minutes=5)
        account_service.apply_capability_snapshot(
            account.processor_account_id,
            ALL_FLAGS,
            observed_at=later,
            source=StatusChangeSource.WEBHOOK,
            event_id="evt_1",
        )

        # Stripe still reports the old flags to the slow refresh
        flags = account_service.refresh_account_status("V1")

        assert flags == ALL_FLAGS
        assert VendorPaymentAccount.objects.get(pk=account.pk).status == AccountStatus.READY

    def test_refresh_is_stamped_to_the_whole_second(self, account_service):
        with freeze_time("2024-03-01 12:00:00.500"):
            account = provisioned(account_service)
            account_service.refresh_account_status("V1")

        stored = VendorPaymentAccount.objects.get(pk=account.pk)
        assert stored.flags_observed_at == datetime(2024, 3, 1, 12, 0, 0, tzinfo=dt_timezone.utc)

    def test_webhook_from_same_second_as_refresh_is_applied(self, account_service):
        with freeze_time("2024-03-01 12:00:00.500"):
            account = provisioned(account_service)
            account_service.refresh_account_status("V1")

        applied = account_service.apply_capability_snapshot(
            account.processor_account_id,
            ALL_FLAGS,
            observed_at=datetime(2024, 3, 1, 12, 0, 0, tzinfo=dt_timezone.utc),
            source=StatusChangeSource.WEBHOOK,
            event_id="evt_same_second",
        )

        assert applied is True
        stored = VendorPaymentAccount.objects.get(pk=account.pk)
        assert stored.capability_flags == ALL_FLAGS
        assert stored.status == AccountStatus.READY


# =============================================================================
# Snapshot Ordering
# =============================================================================


@pytest.mark.django_db
class TestApplyCapabilitySnapshot:
    @freeze_time("2024-03-01 12:00:00")
    def test_older_snapshot_is_ignored(self, account_service):
        account = VendorPaymentAccountFactory(
            pending=True,
            processor_account_id="acct_1",
            flags_observed_at=timezone.now(),
        )

        applied = account_service.apply_capability_snapshot(
            "acct_1",
            ALL_FLAGS,
            observed_at=timezone.now() - timedelta(seconds=1),
            source=StatusChangeSource.WEBHOOK,
        )

        assert applied is False
        stored = VendorPaymentAccount.objects.get(pk=account.pk)
        assert stored.status == AccountStatus.PENDING_VERIFICATION
        assert stored.charges_enabled is False

    @freeze_time("2024-03-01 12:00:00")
    def test_snapshot_with_same_time_is_applied(self, account_service):
        VendorPaymentAccountFactory(
            pending=True,
            processor_account_id="acct_1",
            flags_observed_at=timezone.now(),
        )

        applied = account_service.apply_capability_snapshot(
            "acct_1",
            ALL_FLAGS,
            observed_at=timezone.now(),
            source=StatusChangeSource.WEBHOOK,
        )

        assert applied is True
        assert account_service.is_ready_for_payouts(
            VendorPaymentAccount.objects.get(processor_account_id="acct_1").vendor_id
        )

    def test_unknown_account(self, account_service):
        applied = account_service.apply_capability_snapshot(
            "acct_unknown",
            ALL_FLAGS,
            observed_at=timezone.now(),
            source=StatusChangeSource.WEBHOOK,
        )

        assert applied is False

    def test_audit_row_carries_event_id(self, account_service):
        account = VendorPaymentAccountFactory(pending=True, processor_account_id="acct_1")

        account_service.apply_capability_snapshot(
            "acct_1",
            ALL_FLAGS,
            observed_at=timezone.now(),
            source=StatusChangeSource.WEBHOOK,
            event_id="evt_123",
        )

        change = account.status_changes.get()
        assert change.processor_event_id == "evt_123"
        assert change.from_status == AccountStatus.PENDING_VERIFICATION
        assert change.to_status == AccountStatus.READY
        assert change.flags == ALL_FLAGS.as_dict()
