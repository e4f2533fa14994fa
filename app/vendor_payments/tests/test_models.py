"""
Tests for vendor payment models.

Tests cover:
- Processor account id and client secret immutability
- Version auto-increment
- Database constraints (positive amounts, one success per order)
- Order-paid claim
- WebhookEvent payload helpers
"""

from datetime import datetime, timezone as dt_timezone
from decimal import Decimal

import pytest
from django.db import IntegrityError, transaction

from vendor_payments.exceptions import InvalidStateTransitionError
from vendor_payments.models import PaymentAttempt, VendorPaymentAccount, Withdrawal
from vendor_payments.state_machines import (
    AccountStatus,
    PaymentAttemptStatus,
    WebhookEventStatus,
)
from vendor_payments.tests.factories import (
    AccountStatusChangeFactory,
    PaymentAttemptFactory,
    VendorPaymentAccountFactory,
    WebhookEventFactory,
    WithdrawalFactory,
)

# =============================================================================
# VendorPaymentAccount
# =============================================================================


@pytest.mark.django_db
class TestVendorPaymentAccount:
    def test_processor_account_id_cannot_change_once_set(self):
        account = VendorPaymentAccountFactory(processor_account_id="acct_original")
        account = VendorPaymentAccount.objects.get(pk=account.pk)

        account.processor_account_id = "acct_other"

        with pytest.raises(InvalidStateTransitionError):
            account.save()

        assert VendorPaymentAccount.objects.get(pk=account.pk).processor_account_id == "acct_original"

    def test_processor_account_id_cannot_be_cleared(self):
        account = VendorPaymentAccountFactory(processor_account_id="acct_original")
        account = VendorPaymentAccount.objects.get(pk=account.pk)

        account.processor_account_id = None

        with pytest.raises(InvalidStateTransitionError):
            account.save()

    def test_provision_sets_id_on_not_created_account(self):
        account = VendorPaymentAccountFactory(not_created=True)

        account.provision("acct_new")
        account.save()

        stored = VendorPaymentAccount.objects.get(pk=account.pk)
        assert stored.processor_account_id == "acct_new"
        assert stored.status == AccountStatus.PENDING_VERIFICATION

    def test_version_increments_on_save(self):
        account = VendorPaymentAccountFactory()
        assert account.version == 1

        account.business_name = "Renamed Ltd"
        account.save()

        assert account.version == 2

    def test_ready_for_payouts_needs_every_flag(self):
        account = VendorPaymentAccountFactory.build(
            charges_enabled=True,
            payouts_enabled=True,
            details_submitted=False,
        )

        assert account.is_ready_for_payouts is False

    def test_ready_for_payouts_reads_flags_not_status(self):
        # Status is a cache of the flags; the flags decide
        account = VendorPaymentAccountFactory.build(
            status=AccountStatus.PENDING_VERIFICATION,
            charges_enabled=True,
            payouts_enabled=True,
            details_submitted=True,
        )

        assert account.is_ready_for_payouts is True

    def test_account_id_required_after_creation(self):
        with pytest.raises(IntegrityError), transaction.atomic():
            VendorPaymentAccountFactory(
                status=AccountStatus.PENDING_VERIFICATION,
                processor_account_id=None,
            )

    def test_vendor_has_one_account(self):
        VendorPaymentAccountFactory(vendor_id="V1")

        with pytest.raises(IntegrityError), transaction.atomic():
            VendorPaymentAccountFactory(vendor_id="V1")

    def test_status_change_audit_rows_are_linked(self):
        change = AccountStatusChangeFactory()

        assert list(change.account.status_changes.all()) == [change]
        assert change.flags["payouts_enabled"] is True


# =============================================================================
# PaymentAttempt
# =============================================================================


@pytest.mark.django_db
class TestPaymentAttempt:
    def test_client_secret_is_write_once(self):
        attempt = PaymentAttemptFactory()
        attempt = PaymentAttempt.objects.get(pk=attempt.pk)

        attempt.client_secret = "pi_other_secret_x"

        with pytest.raises(InvalidStateTransitionError):
            attempt.save()

    def test_order_paid_claim_succeeds_once(self):
        attempt = PaymentAttemptFactory()

        assert attempt.mark_order_paid_at() is True
        assert attempt.order_marked_paid_at is not None

        again = PaymentAttempt.objects.get(pk=attempt.pk)
        assert again.mark_order_paid_at() is False

    def test_one_succeeded_attempt_per_order(self):
        PaymentAttemptFactory(order_id="O1", status=PaymentAttemptStatus.SUCCEEDED)

        with pytest.raises(IntegrityError), transaction.atomic():
            PaymentAttemptFactory(order_id="O1", status=PaymentAttemptStatus.SUCCEEDED)

    def test_failed_attempts_do_not_block_a_success(self):
        PaymentAttemptFactory(order_id="O1", status=PaymentAttemptStatus.FAILED)
        PaymentAttemptFactory(order_id="O1", status=PaymentAttemptStatus.FAILED)

        PaymentAttemptFactory(order_id="O1", status=PaymentAttemptStatus.SUCCEEDED)

        assert PaymentAttempt.objects.filter(order_id="O1").count() == 3

    def test_amount_must_be_positive(self):
        with pytest.raises(IntegrityError), transaction.atomic():
            PaymentAttemptFactory(amount_minor=0)


# =============================================================================
# Withdrawal
# =============================================================================


@pytest.mark.django_db
class TestWithdrawal:
    def test_amount_in_major_units(self):
        withdrawal = WithdrawalFactory(amount_minor=2050, currency="gbp")

        assert withdrawal.amount == Decimal("20.50")

    def test_zero_decimal_currency_amount(self):
        withdrawal = WithdrawalFactory(amount_minor=500, currency="jpy")

        assert withdrawal.amount == Decimal("500")

    def test_amount_must_be_positive(self):
        with pytest.raises(IntegrityError), transaction.atomic():
            WithdrawalFactory(amount_minor=0)

    def test_transfer_id_is_unique(self):
        WithdrawalFactory(processor_transfer_id="tr_dup")

        with pytest.raises(IntegrityError), transaction.atomic():
            WithdrawalFactory(processor_transfer_id="tr_dup")

    def test_str_shows_major_units(self):
        withdrawal = WithdrawalFactory(amount_minor=2000, currency="gbp")

        assert "20.00 GBP" in str(withdrawal)

    def test_version_increments_on_save(self):
        withdrawal = WithdrawalFactory()
        withdrawal = Withdrawal.objects.get(pk=withdrawal.pk)

        withdrawal.complete()
        withdrawal.save()

        assert withdrawal.version == 2


# =============================================================================
# WebhookEvent
# =============================================================================


@pytest.mark.django_db
class TestWebhookEvent:
    def test_get_object_returns_data_object(self):
        event = WebhookEventFactory(data_object={"id": "acct_1", "charges_enabled": True})

        assert event.get_object() == {"id": "acct_1", "charges_enabled": True}
        assert event.get_object_id() == "acct_1"

    def test_get_object_tolerates_malformed_payload(self):
        event = WebhookEventFactory(payload={"id": "evt_1", "data": "oops"})

        assert event.get_object() == {}

    def test_event_created_at_from_payload(self):
        event = WebhookEventFactory(created=1700000000)

        assert event.get_event_created_at() == datetime.fromtimestamp(
            1700000000, tz=dt_timezone.utc
        )

    def test_event_created_at_missing(self):
        event = WebhookEventFactory(payload={"id": "evt_1"})

        assert event.get_event_created_at() is None

    def test_can_retry_under_ceiling(self, settings):
        settings.WEBHOOK_MAX_RETRIES = 3
        event = WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=2)

        assert event.can_retry is True

    def test_cannot_retry_at_ceiling(self, settings):
        settings.WEBHOOK_MAX_RETRIES = 3
        event = WebhookEventFactory(status=WebhookEventStatus.FAILED, retry_count=3)

        assert event.can_retry is False

    def test_mark_processed_clears_error(self):
        event = WebhookEventFactory(
            status=WebhookEventStatus.FAILED,
            error_message="boom",
        )

        event.mark_processed()
        event.save()

        event.refresh_from_db()
        assert event.status == WebhookEventStatus.PROCESSED
        assert event.processed_at is not None
        assert event.error_message is None
