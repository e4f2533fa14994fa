"""
Tests for FSM state transitions and status derivation.

Tests cover:
- Valid transitions for each model
- Invalid transitions raise TransitionNotAllowed
- derive_account_status rules
"""

import pytest
from django_fsm import TransitionNotAllowed

from vendor_payments.exceptions import InvalidStateTransitionError
from vendor_payments.models import Withdrawal
from vendor_payments.state_machines import (
    AccountStatus,
    CapabilityFlags,
    PaymentAttemptStatus,
    PaymentErrorCategory,
    WithdrawalStatus,
    derive_account_status,
)
from vendor_payments.tests.factories import (
    PaymentAttemptFactory,
    VendorPaymentAccountFactory,
    WithdrawalFactory,
)

ALL_FLAGS = CapabilityFlags(True, True, True)
NO_FLAGS = CapabilityFlags()


# =============================================================================
# derive_account_status
# =============================================================================


class TestDeriveAccountStatus:
    def test_no_account_is_not_created(self):
        assert derive_account_status(AccountStatus.READY, ALL_FLAGS, has_account=False) == (
            AccountStatus.NOT_CREATED
        )

    @pytest.mark.parametrize(
        "current",
        [
            AccountStatus.NOT_CREATED,
            AccountStatus.PENDING_VERIFICATION,
            AccountStatus.READY,
            AccountStatus.RESTRICTED,
        ],
    )
    def test_all_flags_is_ready(self, current):
        assert derive_account_status(current, ALL_FLAGS) == AccountStatus.READY

    def test_pending_stays_pending_without_flags(self):
        assert derive_account_status(AccountStatus.PENDING_VERIFICATION, NO_FLAGS) == (
            AccountStatus.PENDING_VERIFICATION
        )

    def test_losing_a_flag_after_ready_restricts(self):
        flags = CapabilityFlags(charges_enabled=True, payouts_enabled=False, details_submitted=True)

        assert derive_account_status(AccountStatus.READY, flags) == AccountStatus.RESTRICTED

    def test_restricted_never_returns_to_pending(self):
        assert derive_account_status(AccountStatus.RESTRICTED, NO_FLAGS) == (
            AccountStatus.RESTRICTED
        )

    def test_flags_as_dict(self):
        assert CapabilityFlags(True, False, True).as_dict() == {
            "charges_enabled": True,
            "payouts_enabled": False,
            "details_submitted": True,
        }


# =============================================================================
# VendorPaymentAccount
# =============================================================================


@pytest.mark.django_db
class TestAccountTransitions:
    def test_pending_to_ready(self):
        account = VendorPaymentAccountFactory(pending=True)

        account.mark_ready()

        assert account.status == AccountStatus.READY

    def test_ready_to_restricted_and_back(self):
        account = VendorPaymentAccountFactory()

        account.restrict()
        assert account.status == AccountStatus.RESTRICTED

        account.mark_ready()
        assert account.status == AccountStatus.READY

    def test_pending_cannot_be_restricted(self):
        account = VendorPaymentAccountFactory(pending=True)

        with pytest.raises(TransitionNotAllowed):
            account.restrict()

    def test_provision_only_from_not_created(self):
        account = VendorPaymentAccountFactory(pending=True)

        with pytest.raises(TransitionNotAllowed):
            account.provision("acct_other")

    def test_move_to_same_status_is_noop(self):
        account = VendorPaymentAccountFactory()

        assert account.move_to(AccountStatus.READY) is False

    def test_move_to_pending_is_not_allowed(self):
        account = VendorPaymentAccountFactory()

        with pytest.raises(InvalidStateTransitionError):
            account.move_to(AccountStatus.PENDING_VERIFICATION)


# =============================================================================
# PaymentAttempt
# =============================================================================


@pytest.mark.django_db
class TestPaymentAttemptTransitions:
    def test_initiated_to_requires_action(self):
        attempt = PaymentAttemptFactory()

        attempt.require_action("https://hooks.stripe.com/3ds")

        assert attempt.status == PaymentAttemptStatus.REQUIRES_ACTION
        assert attempt.next_action_url == "https://hooks.stripe.com/3ds"

    def test_requires_action_to_succeeded_clears_redirect(self):
        attempt = PaymentAttemptFactory(status=PaymentAttemptStatus.REQUIRES_ACTION)
        attempt.next_action_url = "https://hooks.stripe.com/3ds"

        attempt.succeed()

        assert attempt.status == PaymentAttemptStatus.SUCCEEDED
        assert attempt.next_action_url is None

    def test_fail_records_category(self):
        attempt = PaymentAttemptFactory()

        attempt.fail(PaymentErrorCategory.CARD_DECLINED)

        assert attempt.status == PaymentAttemptStatus.FAILED
        assert attempt.last_error_category == PaymentErrorCategory.CARD_DECLINED

    @pytest.mark.parametrize(
        "terminal",
        [
            PaymentAttemptStatus.SUCCEEDED,
            PaymentAttemptStatus.FAILED,
            PaymentAttemptStatus.CANCELED,
        ],
    )
    def test_terminal_attempts_do_not_move(self, terminal):
        attempt = PaymentAttemptFactory(status=terminal)

        assert attempt.is_terminal
        with pytest.raises(TransitionNotAllowed):
            attempt.cancel()


# =============================================================================
# Withdrawal
# =============================================================================


@pytest.mark.django_db
class TestWithdrawalTransitions:
    def test_processing_to_completed(self):
        withdrawal = WithdrawalFactory()

        withdrawal.complete()
        withdrawal.save()

        stored = Withdrawal.objects.get(pk=withdrawal.pk)
        assert stored.status == WithdrawalStatus.COMPLETED
        assert stored.processed_at is not None

    def test_processing_to_failed(self):
        withdrawal = WithdrawalFactory()

        withdrawal.fail(reason="account_closed")
        withdrawal.save()

        stored = Withdrawal.objects.get(pk=withdrawal.pk)
        assert stored.status == WithdrawalStatus.FAILED
        assert stored.failure_reason == "account_closed"
        assert stored.processed_at is not None

    def test_completed_cannot_fail(self):
        withdrawal = WithdrawalFactory(status=WithdrawalStatus.COMPLETED)

        with pytest.raises(TransitionNotAllowed):
            withdrawal.fail(reason="late reversal")

    def test_failed_cannot_complete(self):
        withdrawal = WithdrawalFactory(status=WithdrawalStatus.FAILED)

        with pytest.raises(TransitionNotAllowed):
            withdrawal.complete()

    def test_status_is_protected(self):
        withdrawal = Withdrawal.objects.get(pk=WithdrawalFactory().pk)

        with pytest.raises(AttributeError):
            withdrawal.status = WithdrawalStatus.COMPLETED
