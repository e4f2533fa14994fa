"""
Concurrent withdrawal requests against the real DistributedLock.

Two threads request withdrawals that each fit the balance alone but not
together. The Redis connection is a thread-safe in-memory stand-in, so
the lock protocol itself (SET NX EX, owner-checked release) decides who
goes first. The winner holds the lock until the other thread has been
refused at least once, so the requests genuinely overlap.
"""

import threading

import pytest
from django.db import connections

from vendor_payments.exceptions import InsufficientBalanceError
from vendor_payments.models import Withdrawal
from vendor_payments.services import PayoutLedgerService
from vendor_payments.state_machines import WithdrawalStatus
from vendor_payments.tests.factories import VendorPaymentAccountFactory
from vendor_payments.tests.fakes import ThreadSafeRedis

WAIT_SECONDS = 5


class EarningsHeldUntilContended:
    """Reads earnings only once the other thread has found the lock busy."""

    def __init__(self, earnings, redis):
        self.earnings = earnings
        self.redis = redis

    def get_settled_earnings(self, vendor_id, currency):
        self.redis.contended.wait(timeout=WAIT_SECONDS)
        return self.earnings.get_settled_earnings(vendor_id, currency)


@pytest.mark.django_db(transaction=True)
class TestConcurrentWithdrawals:
    def test_two_racing_requests_cannot_both_spend_the_balance(
        self, mocker, settings, processor, earnings
    ):
        settings.WITHDRAWAL_LOCK_TIMEOUT_SECONDS = WAIT_SECONDS * 2
        redis = ThreadSafeRedis()
        mocker.patch("vendor_payments.locks.get_redis_connection", return_value=redis)
        VendorPaymentAccountFactory(vendor_id="V1")
        earnings.set("V1", 5000)

        loser_finished = threading.Event()
        processor.before_create_transfer = lambda: loser_finished.wait(timeout=WAIT_SECONDS)
        held_earnings = EarningsHeldUntilContended(earnings, redis)

        start = threading.Barrier(2)
        withdrawals = []
        errors = []

        def request():
            ledger = PayoutLedgerService(processor=processor, earnings_provider=held_earnings)
            start.wait(timeout=WAIT_SECONDS)
            try:
                withdrawals.append(ledger.request_withdrawal("V1", 3000, "gbp"))
            except Exception as e:
                errors.append(e)
                loser_finished.set()
            finally:
                connections.close_all()

        threads = [threading.Thread(target=request) for _ in range(2)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=WAIT_SECONDS * 4)

        assert redis.contended.is_set()
        assert len(withdrawals) == 1
        assert len(errors) == 1
        assert isinstance(errors[0], InsufficientBalanceError)
        assert errors[0].details["available"] == 2000
        assert Withdrawal.objects.filter(
            vendor_id="V1", status=WithdrawalStatus.PROCESSING
        ).count() == 1
        assert len(processor.calls_to("create_transfer")) == 1
