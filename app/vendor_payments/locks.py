"""
Per-vendor mutual exclusion for withdrawals.

Two withdrawal requests for one vendor must never both pass the balance
check. request_withdrawal holds the vendor's Redis lock for the balance
read and the reservation, and additionally locks the account row with
SELECT FOR UPDATE inside that transaction. Contention surfaces as a
LockAcquisitionError (409) after a short wait rather than a request
stuck behind a database lock.

Usage:
    from vendor_payments.locks import withdrawal_lock

    with withdrawal_lock(vendor_id):
        ...
"""

from __future__ import annotations

import time
import uuid
from functools import cached_property
from typing import TYPE_CHECKING

from django.conf import settings
from django_redis import get_redis_connection

from vendor_payments.exceptions import LockAcquisitionError

if TYPE_CHECKING:
    from redis import Redis

# Delete the key only while it still carries our token
RELEASE_IF_OWNER = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class DistributedLock:
    """
    A Redis key that holds the owner's random token until released.

    The key expires after ``ttl`` seconds, so a worker that dies inside
    the critical section frees the vendor once the TTL runs out. ``wait``
    is how long acquire() polls for a busy lock; 0 tries exactly once.
    """

    poll_interval = 0.05

    def __init__(self, name: str, ttl: int = 30, wait: float = 10.0) -> None:
        self.key = f"lock:{name}"
        self.ttl = ttl
        self.wait = wait
        self.owner_token: str | None = None

    @cached_property
    def redis(self) -> Redis:
        return get_redis_connection("default")

    @property
    def held(self) -> bool:
        return self.owner_token is not None

    def acquire(self) -> None:
        """
        Raises:
            LockAcquisitionError: The lock stayed busy for the whole wait
        """
        token = uuid.uuid4().hex
        deadline = time.monotonic() + self.wait

        while not self.redis.set(self.key, token, nx=True, ex=self.ttl):
            if time.monotonic() >= deadline:
                raise LockAcquisitionError(
                    "Another request for this resource is in progress",
                    details={"lock": self.key, "waited_seconds": self.wait},
                )
            time.sleep(self.poll_interval)

        self.owner_token = token

    def release(self) -> bool:
        """False when we never held the lock or it had already expired."""
        if self.owner_token is None:
            return False

        token, self.owner_token = self.owner_token, None
        return bool(self.redis.eval(RELEASE_IF_OWNER, 1, self.key, token))

    def __enter__(self) -> DistributedLock:
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.release()


def withdrawal_lock_key(vendor_id: str) -> str:
    return f"withdrawal:vendor:{vendor_id}"


def withdrawal_lock(vendor_id: str) -> DistributedLock:
    """The vendor's withdrawal lock, sized by WITHDRAWAL_LOCK_* settings."""
    return DistributedLock(
        withdrawal_lock_key(vendor_id),
        ttl=settings.WITHDRAWAL_LOCK_TTL_SECONDS,
        wait=settings.WITHDRAWAL_LOCK_TIMEOUT_SECONDS,
    )


__all__ = [
    "DistributedLock",
    "withdrawal_lock",
    "withdrawal_lock_key",
]
