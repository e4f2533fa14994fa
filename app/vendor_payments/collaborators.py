"""
Collaborators owned by other parts of the marketplace.

The vendor payment services do not compute earnings or own orders.
They talk to those systems through the two protocols below. Concrete
implementations are configured by dotted path in settings:

    VENDOR_EARNINGS_PROVIDER = "orders.payments.SettledEarningsProvider"
    ORDER_SERVICE = "orders.services.OrderPaymentHook"

The defaults shipped here are safe no-ops for development: no earnings,
order-paid notifications that are only logged, and no order ownership
check at checkout. Production must configure ORDER_SERVICE.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from django.conf import settings
from django.utils.module_loading import import_string

logger = logging.getLogger(__name__)


# =============================================================================
# Protocols
# =============================================================================


@runtime_checkable
class EarningsProvider(Protocol):
    """Source of a vendor's settled earnings."""

    def get_settled_earnings(self, vendor_id: str, currency: str) -> int:
        """
        Total settled earnings in minor units for one currency.

        Must not include funds still held pending order completion.
        """
        ...


@runtime_checkable
class OrderService(Protocol):
    """Owns orders: decides who may pay one and is told when it is paid."""

    def mark_paid(self, order_id: str, attempt_id: str) -> None:
        """Called at most once per succeeded PaymentAttempt."""
        ...

    def can_pay(self, order_id: str, user) -> bool:
        """Whether ``user`` may confirm payment for the order."""
        ...


# =============================================================================
# Default Implementations
# =============================================================================


class NullEarningsProvider:
    """Reports zero earnings for every vendor."""

    def get_settled_earnings(self, vendor_id: str, currency: str) -> int:
        logger.debug(
            "No earnings provider configured, reporting zero earnings",
            extra={"vendor_id": vendor_id, "currency": currency},
        )
        return 0


class LoggingOrderService:
    """Logs order-paid notifications without acting on them."""

    def mark_paid(self, order_id: str, attempt_id: str) -> None:
        logger.info(
            "Order marked paid",
            extra={"order_id": order_id, "payment_attempt_id": attempt_id},
        )

    def can_pay(self, order_id: str, user) -> bool:
        # No order ownership to check against; every signed-in user is allowed.
        return True


# =============================================================================
# Loaders
# =============================================================================


def get_earnings_provider() -> EarningsProvider:
    path = getattr(
        settings,
        "VENDOR_EARNINGS_PROVIDER",
        "vendor_payments.collaborators.NullEarningsProvider",
    )
    return import_string(path)()


def get_order_service() -> OrderService:
    path = getattr(
        settings,
        "ORDER_SERVICE",
        "vendor_payments.collaborators.LoggingOrderService",
    )
    return import_string(path)()


__all__ = [
    "EarningsProvider",
    "OrderService",
    "NullEarningsProvider",
    "LoggingOrderService",
    "get_earnings_provider",
    "get_order_service",
]
