"""
Permission classes for the vendor payments API.

- CanPayForOrder: the user may confirm payment for the attempt's order

Orders are owned outside this app, so ownership is answered by the
configured OrderService (ORDER_SERVICE setting).
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from rest_framework import permissions

from vendor_payments.collaborators import get_order_service

if TYPE_CHECKING:
    from rest_framework.request import Request
    from rest_framework.views import APIView

    from vendor_payments.models import PaymentAttempt


class CanPayForOrder(permissions.BasePermission):
    """Allows confirming a PaymentAttempt only to users who may pay its order."""

    message = "You cannot pay for this order."

    def has_object_permission(self, request: Request, view: APIView, obj: PaymentAttempt) -> bool:
        if not request.user.is_authenticated:
            return False
        return bool(get_order_service().can_pay(obj.order_id, request.user))


__all__ = ["CanPayForOrder"]
