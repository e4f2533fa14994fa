"""
Payment processor interface used by the vendor payment services.

StripeAdapter satisfies this protocol with classmethods; tests pass in
fakes with the same method names. Results are plain dataclasses so no
SDK object ever reaches a service.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Any, Protocol

if TYPE_CHECKING:
    from vendor_payments.adapters.stripe_adapter import (
        AccountResult,
        IntentConfirmationResult,
        PaymentIntentResult,
        TransferResult,
    )


class PaymentProcessor(Protocol):
    def create_account(
        self,
        email: str,
        country: str,
        business_name: str,
        business_type: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> AccountResult: ...

    def update_account(
        self,
        account_id: str,
        business_name: str,
        business_type: str,
    ) -> AccountResult: ...

    def retrieve_account(self, account_id: str) -> AccountResult: ...

    def create_account_link(
        self,
        account_id: str,
        refresh_url: str,
        return_url: str,
    ) -> str: ...

    def create_transfer(
        self,
        amount_minor: int,
        currency: str,
        destination_account: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> TransferResult: ...

    def retrieve_transfer(self, transfer_id: str) -> TransferResult: ...

    def list_recent_transfers(
        self,
        created_after: datetime,
        page_size: int = 100,
    ) -> list[TransferResult]: ...

    def create_payment_intent(
        self,
        amount_minor: int,
        currency: str,
        idempotency_key: str,
        metadata: dict[str, str] | None = None,
    ) -> PaymentIntentResult: ...

    def confirm_payment_intent(
        self,
        client_secret: str,
        return_url: str,
        payment_method: str | None = None,
    ) -> IntentConfirmationResult: ...

    def verify_webhook_signature(
        self,
        payload: bytes,
        signature: str,
    ) -> dict[str, Any]: ...


__all__ = ["PaymentProcessor"]
