"""
Payout ledger for vendor withdrawals.

Withdrawal creation follows the two-phase pattern used for money leaving
the platform:

1. Phase 1 (serialized per vendor): take the vendor's Redis lock, lock
   the vendor's account row, check the available balance and insert a
   PROCESSING row. Commit.
2. Phase 2 (outside the transaction): create the Stripe transfer with an
   idempotency key derived from the withdrawal id. On success attach the
   transfer id; on a processor error mark the row FAILED and re-raise.

Webhooks (transfer.paid / transfer.failed / transfer.reversed) and the
periodic reconciliation sweep move PROCESSING rows to their terminal
state. Terminal rows are never changed again.

Usage:
    from vendor_payments.services import PayoutLedgerService

    ledger = PayoutLedgerService()
    withdrawal = ledger.request_withdrawal("V1", 2000, "gbp")
    rows, pagination = ledger.list_withdrawals("V1", status="completed")
    summary = ledger.summarize("V1")
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import timedelta

from django.conf import settings
from django.db.models import Count, F, Q, Sum
from django.db.models.functions import Coalesce
from django.utils import timezone

from core.helpers import paginate
from core.services import BaseService, ServiceResult
from vendor_payments.adapters import IdempotencyKeyGenerator, StripeAdapter, TransferResult
from vendor_payments.adapters.protocols import PaymentProcessor
from vendor_payments.collaborators import EarningsProvider, get_earnings_provider
from vendor_payments.exceptions import (
    AccountNotReadyError,
    InsufficientBalanceError,
    PaymentValidationError,
    ProviderError,
    ProviderRejectedError,
    ProviderUnavailableError,
)
from vendor_payments.locks import withdrawal_lock
from vendor_payments.models import VendorPaymentAccount, Withdrawal
from vendor_payments.models.withdrawal import BALANCE_COMMITTED_STATUSES
from vendor_payments.money import normalize_currency
from vendor_payments.services.accounts import AccountLifecycleService
from vendor_payments.state_machines import WithdrawalStatus

MAX_PAGE_SIZE = 100


# =============================================================================
# Result Types
# =============================================================================


@dataclass(frozen=True)
class WithdrawalSummary:
    """Totals derived from the vendor's withdrawal rows."""

    total_withdrawn: int
    pending_count: int
    completed_count: int
    total_count: int


@dataclass
class ReconciliationResult:
    checked: int = 0
    completed: int = 0
    failed: int = 0
    unresolved: int = 0
    flagged: int = 0


def _parse_uuid(value) -> uuid.UUID | None:
    if value is None:
        return None
    try:
        return uuid.UUID(str(value))
    except ValueError:
        return None


# =============================================================================
# Payout Ledger Service
# =============================================================================


class PayoutLedgerService(BaseService):
    """
    Record, list and summarize vendor withdrawals.

    Balance rule:
        available = settled earnings - sum(PROCESSING + COMPLETED withdrawals)

    A withdrawal is refused unless the requested amount fits in the
    available balance at the moment the vendor's row lock is held, so
    two concurrent requests can never both spend the same balance.
    """

    def __init__(
        self,
        processor: PaymentProcessor | None = None,
        earnings_provider: EarningsProvider | None = None,
        account_service: AccountLifecycleService | None = None,
    ):
        self.processor = processor or StripeAdapter
        self.earnings_provider = earnings_provider or get_earnings_provider()
        self.account_service = account_service or AccountLifecycleService(
            processor=self.processor
        )

    # =========================================================================
    # Balance
    # =========================================================================

    def get_available_balance(self, vendor_id: str, currency: str) -> int:
        """Settled earnings minus amounts committed to withdrawals, in minor units."""
        currency = normalize_currency(currency)
        earnings = self.earnings_provider.get_settled_earnings(vendor_id, currency)
        committed = Withdrawal.objects.filter(
            vendor_id=vendor_id,
            currency=currency,
            status__in=BALANCE_COMMITTED_STATUSES,
        ).aggregate(total=Coalesce(Sum("amount_minor"), 0))["total"]
        return earnings - committed

    # =========================================================================
    # Withdrawal Requests
    # =========================================================================

    def request_withdrawal(
        self,
        vendor_id: str,
        amount_minor: int,
        currency: str,
    ) -> Withdrawal:
        """
        Request a payout of ``amount_minor`` to the vendor's account.

        Returns:
            The Withdrawal, PROCESSING with a transfer id attached

        Raises:
            PaymentValidationError: Non-positive amount or bad currency
            AccountNotReadyError: Vendor cannot receive payouts yet
            InsufficientBalanceError: Amount exceeds the available balance
            LockAcquisitionError: Another request for the vendor is in progress
            ProviderUnavailableError / ProviderRejectedError: Transfer
                failed; the withdrawal has been marked FAILED
        """
        logger = self.get_logger()
        currency = normalize_currency(currency)
        if isinstance(amount_minor, bool) or not isinstance(amount_minor, int) or amount_minor <= 0:
            raise PaymentValidationError(
                "Withdrawal amount must be a positive integer in minor units",
                details={"amount_minor": amount_minor},
            )

        if not self.account_service.is_ready_for_payouts(vendor_id):
            raise AccountNotReadyError(
                "Complete payment onboarding before requesting a withdrawal",
                details={"vendor_id": vendor_id},
            )

        logger.info(
            "Withdrawal requested",
            extra={"vendor_id": vendor_id, "amount_minor": amount_minor, "currency": currency},
        )

        # Phase 1: reserve the balance
        with withdrawal_lock(vendor_id):
            withdrawal, destination = self._reserve(vendor_id, amount_minor, currency)

        # Phase 2: move the money
        try:
            transfer = self.processor.create_transfer(
                amount_minor=amount_minor,
                currency=currency,
                destination_account=destination,
                idempotency_key=IdempotencyKeyGenerator.generate(
                    "withdrawal_transfer", withdrawal.id
                ),
                metadata={"withdrawal_id": str(withdrawal.id), "vendor_id": vendor_id},
            )
        except ProviderError as e:
            self._fail_after_transfer_error(withdrawal.pk, e)
            raise

        return self._record_transfer(withdrawal.pk, transfer)

    def _reserve(
        self,
        vendor_id: str,
        amount_minor: int,
        currency: str,
    ) -> tuple[Withdrawal, str]:
        with self.atomic():
            account = (
                VendorPaymentAccount.objects.select_for_update()
                .filter(vendor_id=vendor_id)
                .first()
            )
            if account is None or not account.is_ready_for_payouts:
                raise AccountNotReadyError(
                    "Complete payment onboarding before requesting a withdrawal",
                    details={"vendor_id": vendor_id},
                )

            available = self.get_available_balance(vendor_id, currency)
            if amount_minor > available:
                self.get_logger().info(
                    "Withdrawal refused, insufficient balance",
                    extra={
                        "vendor_id": vendor_id,
                        "requested": amount_minor,
                        "available": available,
                    },
                )
                raise InsufficientBalanceError(
                    "Withdrawal amount exceeds your available balance",
                    details={
                        "requested": amount_minor,
                        "available": max(available, 0),
                        "currency": currency,
                    },
                )

            withdrawal = Withdrawal.objects.create(
                vendor_id=vendor_id,
                amount_minor=amount_minor,
                currency=currency,
                metadata={"destination_account": account.processor_account_id},
            )

        return withdrawal, account.processor_account_id

    def _record_transfer(self, withdrawal_pk: uuid.UUID, transfer: TransferResult) -> Withdrawal:
        arrival_days = getattr(settings, "WITHDRAWAL_ESTIMATED_ARRIVAL_DAYS", 2)

        with self.atomic():
            withdrawal = Withdrawal.objects.select_for_update().get(pk=withdrawal_pk)
            if withdrawal.is_terminal:
                # A webhook already settled it
                return withdrawal
            if withdrawal.processor_transfer_id is None:
                withdrawal.processor_transfer_id = transfer.id
            withdrawal.estimated_arrival = timezone.localdate() + timedelta(days=arrival_days)
            withdrawal.mock_mode = not transfer.livemode
            withdrawal.save()

        self.get_logger().info(
            "Transfer created for withdrawal",
            extra={
                "withdrawal_id": str(withdrawal.id),
                "transfer_id": transfer.id,
                "mock_mode": withdrawal.mock_mode,
            },
        )
        return withdrawal

    def _fail_after_transfer_error(self, withdrawal_pk: uuid.UUID, error: ProviderError) -> None:
        with self.atomic():
            withdrawal = Withdrawal.objects.select_for_update().get(pk=withdrawal_pk)
            if withdrawal.is_terminal:
                return
            if isinstance(error, ProviderUnavailableError):
                # The transfer may exist at Stripe even though the call failed
                withdrawal.metadata = {**withdrawal.metadata, "provider_outcome_unknown": True}
            withdrawal.fail(reason=f"{error.error_code}: {error.reason_code or 'unknown'}")
            withdrawal.save()

        self.get_logger().warning(
            "Transfer failed, withdrawal marked FAILED",
            extra={
                "withdrawal_id": str(withdrawal_pk),
                "error_code": error.error_code,
                "reason_code": error.reason_code,
            },
        )

    # =========================================================================
    # Queries
    # =========================================================================

    def list_withdrawals(
        self,
        vendor_id: str,
        status: str | None = None,
        page: int = 1,
        page_size: int = 10,
    ) -> tuple[list[Withdrawal], dict]:
        """
        Page through a vendor's withdrawals, newest processed first.

        Rows still PROCESSING (no processed_at) are listed first.

        Args:
            status: Case-insensitive WithdrawalStatus value

        Raises:
            PaymentValidationError: Unknown status or bad paging values
        """
        if page < 1 or page_size < 1 or page_size > MAX_PAGE_SIZE:
            raise PaymentValidationError(
                f"page must be >= 1 and page_size between 1 and {MAX_PAGE_SIZE}",
                details={"page": page, "page_size": page_size},
            )

        queryset = Withdrawal.objects.filter(vendor_id=vendor_id)
        if status:
            normalized = str(status).strip().upper()
            if normalized not in WithdrawalStatus.values:
                raise PaymentValidationError(
                    "Unknown withdrawal status",
                    details={"status": status, "allowed": list(WithdrawalStatus.values)},
                )
            queryset = queryset.filter(status=normalized)

        queryset = queryset.order_by(F("processed_at").desc(nulls_first=True), "-created_at")

        return paginate(queryset, page, page_size)

    def summarize(self, vendor_id: str, currency: str | None = None) -> WithdrawalSummary:
        """
        Aggregate the vendor's withdrawals in a single query.

        total_withdrawn sums COMPLETED amounts only; pending_count counts
        PROCESSING rows.
        """
        queryset = Withdrawal.objects.filter(vendor_id=vendor_id)
        if currency:
            queryset = queryset.filter(currency=normalize_currency(currency))

        totals = queryset.aggregate(
            total_withdrawn=Coalesce(
                Sum("amount_minor", filter=Q(status=WithdrawalStatus.COMPLETED)), 0
            ),
            pending_count=Count("id", filter=Q(status=WithdrawalStatus.PROCESSING)),
            completed_count=Count("id", filter=Q(status=WithdrawalStatus.COMPLETED)),
            total_count=Count("id"),
        )
        return WithdrawalSummary(**totals)

    # =========================================================================
    # Transfer Status Updates
    # =========================================================================

    def _locate_for_update(
        self,
        transfer_id: str | None,
        withdrawal_id=None,
    ) -> Withdrawal | None:
        queryset = Withdrawal.objects.select_for_update()
        withdrawal = None
        if transfer_id:
            withdrawal = queryset.filter(processor_transfer_id=transfer_id).first()
        if withdrawal is None:
            pk = _parse_uuid(withdrawal_id)
            if pk is not None:
                withdrawal = queryset.filter(pk=pk).first()
        return withdrawal

    def _transfer_mismatch(self, withdrawal: Withdrawal, transfer_id: str | None) -> bool:
        return bool(
            transfer_id
            and withdrawal.processor_transfer_id
            and withdrawal.processor_transfer_id != transfer_id
        )

    def attach_transfer(
        self,
        withdrawal_id,
        transfer_id: str,
        livemode: bool | None = None,
    ) -> ServiceResult[Withdrawal | None]:
        """Record the transfer id on a PROCESSING withdrawal (transfer.created)."""
        logger = self.get_logger()
        with self.atomic():
            withdrawal = self._locate_for_update(transfer_id, withdrawal_id)
            if withdrawal is None:
                logger.info(
                    "No withdrawal for transfer, ignoring",
                    extra={"transfer_id": transfer_id, "withdrawal_id": str(withdrawal_id)},
                )
                return ServiceResult.success(None)

            if withdrawal.processor_transfer_id == transfer_id:
                return ServiceResult.success(withdrawal)

            if self._transfer_mismatch(withdrawal, transfer_id):
                logger.error(
                    "Withdrawal already linked to a different transfer",
                    extra={
                        "withdrawal_id": str(withdrawal.id),
                        "stored_transfer_id": withdrawal.processor_transfer_id,
                        "transfer_id": transfer_id,
                    },
                )
                return ServiceResult.failure(
                    "Withdrawal already linked to a different transfer",
                    error_code="TRANSFER_MISMATCH",
                )

            if withdrawal.is_terminal:
                self._log_terminal_update(withdrawal, "attach_transfer", transfer_id)
                return ServiceResult.success(withdrawal)

            withdrawal.processor_transfer_id = transfer_id
            if livemode is not None:
                withdrawal.mock_mode = not livemode
            withdrawal.save()

        return ServiceResult.success(withdrawal)

    def complete_withdrawal(
        self,
        transfer_id: str | None,
        withdrawal_id=None,
    ) -> ServiceResult[Withdrawal | None]:
        """
        Move a PROCESSING withdrawal to COMPLETED.

        Already-COMPLETED rows are an idempotent success; FAILED rows are
        left untouched.
        """
        logger = self.get_logger()
        with self.atomic():
            withdrawal = self._locate_for_update(transfer_id, withdrawal_id)
            if withdrawal is None:
                logger.info(
                    "No withdrawal for transfer, ignoring",
                    extra={"transfer_id": transfer_id, "withdrawal_id": str(withdrawal_id)},
                )
                return ServiceResult.success(None)

            if withdrawal.status == WithdrawalStatus.COMPLETED:
                return ServiceResult.success(withdrawal)

            if withdrawal.is_terminal:
                self._log_terminal_update(withdrawal, "complete", transfer_id)
                return ServiceResult.success(withdrawal)

            if self._transfer_mismatch(withdrawal, transfer_id):
                logger.error(
                    "Completion for a transfer not linked to the withdrawal",
                    extra={
                        "withdrawal_id": str(withdrawal.id),
                        "stored_transfer_id": withdrawal.processor_transfer_id,
                        "transfer_id": transfer_id,
                    },
                )
                return ServiceResult.failure(
                    "Withdrawal already linked to a different transfer",
                    error_code="TRANSFER_MISMATCH",
                )

            if withdrawal.processor_transfer_id is None and transfer_id:
                withdrawal.processor_transfer_id = transfer_id
            withdrawal.complete()
            withdrawal.save()

        logger.info(
            "Withdrawal completed",
            extra={"withdrawal_id": str(withdrawal.id), "transfer_id": transfer_id},
        )
        return ServiceResult.success(withdrawal)

    def fail_withdrawal(
        self,
        transfer_id: str | None,
        reason: str,
        withdrawal_id=None,
    ) -> ServiceResult[Withdrawal | None]:
        """
        Move a PROCESSING withdrawal to FAILED, releasing its amount.

        Already-FAILED rows are an idempotent success; COMPLETED rows are
        left untouched.
        """
        logger = self.get_logger()
        with self.atomic():
            withdrawal = self._locate_for_update(transfer_id, withdrawal_id)
            if withdrawal is None:
                logger.info(
                    "No withdrawal for transfer, ignoring",
                    extra={"transfer_id": transfer_id, "withdrawal_id": str(withdrawal_id)},
                )
                return ServiceResult.success(None)

            if withdrawal.status == WithdrawalStatus.FAILED:
                return ServiceResult.success(withdrawal)

            if withdrawal.is_terminal:
                self._log_terminal_update(withdrawal, "fail", transfer_id)
                return ServiceResult.success(withdrawal)

            if withdrawal.processor_transfer_id is None and transfer_id:
                withdrawal.processor_transfer_id = transfer_id
            withdrawal.fail(reason=reason)
            withdrawal.save()

        logger.warning(
            "Withdrawal failed",
            extra={
                "withdrawal_id": str(withdrawal.id),
                "transfer_id": transfer_id,
                "reason": reason,
            },
        )
        return ServiceResult.success(withdrawal)

    def _log_terminal_update(
        self,
        withdrawal: Withdrawal,
        action: str,
        transfer_id: str | None,
    ) -> None:
        log_context = {
            "withdrawal_id": str(withdrawal.id),
            "current_status": withdrawal.status,
            "action": action,
            "transfer_id": transfer_id,
        }
        if withdrawal.metadata.get("provider_outcome_unknown") and action != "fail":
            self.get_logger().error(
                "Transfer activity for a withdrawal failed on an unknown provider outcome",
                extra=log_context,
            )
            return
        self.get_logger().warning(
            "Ignoring update for terminal withdrawal",
            extra=log_context,
        )

    def _flag_for_review(self, withdrawal_pk, reason: str) -> None:
        """Mark a PROCESSING withdrawal needs_review without changing its status."""
        with self.atomic():
            withdrawal = Withdrawal.objects.select_for_update().filter(pk=withdrawal_pk).first()
            if withdrawal is None or withdrawal.is_terminal:
                return
            withdrawal.metadata = {
                **withdrawal.metadata,
                "needs_review": True,
                "review_reason": reason,
            }
            withdrawal.save(update_fields=["metadata", "updated_at"])

        self.get_logger().error(
            "No processor transfer found for stale withdrawal; manual review required",
            extra={
                "withdrawal_id": str(withdrawal.id),
                "vendor_id": withdrawal.vendor_id,
                "amount_minor": withdrawal.amount_minor,
                "reason": reason,
            },
        )

    # =========================================================================
    # Reconciliation
    # =========================================================================

    def reconcile_stale_withdrawals(
        self,
        older_than: timedelta | None = None,
    ) -> ReconciliationResult:
        """
        Resolve PROCESSING withdrawals that webhooks never settled.

        - With a transfer id: retrieve it; reversed -> FAILED, else COMPLETED
        - Without one: look for a recent transfer carrying the withdrawal id
          in its metadata; attach + COMPLETED if found. When none turns up the
          row stays PROCESSING (its balance stays reserved) and is flagged
          needs_review for an operator
        - Rows Stripe cannot answer for right now are left PROCESSING
        """
        logger = self.get_logger()
        if older_than is None:
            older_than = timedelta(
                minutes=getattr(settings, "WITHDRAWAL_RECONCILE_AFTER_MINUTES", 60)
            )
        cutoff = timezone.now() - older_than

        stale = list(
            Withdrawal.objects.filter(
                status=WithdrawalStatus.PROCESSING,
                created_at__lt=cutoff,
            ).order_by("created_at")
        )
        result = ReconciliationResult()
        if not stale:
            return result

        logger.info("Reconciling stale withdrawals", extra={"count": len(stale)})

        recent_by_withdrawal: dict[str, TransferResult] | None = None
        listing_failed = False

        for withdrawal in stale:
            result.checked += 1
            try:
                if withdrawal.processor_transfer_id:
                    transfer = self.processor.retrieve_transfer(withdrawal.processor_transfer_id)
                else:
                    if listing_failed:
                        result.unresolved += 1
                        continue
                    if recent_by_withdrawal is None:
                        transfers = self.processor.list_recent_transfers(
                            created_after=stale[0].created_at - timedelta(minutes=5),
                        )
                        recent_by_withdrawal = {
                            t.metadata.get("withdrawal_id"): t
                            for t in transfers
                            if t.metadata.get("withdrawal_id")
                        }
                    transfer = recent_by_withdrawal.get(str(withdrawal.id))
            except ProviderUnavailableError:
                if not withdrawal.processor_transfer_id:
                    listing_failed = True
                result.unresolved += 1
                logger.warning(
                    "Processor unavailable during reconciliation",
                    extra={"withdrawal_id": str(withdrawal.id)},
                )
                continue
            except ProviderRejectedError as e:
                result.unresolved += 1
                logger.error(
                    "Processor rejected reconciliation lookup",
                    extra={"withdrawal_id": str(withdrawal.id), "reason_code": e.reason_code},
                )
                continue

            if transfer is None:
                self._flag_for_review(
                    withdrawal.pk, "No processor transfer found during reconciliation"
                )
                result.flagged += 1
            elif transfer.reversed:
                self.fail_withdrawal(
                    transfer.id,
                    "Transfer reversed",
                    withdrawal_id=withdrawal.id,
                )
                result.failed += 1
            else:
                self.complete_withdrawal(transfer.id, withdrawal_id=withdrawal.id)
                result.completed += 1

        logger.info(
            "Withdrawal reconciliation finished",
            extra={
                "checked": result.checked,
                "completed": result.completed,
                "failed": result.failed,
                "unresolved": result.unresolved,
                "flagged": result.flagged,
            },
        )
        return result


__all__ = [
    "PayoutLedgerService",
    "ReconciliationResult",
    "WithdrawalSummary",
]
