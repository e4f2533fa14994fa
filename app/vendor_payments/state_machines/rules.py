"""
Pure status derivation rules.

Kept free of ORM access so the rules can be tested without a database
and reused by every write path (creation, refresh, webhooks).
"""

from __future__ import annotations

from dataclasses import dataclass

from vendor_payments.state_machines.states import AccountStatus


@dataclass(frozen=True)
class CapabilityFlags:
    """Processor-reported capabilities of a connected account."""

    charges_enabled: bool = False
    payouts_enabled: bool = False
    details_submitted: bool = False

    @property
    def all_enabled(self) -> bool:
        return self.charges_enabled and self.payouts_enabled and self.details_submitted

    def as_dict(self) -> dict[str, bool]:
        return {
            "charges_enabled": self.charges_enabled,
            "payouts_enabled": self.payouts_enabled,
            "details_submitted": self.details_submitted,
        }


def derive_account_status(
    current: str,
    flags: CapabilityFlags,
    has_account: bool = True,
) -> str:
    """
    Compute the account status implied by a capability snapshot.

    Args:
        current: The persisted AccountStatus value
        flags: The capability snapshot being applied
        has_account: Whether a processor account id is stored

    Returns:
        The AccountStatus value the account should move to

    Rules:
        - No processor account: always NOT_CREATED
        - All three flags true: READY
        - Any flag false once the account has been READY (or is
          RESTRICTED already): RESTRICTED
        - Otherwise: PENDING_VERIFICATION
    """
    if not has_account:
        return AccountStatus.NOT_CREATED

    if flags.all_enabled:
        return AccountStatus.READY

    if current in (AccountStatus.READY, AccountStatus.RESTRICTED):
        return AccountStatus.RESTRICTED

    return AccountStatus.PENDING_VERIFICATION
