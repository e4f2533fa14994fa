"""
Vendor payments app for Stripe Connect marketplaces.

This app handles:
- Provisioning a vendor's connected account and onboarding links
- Driving a checkout payment attempt to a final state with safe messages
- Recording vendor withdrawals and reconciling them with Stripe transfers
- Applying signed Stripe webhook events exactly once

Usage:
    from vendor_payments.services import AccountLifecycleService, PayoutLedgerService

    ref = AccountLifecycleService().create_account(vendor_id, email, business_name)
    withdrawal = PayoutLedgerService().request_withdrawal(vendor_id, 2000, "gbp")
"""
