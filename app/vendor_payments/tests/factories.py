"""
Factory Boy factories for vendor payment test data.

Usage:
    from vendor_payments.tests.factories import (
        VendorPaymentAccountFactory,
        PaymentAttemptFactory,
        WithdrawalFactory,
        WebhookEventFactory,
    )

    # A vendor that can receive payouts
    account = VendorPaymentAccountFactory(vendor_id="V1")

    # A vendor still going through verification
    account = VendorPaymentAccountFactory(pending=True)

    # A settled withdrawal
    withdrawal = WithdrawalFactory(status=WithdrawalStatus.COMPLETED)
"""

import time

import factory
from django.contrib.auth import get_user_model
from django.utils import timezone

from vendor_payments.models import (
    AccountStatusChange,
    PaymentAttempt,
    VendorPaymentAccount,
    WebhookEvent,
    Withdrawal,
)
from vendor_payments.state_machines import (
    AccountStatus,
    StatusChangeSource,
    WebhookEventStatus,
    WithdrawalStatus,
)


class UserFactory(factory.django.DjangoModelFactory):
    """Minimal auth user; the user's primary key is the vendor id in API views."""

    class Meta:
        model = get_user_model()
        skip_postgeneration_save = True

    username = factory.Sequence(lambda n: f"vendor{n}")
    email = factory.Sequence(lambda n: f"vendor{n}@example.com")
    password = factory.PostGenerationMethodCall("set_password", "testpass123")


class VendorPaymentAccountFactory(factory.django.DjangoModelFactory):
    """
    Factory for VendorPaymentAccount.

    Defaults to a READY account with all capability flags set.
    """

    class Meta:
        model = VendorPaymentAccount

    class Params:
        not_created = factory.Trait(
            status=AccountStatus.NOT_CREATED,
            processor_account_id=None,
            charges_enabled=False,
            payouts_enabled=False,
            details_submitted=False,
            flags_observed_at=None,
        )
        pending = factory.Trait(
            status=AccountStatus.PENDING_VERIFICATION,
            charges_enabled=False,
            payouts_enabled=False,
            details_submitted=False,
        )
        restricted = factory.Trait(
            status=AccountStatus.RESTRICTED,
            payouts_enabled=False,
        )

    vendor_id = factory.Sequence(lambda n: f"vendor-{n}")
    processor_account_id = factory.Sequence(lambda n: f"acct_factory{n}")
    email = factory.Sequence(lambda n: f"shop{n}@example.com")
    country = "GB"
    business_name = factory.Sequence(lambda n: f"Shop {n} Ltd")
    business_type = "company"
    status = AccountStatus.READY
    charges_enabled = True
    payouts_enabled = True
    details_submitted = True
    flags_observed_at = factory.LazyFunction(timezone.now)


class AccountStatusChangeFactory(factory.django.DjangoModelFactory):
    class Meta:
        model = AccountStatusChange

    account = factory.SubFactory(VendorPaymentAccountFactory)
    from_status = AccountStatus.PENDING_VERIFICATION
    to_status = AccountStatus.READY
    source = StatusChangeSource.WEBHOOK
    flags = factory.LazyAttribute(lambda o: o.account.capability_flags.as_dict())


class PaymentAttemptFactory(factory.django.DjangoModelFactory):
    """Factory for PaymentAttempt in INITIATED state."""

    class Meta:
        model = PaymentAttempt

    order_id = factory.Sequence(lambda n: f"order-{n}")
    processor_intent_id = factory.Sequence(lambda n: f"pi_factory{n}")
    client_secret = factory.LazyAttribute(lambda o: f"{o.processor_intent_id}_secret_test")
    amount_minor = 2500
    currency = "gbp"


class WithdrawalFactory(factory.django.DjangoModelFactory):
    """Factory for Withdrawal in PROCESSING state with a transfer attached."""

    class Meta:
        model = Withdrawal

    vendor_id = factory.Sequence(lambda n: f"vendor-{n}")
    amount_minor = 2000
    currency = "gbp"
    status = WithdrawalStatus.PROCESSING
    processor_transfer_id = factory.Sequence(lambda n: f"tr_factory{n}")
    mock_mode = True


class WebhookEventFactory(factory.django.DjangoModelFactory):
    """
    Factory for WebhookEvent.

    Pass ``data_object`` to set payload.data.object.
    """

    class Meta:
        model = WebhookEvent

    class Params:
        data_object = None
        created = factory.LazyFunction(lambda: int(time.time()))

    processor_event_id = factory.Sequence(lambda n: f"evt_factory{n}")
    event_type = "account.updated"
    status = WebhookEventStatus.PENDING
    payload = factory.LazyAttribute(
        lambda o: {
            "id": o.processor_event_id,
            "type": o.event_type,
            "created": o.created,
            "data": {"object": o.data_object or {}},
        }
    )
