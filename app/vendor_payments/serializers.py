"""
DRF serializers for vendor payments.

Request serializers validate input before it reaches the services;
response serializers shape models and service results for the API.
Client secrets and processor error bodies never appear in a response.

Related files:
    - views.py: Vendor payment API views
    - services/: AccountLifecycleService, PaymentConfirmationService,
      PayoutLedgerService
"""

from __future__ import annotations

from decimal import Decimal

from django.conf import settings
from drf_spectacular.utils import OpenApiExample, extend_schema_serializer
from rest_framework import serializers

from vendor_payments.exceptions import PaymentValidationError
from vendor_payments.models import VendorPaymentAccount, Withdrawal
from vendor_payments.money import normalize_currency, to_minor_units
from vendor_payments.services.ledger import MAX_PAGE_SIZE
from vendor_payments.state_machines import PaymentAttemptStatus, WithdrawalStatus

# =============================================================================
# Accounts
# =============================================================================


class OnboardingRequestSerializer(serializers.Serializer):
    """
    Input for POST onboarding/.

    Usage:
        serializer = OnboardingRequestSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
    """

    email = serializers.EmailField(help_text="Contact email passed to Stripe")
    business_name = serializers.CharField(max_length=255)
    business_type = serializers.ChoiceField(
        choices=["company", "individual", "non_profit", "government_entity"],
        default="company",
        required=False,
    )
    country = serializers.CharField(
        min_length=2,
        max_length=2,
        required=False,
        help_text="ISO 3166-1 alpha-2 country code; defaults to the platform country",
    )
    refresh_url = serializers.URLField(
        help_text="Where Stripe sends the vendor if the link has expired",
    )
    return_url = serializers.URLField(
        help_text="Where Stripe sends the vendor after onboarding",
    )

    def validate_country(self, value: str) -> str:
        return value.upper()


class VendorPaymentAccountSerializer(serializers.ModelSerializer):
    """Account status and capability flags for the authenticated vendor."""

    is_ready_for_payouts = serializers.BooleanField(read_only=True)

    class Meta:
        model = VendorPaymentAccount
        fields = [
            "vendor_id",
            "processor_account_id",
            "status",
            "charges_enabled",
            "payouts_enabled",
            "details_submitted",
            "flags_observed_at",
            "is_ready_for_payouts",
            "business_name",
            "country",
        ]
        read_only_fields = fields


class OnboardingResponseSerializer(serializers.Serializer):
    account = VendorPaymentAccountSerializer()
    onboarding_url = serializers.URLField()


# =============================================================================
# Withdrawals
# =============================================================================


@extend_schema_serializer(
    examples=[
        OpenApiExample(
            "Withdraw 20.00 GBP",
            value={"amount": "20.00", "currency": "gbp"},
            request_only=True,
        ),
    ]
)
class WithdrawalRequestSerializer(serializers.Serializer):
    """
    Input for POST withdrawals/.

    ``amount`` is in major units; validated_data carries ``amount_minor``
    converted with the currency's precision. ``currency`` defaults to
    VENDOR_SETTLEMENT_CURRENCY.
    """

    amount = serializers.DecimalField(max_digits=14, decimal_places=3)
    currency = serializers.CharField(min_length=3, max_length=3, required=False)

    def validate_currency(self, value: str) -> str:
        try:
            return normalize_currency(value)
        except PaymentValidationError as e:
            raise serializers.ValidationError(e.message) from e

    def validate(self, attrs: dict) -> dict:
        amount: Decimal = attrs["amount"]
        if not attrs.get("currency"):
            attrs["currency"] = normalize_currency(settings.VENDOR_SETTLEMENT_CURRENCY)
        amount_minor = to_minor_units(amount, attrs["currency"])
        if amount_minor <= 0:
            raise serializers.ValidationError({"amount": "Amount must be greater than zero."})
        attrs["amount_minor"] = amount_minor
        return attrs


class WithdrawalListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(
        choices=WithdrawalStatus.values,
        required=False,
    )
    page = serializers.IntegerField(min_value=1, default=1, required=False)
    page_size = serializers.IntegerField(
        min_value=1,
        max_value=MAX_PAGE_SIZE,
        default=10,
        required=False,
    )

    def to_internal_value(self, data):
        # Status filters are case-insensitive
        if "status" in data and isinstance(data.get("status"), str):
            data = data.copy()
            data["status"] = data["status"].strip().upper()
        return super().to_internal_value(data)


@extend_schema_serializer(
    examples=[
        OpenApiExample(
            "Processing withdrawal",
            value={
                "id": "3f0c6c52-9d0f-4a35-9b51-6f7f5b1e7a10",
                "amount_minor": 2000,
                "amount": "20.00",
                "currency": "gbp",
                "status": "PROCESSING",
                "processor_transfer_id": "tr_1Nv0aB2eZvKYlo2C",
                "estimated_arrival": "2024-01-17",
                "processed_at": None,
                "failure_reason": "",
                "mock_mode": True,
                "created_at": "2024-01-15T10:30:00Z",
            },
            response_only=True,
        ),
    ]
)
class WithdrawalSerializer(serializers.ModelSerializer):
    amount = serializers.DecimalField(max_digits=14, decimal_places=3, read_only=True)

    class Meta:
        model = Withdrawal
        fields = [
            "id",
            "amount_minor",
            "amount",
            "currency",
            "status",
            "processor_transfer_id",
            "estimated_arrival",
            "processed_at",
            "failure_reason",
            "mock_mode",
            "created_at",
        ]
        read_only_fields = fields


class WithdrawalSummarySerializer(serializers.Serializer):
    total_withdrawn = serializers.IntegerField(help_text="Sum of COMPLETED withdrawals, minor units")
    pending_count = serializers.IntegerField()
    completed_count = serializers.IntegerField()
    total_count = serializers.IntegerField()


class PaginationSerializer(serializers.Serializer):
    page = serializers.IntegerField()
    page_size = serializers.IntegerField()
    total = serializers.IntegerField()
    total_pages = serializers.IntegerField()
    has_next = serializers.BooleanField()
    has_previous = serializers.BooleanField()


class WithdrawalListResponseSerializer(serializers.Serializer):
    results = WithdrawalSerializer(many=True)
    pagination = PaginationSerializer()
    summary = WithdrawalSummarySerializer()


# =============================================================================
# Checkout
# =============================================================================


class ConfirmPaymentRequestSerializer(serializers.Serializer):
    return_url = serializers.URLField(
        help_text="Where the customer lands after any 3-D Secure challenge",
    )
    payment_method = serializers.CharField(
        max_length=255,
        required=False,
        help_text="Stripe PaymentMethod id (pm_xxx)",
    )


class ConfirmationOutcomeSerializer(serializers.Serializer):
    """Customer-facing result of a confirmation round-trip."""

    attempt_id = serializers.UUIDField()
    status = serializers.ChoiceField(choices=PaymentAttemptStatus.values)
    message = serializers.CharField()
    is_error = serializers.BooleanField()
    next_action_url = serializers.URLField(allow_null=True)


class ErrorResponseSerializer(serializers.Serializer):
    error = serializers.CharField()
    error_code = serializers.CharField()
    details = serializers.DictField(required=False)


__all__ = [
    "OnboardingRequestSerializer",
    "VendorPaymentAccountSerializer",
    "OnboardingResponseSerializer",
    "WithdrawalRequestSerializer",
    "WithdrawalListQuerySerializer",
    "WithdrawalSerializer",
    "WithdrawalSummarySerializer",
    "WithdrawalListResponseSerializer",
    "ConfirmPaymentRequestSerializer",
    "ConfirmationOutcomeSerializer",
    "ErrorResponseSerializer",
]
