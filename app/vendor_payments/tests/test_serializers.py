"""
Tests for vendor payment request serializers.
"""

from vendor_payments.serializers import (
    OnboardingRequestSerializer,
    WithdrawalListQuerySerializer,
    WithdrawalRequestSerializer,
)


class TestWithdrawalRequestSerializer:
    def test_converts_amount_to_minor_units(self):
        serializer = WithdrawalRequestSerializer(data={"amount": "20.00", "currency": "GBP"})

        assert serializer.is_valid(), serializer.errors
        assert serializer.validated_data["amount_minor"] == 2000
        assert serializer.validated_data["currency"] == "gbp"

    def test_zero_decimal_currency(self):
        serializer = WithdrawalRequestSerializer(data={"amount": "500", "currency": "jpy"})

        assert serializer.is_valid(), serializer.errors
        assert serializer.validated_data["amount_minor"] == 500

    def test_currency_defaults_to_settlement_currency(self, settings):
        settings.VENDOR_SETTLEMENT_CURRENCY = "EUR"
        serializer = WithdrawalRequestSerializer(data={"amount": "1.50"})

        assert serializer.is_valid(), serializer.errors
        assert serializer.validated_data["currency"] == "eur"
        assert serializer.validated_data["amount_minor"] == 150

    def test_rejects_zero(self):
        serializer = WithdrawalRequestSerializer(data={"amount": "0.00", "currency": "gbp"})

        assert not serializer.is_valid()
        assert "amount" in serializer.errors

    def test_rejects_negative(self):
        serializer = WithdrawalRequestSerializer(data={"amount": "-5.00", "currency": "gbp"})

        assert not serializer.is_valid()
        assert "amount" in serializer.errors

    def test_rejects_bad_currency(self):
        serializer = WithdrawalRequestSerializer(data={"amount": "5.00", "currency": "g1p"})

        assert not serializer.is_valid()
        assert "currency" in serializer.errors


class TestWithdrawalListQuerySerializer:
    def test_status_is_case_insensitive(self):
        serializer = WithdrawalListQuerySerializer(data={"status": "completed"})

        assert serializer.is_valid(), serializer.errors
        assert serializer.validated_data["status"] == "COMPLETED"

    def test_paging_defaults(self):
        serializer = WithdrawalListQuerySerializer(data={})

        assert serializer.is_valid(), serializer.errors
        assert serializer.validated_data["page"] == 1
        assert serializer.validated_data["page_size"] == 10

    def test_unknown_status_rejected(self):
        serializer = WithdrawalListQuerySerializer(data={"status": "pending"})

        assert not serializer.is_valid()
        assert "status" in serializer.errors

    def test_page_size_capped(self):
        serializer = WithdrawalListQuerySerializer(data={"page_size": 101})

        assert not serializer.is_valid()
        assert "page_size" in serializer.errors


class TestOnboardingRequestSerializer:
    def test_country_is_uppercased(self):
        serializer = OnboardingRequestSerializer(
            data={
                "email": "shop@example.com",
                "business_name": "Acme Ltd",
                "country": "gb",
                "refresh_url": "https://shop.example.com/onboarding/refresh",
                "return_url": "https://shop.example.com/onboarding/done",
            }
        )

        assert serializer.is_valid(), serializer.errors
        assert serializer.validated_data["country"] == "GB"
        assert serializer.validated_data["business_type"] == "company"
