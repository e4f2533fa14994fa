"""
URL configuration for the vendor_payments app.

All routes are prefixed with /api/v1/vendor-payments/ when included in
the main URLconf.
"""

from django.urls import path

from vendor_payments.views import (
    AccountView,
    CheckoutConfirmView,
    OnboardingView,
    WithdrawalListCreateView,
)
from vendor_payments.webhooks.views import processor_webhook

app_name = "vendor_payments"

urlpatterns = [
    path("onboarding/", OnboardingView.as_view(), name="onboarding"),
    path("account/", AccountView.as_view(), name="account"),
    path("withdrawals/", WithdrawalListCreateView.as_view(), name="withdrawals"),
    path(
        "checkout/<uuid:attempt_id>/confirm/",
        CheckoutConfirmView.as_view(),
        name="checkout_confirm",
    ),
    # Webhook endpoints
    path("webhooks/stripe/", processor_webhook, name="processor_webhook"),
]
