"""
URL configuration for the marketplace payments service.

URL Structure:
    /                                              - API documentation (ReDoc)
    /schema/                                       - OpenAPI schema
    /admin/                                        - Django admin interface
    /api/v1/vendor-payments/                       - Vendor payment endpoints
        onboarding/                                - Create account + onboarding link (POST)
        account/                                   - Account status and readiness (GET)
        withdrawals/                               - List (GET) / request (POST) withdrawals
        checkout/<attempt_id>/confirm/             - Confirm a checkout payment (POST)
        webhooks/stripe/                           - Stripe webhook endpoint (POST)
"""

from django.contrib import admin
from django.urls import include, path
from drf_spectacular.views import SpectacularAPIView, SpectacularRedocView

# =============================================================================
# API v1 Routes
# =============================================================================
api_v1_patterns = [
    path("vendor-payments/", include("vendor_payments.urls")),
]

urlpatterns = [
    # Documentation
    path("", SpectacularRedocView.as_view(url_name="schema"), name="redoc"),
    path("schema/", SpectacularAPIView.as_view(), name="schema"),
    # Admin
    path("admin/", admin.site.urls),
    # API v1
    path("api/v1/", include(api_v1_patterns)),
]

# =============================================================================
# Admin Site Customization
# =============================================================================
admin.site.site_header = "Marketplace Payments Admin"
admin.site.site_title = "Payments Admin"
admin.site.index_title = "Vendor payments"
