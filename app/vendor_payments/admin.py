"""
Vendor payment admin configuration.

State is changed through the services, never through admin, so status
fields are read-only everywhere. Client secrets are not shown.
"""

from django.contrib import admin

from vendor_payments.models import (
    AccountStatusChange,
    PaymentAttempt,
    VendorPaymentAccount,
    WebhookEvent,
    Withdrawal,
)


class AccountStatusChangeInline(admin.TabularInline):
    model = AccountStatusChange
    extra = 0
    can_delete = False
    fields = ["from_status", "to_status", "source", "processor_event_id", "observed_at"]
    readonly_fields = fields
    ordering = ["-created_at"]

    def has_add_permission(self, request, obj=None) -> bool:
        return False


@admin.register(VendorPaymentAccount)
class VendorPaymentAccountAdmin(admin.ModelAdmin):
    """Visibility into vendors' Stripe Connect accounts."""

    list_display = [
        "vendor_id",
        "processor_account_id",
        "status",
        "charges_enabled",
        "payouts_enabled",
        "details_submitted",
        "flags_observed_at",
    ]
    list_filter = ["status", "payouts_enabled", "charges_enabled", "country"]
    search_fields = ["vendor_id", "processor_account_id", "email", "business_name"]
    readonly_fields = [
        "id",
        "processor_account_id",
        "status",
        "charges_enabled",
        "payouts_enabled",
        "details_submitted",
        "flags_observed_at",
        "sensitive_edit_count",
        "version",
        "created_at",
        "updated_at",
    ]
    ordering = ["-created_at"]
    inlines = [AccountStatusChangeInline]

    fieldsets = (
        (None, {"fields": ("id", "vendor_id", "processor_account_id", "status")}),
        (
            "Business",
            {"fields": ("email", "business_name", "business_type", "country", "sensitive_edit_count")},
        ),
        (
            "Capabilities",
            {"fields": ("charges_enabled", "payouts_enabled", "details_submitted", "flags_observed_at")},
        ),
        ("Metadata", {"fields": ("metadata", "version"), "classes": ("collapse",)}),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )


@admin.register(PaymentAttempt)
class PaymentAttemptAdmin(admin.ModelAdmin):
    list_display = [
        "id",
        "order_id",
        "processor_intent_id",
        "status",
        "amount_minor",
        "currency",
        "order_marked_paid_at",
        "created_at",
    ]
    list_filter = ["status", "last_error_category", "currency"]
    search_fields = ["id", "order_id", "processor_intent_id"]
    exclude = ["client_secret"]
    readonly_fields = [
        "id",
        "order_id",
        "processor_intent_id",
        "status",
        "last_error_category",
        "amount_minor",
        "currency",
        "next_action_url",
        "order_marked_paid_at",
        "version",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False


@admin.register(Withdrawal)
class WithdrawalAdmin(admin.ModelAdmin):
    """Withdrawal ledger. Rows are never deleted."""

    list_display = [
        "id",
        "vendor_id",
        "amount_minor",
        "currency",
        "status",
        "processor_transfer_id",
        "processed_at",
        "mock_mode",
        "created_at",
    ]
    list_filter = ["status", "currency", "mock_mode"]
    search_fields = ["id", "vendor_id", "processor_transfer_id"]
    readonly_fields = [
        "id",
        "vendor_id",
        "amount_minor",
        "currency",
        "status",
        "processor_transfer_id",
        "estimated_arrival",
        "processed_at",
        "failure_reason",
        "mock_mode",
        "metadata",
        "version",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    def has_add_permission(self, request) -> bool:
        return False

    def has_delete_permission(self, request, obj=None) -> bool:
        return False


@admin.register(WebhookEvent)
class WebhookEventAdmin(admin.ModelAdmin):
    """
    Webhook processing status.

    Events are immutable once received and are kept as the record of
    which event ids have been applied.
    """

    list_display = [
        "id",
        "processor_event_id",
        "event_type",
        "status",
        "retry_count",
        "processed_at",
        "created_at",
    ]
    list_filter = ["status", "event_type", "created_at"]
    search_fields = ["id", "processor_event_id", "event_type"]
    readonly_fields = [
        "id",
        "processor_event_id",
        "event_type",
        "payload",
        "status",
        "processed_at",
        "retry_count",
        "error_message",
        "created_at",
        "updated_at",
    ]
    date_hierarchy = "created_at"
    ordering = ["-created_at"]

    fieldsets = (
        (None, {"fields": ("id", "processor_event_id", "event_type", "status")}),
        ("Processing", {"fields": ("processed_at", "retry_count")}),
        ("Error Info", {"fields": ("error_message",), "classes": ("collapse",)}),
        ("Payload", {"fields": ("payload",), "classes": ("collapse",)}),
        ("Timestamps", {"fields": ("created_at", "updated_at")}),
    )

    def has_delete_permission(self, request, obj=None) -> bool:
        return False

    def has_add_permission(self, request) -> bool:
        return False
