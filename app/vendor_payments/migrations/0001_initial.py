import uuid

import django.db.models.deletion
import django_fsm
from django.db import migrations, models


class Migration(migrations.Migration):
    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="VendorPaymentAccount",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "vendor_id",
                    models.CharField(
                        help_text="Identifier of the owning vendor",
                        max_length=64,
                        unique=True,
                    ),
                ),
                (
                    "processor_account_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe connected account ID (acct_xxx); immutable once set",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "email",
                    models.EmailField(
                        blank=True,
                        default="",
                        help_text="Contact email sent to Stripe at account creation",
                        max_length=254,
                    ),
                ),
                (
                    "country",
                    models.CharField(
                        help_text="ISO 3166-1 alpha-2 country code (upper case)",
                        max_length=2,
                    ),
                ),
                (
                    "business_name",
                    models.CharField(
                        blank=True,
                        default="",
                        help_text="Company name registered with Stripe",
                        max_length=255,
                    ),
                ),
                (
                    "business_type",
                    models.CharField(
                        default="company",
                        help_text="Stripe business type",
                        max_length=32,
                    ),
                ),
                (
                    "sensitive_edit_count",
                    models.PositiveIntegerField(
                        default=0,
                        help_text="Number of times business details were edited",
                    ),
                ),
                ("charges_enabled", models.BooleanField(default=False)),
                ("payouts_enabled", models.BooleanField(default=False)),
                ("details_submitted", models.BooleanField(default=False)),
                (
                    "flags_observed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="Processor-side time of the snapshot the flags came from",
                        null=True,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("not_created", "Not Created"),
                            ("pending_verification", "Pending Verification"),
                            ("ready", "Ready"),
                            ("restricted", "Restricted"),
                        ],
                        db_index=True,
                        default="not_created",
                        help_text="Lifecycle status derived from capability flags (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Arbitrary JSON metadata for extensibility",
                    ),
                ),
            ],
            options={
                "verbose_name": "Vendor Payment Account",
                "verbose_name_plural": "Vendor Payment Accounts",
                "db_table": "vendor_payment_accounts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "updated_at"],
                        name="vendor_paym_status_5c1a2e_idx",
                    )
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(
                            ("processor_account_id__isnull", False),
                            ("status", "not_created"),
                            _connector="OR",
                        ),
                        name="vendor_account_id_required_after_creation",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="AccountStatusChange",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "from_status",
                    models.CharField(
                        choices=[
                            ("not_created", "Not Created"),
                            ("pending_verification", "Pending Verification"),
                            ("ready", "Ready"),
                            ("restricted", "Restricted"),
                        ],
                        max_length=32,
                    ),
                ),
                (
                    "to_status",
                    models.CharField(
                        choices=[
                            ("not_created", "Not Created"),
                            ("pending_verification", "Pending Verification"),
                            ("ready", "Ready"),
                            ("restricted", "Restricted"),
                        ],
                        max_length=32,
                    ),
                ),
                (
                    "source",
                    models.CharField(
                        choices=[
                            ("create", "Account Creation"),
                            ("refresh", "On-demand Refresh"),
                            ("webhook", "Webhook"),
                        ],
                        max_length=16,
                    ),
                ),
                (
                    "processor_event_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe event id when the change came from a webhook",
                        max_length=255,
                        null=True,
                    ),
                ),
                (
                    "flags",
                    models.JSONField(
                        default=dict,
                        help_text="Capability flags that caused the change",
                    ),
                ),
                (
                    "observed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="Processor-side time of the snapshot",
                        null=True,
                    ),
                ),
                (
                    "account",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="status_changes",
                        to="vendor_payments.vendorpaymentaccount",
                    ),
                ),
            ],
            options={
                "verbose_name": "Account Status Change",
                "verbose_name_plural": "Account Status Changes",
                "db_table": "vendor_account_status_changes",
                "ordering": ["-created_at"],
            },
        ),
        migrations.CreateModel(
            name="PaymentAttempt",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "order_id",
                    models.CharField(
                        db_index=True,
                        help_text="Identifier of the order being paid",
                        max_length=64,
                    ),
                ),
                (
                    "processor_intent_id",
                    models.CharField(
                        help_text="Stripe PaymentIntent ID (pi_xxx)",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "client_secret",
                    models.CharField(
                        editable=False,
                        help_text="PaymentIntent client secret; never logged",
                        max_length=255,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("initiated", "Initiated"),
                            ("requires_action", "Requires Action"),
                            ("succeeded", "Succeeded"),
                            ("failed", "Failed"),
                            ("canceled", "Canceled"),
                        ],
                        db_index=True,
                        default="initiated",
                        help_text="Current state of the attempt (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "last_error_category",
                    models.CharField(
                        blank=True,
                        choices=[
                            ("card_declined", "Card Declined"),
                            ("authentication_failed", "Authentication Failed"),
                            ("payment_method_required", "Payment Method Required"),
                            ("validation_failed", "Validation Failed"),
                            ("processing_error", "Processing Error"),
                        ],
                        help_text="Category of the last failure; never the raw processor message",
                        max_length=32,
                        null=True,
                    ),
                ),
                (
                    "amount_minor",
                    models.PositiveBigIntegerField(
                        help_text="Amount in smallest currency unit (e.g., pence)",
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        help_text="ISO 4217 currency code (lowercase)",
                        max_length=3,
                    ),
                ),
                (
                    "next_action_url",
                    models.URLField(
                        blank=True,
                        help_text="Authentication URL while the attempt requires action",
                        max_length=2048,
                        null=True,
                    ),
                ),
                (
                    "order_marked_paid_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the order-paid side effect was performed",
                        null=True,
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment Attempt",
                "verbose_name_plural": "Payment Attempts",
                "db_table": "payment_attempts",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["order_id", "status"],
                        name="payment_att_order_i_7d3b9f_idx",
                    )
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("status", "succeeded")),
                        fields=("order_id",),
                        name="payment_attempt_one_success_per_order",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("amount_minor__gt", 0)),
                        name="payment_attempt_amount_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="Withdrawal",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "vendor_id",
                    models.CharField(
                        db_index=True,
                        help_text="Identifier of the owning vendor",
                        max_length=64,
                    ),
                ),
                (
                    "amount_minor",
                    models.PositiveBigIntegerField(
                        help_text="Withdrawal amount in smallest currency unit (e.g., pence)",
                    ),
                ),
                (
                    "currency",
                    models.CharField(
                        help_text="ISO 4217 currency code (lowercase)",
                        max_length=3,
                    ),
                ),
                (
                    "status",
                    django_fsm.FSMField(
                        choices=[
                            ("PROCESSING", "Processing"),
                            ("COMPLETED", "Completed"),
                            ("FAILED", "Failed"),
                        ],
                        db_index=True,
                        default="PROCESSING",
                        help_text="Current state of the withdrawal (managed by FSM)",
                        max_length=50,
                        protected=True,
                    ),
                ),
                (
                    "processor_transfer_id",
                    models.CharField(
                        blank=True,
                        help_text="Stripe Transfer ID (tr_xxx)",
                        max_length=255,
                        null=True,
                        unique=True,
                    ),
                ),
                (
                    "estimated_arrival",
                    models.DateField(
                        blank=True,
                        help_text="Estimated date the funds reach the vendor",
                        null=True,
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True,
                        db_index=True,
                        help_text="When the withdrawal completed or failed",
                        null=True,
                    ),
                ),
                (
                    "failure_reason",
                    models.TextField(
                        blank=True,
                        help_text="Failure details for operators",
                        null=True,
                    ),
                ),
                (
                    "mock_mode",
                    models.BooleanField(
                        default=False,
                        help_text="Whether the transfer was made in Stripe test mode",
                    ),
                ),
                (
                    "version",
                    models.PositiveIntegerField(
                        default=1,
                        help_text="Version for optimistic locking - incremented on each save",
                    ),
                ),
                (
                    "metadata",
                    models.JSONField(
                        blank=True,
                        default=dict,
                        help_text="Arbitrary JSON metadata for extensibility",
                    ),
                ),
            ],
            options={
                "verbose_name": "Withdrawal",
                "verbose_name_plural": "Withdrawals",
                "db_table": "withdrawals",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["vendor_id", "status"],
                        name="withdrawals_vendor__4e8a1c_idx",
                    ),
                    models.Index(
                        fields=["vendor_id", "processed_at"],
                        name="withdrawals_vendor__9b2f6d_idx",
                    ),
                    models.Index(
                        fields=["status", "created_at"],
                        name="withdrawals_status_3a7e5b_idx",
                    ),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("amount_minor__gt", 0)),
                        name="withdrawal_amount_positive",
                    )
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEvent",
            fields=[
                (
                    "created_at",
                    models.DateTimeField(
                        auto_now_add=True,
                        db_index=True,
                        help_text="Timestamp when this record was created",
                    ),
                ),
                (
                    "updated_at",
                    models.DateTimeField(
                        auto_now=True,
                        help_text="Timestamp when this record was last modified",
                    ),
                ),
                (
                    "id",
                    models.UUIDField(
                        default=uuid.uuid4,
                        editable=False,
                        help_text="Unique identifier (UUID4)",
                        primary_key=True,
                        serialize=False,
                    ),
                ),
                (
                    "processor_event_id",
                    models.CharField(
                        help_text="Stripe Event ID (evt_xxx) - unique constraint for dedup",
                        max_length=255,
                        unique=True,
                    ),
                ),
                (
                    "event_type",
                    models.CharField(
                        db_index=True,
                        help_text="Stripe event type (e.g., 'account.updated')",
                        max_length=100,
                    ),
                ),
                (
                    "payload",
                    models.JSONField(help_text="Full verified webhook payload"),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("pending", "Pending"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("failed", "Failed"),
                        ],
                        db_index=True,
                        default="pending",
                        help_text="Current processing status",
                        max_length=20,
                    ),
                ),
                (
                    "processed_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="When the event was successfully applied",
                        null=True,
                    ),
                ),
                (
                    "error_message",
                    models.TextField(
                        blank=True,
                        help_text="Error message if processing failed",
                        null=True,
                    ),
                ),
                (
                    "retry_count",
                    models.PositiveSmallIntegerField(
                        default=0,
                        help_text="Number of processing attempts",
                    ),
                ),
            ],
            options={
                "verbose_name": "Webhook Event",
                "verbose_name_plural": "Webhook Events",
                "db_table": "processor_webhook_events",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(
                        fields=["status", "created_at"],
                        name="processor_w_status_8c4d2a_idx",
                    ),
                    models.Index(
                        fields=["event_type", "created_at"],
                        name="processor_w_event_t_1f6b3e_idx",
                    ),
                    models.Index(
                        fields=["status", "retry_count"],
                        name="processor_w_status_6e9a7c_idx",
                    ),
                ],
            },
        ),
    ]
