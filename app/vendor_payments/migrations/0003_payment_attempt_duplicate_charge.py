from django.db import migrations, models


class Migration(migrations.Migration):
    dependencies = [
        ("vendor_payments", "0002_periodic_tasks"),
    ]

    operations = [
        migrations.AlterField(
            model_name="paymentattempt",
            name="last_error_category",
            field=models.CharField(
                blank=True,
                choices=[
                    ("card_declined", "Card Declined"),
                    ("authentication_failed", "Authentication Failed"),
                    ("payment_method_required", "Payment Method Required"),
                    ("validation_failed", "Validation Failed"),
                    ("processing_error", "Processing Error"),
                    ("duplicate_charge", "Duplicate Charge"),
                ],
                help_text="Category of the last failure; never the raw processor message",
                max_length=32,
                null=True,
            ),
        ),
    ]
