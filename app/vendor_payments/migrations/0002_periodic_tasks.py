"""
Add celery-beat schedules for webhook recovery and withdrawal reconciliation.

- retry_failed_webhooks: every 5 minutes
- cleanup_stuck_webhooks: every 15 minutes
- reconcile_withdrawals: every 30 minutes
"""

from django.db import migrations

PERIODIC_TASKS = [
    {
        "name": "Retry Failed Stripe Webhooks",
        "task": "vendor_payments.tasks.retry_failed_webhooks",
        "every": 5,
        "description": "Re-queues FAILED webhook events still under the retry ceiling.",
    },
    {
        "name": "Reset Stuck Stripe Webhooks",
        "task": "vendor_payments.tasks.cleanup_stuck_webhooks",
        "every": 15,
        "description": "Resets webhook events stuck in PROCESSING after a worker crash.",
    },
    {
        "name": "Reconcile Vendor Withdrawals",
        "task": "vendor_payments.tasks.reconcile_withdrawals",
        "every": 30,
        "description": (
            "Settles PROCESSING withdrawals whose transfer webhooks never "
            "arrived by reading transfer state from Stripe."
        ),
    },
]


def create_periodic_tasks(apps, schema_editor):
    IntervalSchedule = apps.get_model("django_celery_beat", "IntervalSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    for entry in PERIODIC_TASKS:
        schedule, _ = IntervalSchedule.objects.get_or_create(
            every=entry["every"],
            period="minutes",
        )
        PeriodicTask.objects.get_or_create(
            name=entry["name"],
            defaults={
                "task": entry["task"],
                "interval": schedule,
                "enabled": True,
                "description": entry["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(
        name__in=[entry["name"] for entry in PERIODIC_TASKS],
    ).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("vendor_payments", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
