"""
Celery configuration for the marketplace payments service.

Workers run the webhook retry sweeps and the withdrawal reconciliation
job. Periodic schedules live in the database (django-celery-beat) and are
seeded by vendor_payments migrations.

Usage:
    celery -A config worker -l info
    celery -A config beat -l info
"""

import os

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

app.autodiscover_tasks()
