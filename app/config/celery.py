"""
Celery configuration for the Django application.

Celery runs the subscription background jobs:
- Renewal reminders (daily)
- Expiry sweep (daily)
- Ledger health check (weekly)

Redis is both the message broker and result backend. The job schedules live
in the database (django-celery-beat DatabaseScheduler) and are seeded by the
subscriptions data migration.

Usage:
    # Run a worker and the beat scheduler:
    celery -A config worker -l info
    celery -A config beat -l info

For more information, see:
https://docs.celeryq.dev/en/stable/django/first-steps-with-django.html
"""

import os

from celery import Celery

# Set the default Django settings module for the Celery worker
os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings")

app = Celery("config")

# All Celery settings are prefixed with CELERY_ in settings.py
app.config_from_object("django.conf:settings", namespace="CELERY")

# Celery will look for a tasks.py module in each installed app
app.autodiscover_tasks()
