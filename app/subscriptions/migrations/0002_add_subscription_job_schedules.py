"""
Add celery-beat schedules for the periodic subscription jobs.

Creates crontab schedules in SUBSCRIPTION_SCHEDULE_TIMEZONE:
- renewal reminders daily at 09:00
- expiry sweep daily at 10:00
- health check Mondays at 09:00
"""

from django.conf import settings
from django.db import migrations

SCHEDULES = [
    {
        "name": "Send Subscription Renewal Reminders",
        "task": "subscriptions.tasks.send_renewal_reminders",
        "hour": "9",
        "day_of_week": "*",
        "description": "Emails owners whose premium listing expires in 7, 3 or 1 days.",
    },
    {
        "name": "Sweep Expired Subscriptions",
        "task": "subscriptions.tasks.sweep_expired_subscriptions",
        "hour": "10",
        "day_of_week": "*",
        "description": "Downgrades premium listings whose renewal deadline has passed.",
    },
    {
        "name": "Check Subscription Health",
        "task": "subscriptions.tasks.check_subscription_health",
        "hour": "9",
        "day_of_week": "1",
        "description": "Weekly read-only consistency report of the subscription ledger.",
    },
]


def create_periodic_tasks(apps, schema_editor):
    """Create the periodic tasks for the subscription jobs."""
    CrontabSchedule = apps.get_model("django_celery_beat", "CrontabSchedule")
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    tz = getattr(settings, "SUBSCRIPTION_SCHEDULE_TIMEZONE", "Australia/Sydney")
    for entry in SCHEDULES:
        schedule, _ = CrontabSchedule.objects.get_or_create(
            minute="0",
            hour=entry["hour"],
            day_of_week=entry["day_of_week"],
            day_of_month="*",
            month_of_year="*",
            timezone=tz,
        )
        PeriodicTask.objects.get_or_create(
            name=entry["name"],
            defaults={
                "task": entry["task"],
                "crontab": schedule,
                "enabled": True,
                "description": entry["description"],
            },
        )


def remove_periodic_tasks(apps, schema_editor):
    """Remove the periodic tasks on migration rollback."""
    PeriodicTask = apps.get_model("django_celery_beat", "PeriodicTask")

    PeriodicTask.objects.filter(name__in=[entry["name"] for entry in SCHEDULES]).delete()


class Migration(migrations.Migration):
    dependencies = [
        ("subscriptions", "0001_initial"),
        ("django_celery_beat", "0019_alter_periodictasks_options"),
    ]

    operations = [
        migrations.RunPython(create_periodic_tasks, remove_periodic_tasks),
    ]
