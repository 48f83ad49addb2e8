"""
Subscriptions app configuration.

This app reconciles Stripe subscription events against the premium
listing ledger:
- Webhook ingestion and normalization
- Idempotent, row-locked state transitions (django-fsm)
- Periodic expiry sweeps, renewal reminders and health checks (Celery beat)
"""

from django.apps import AppConfig


class SubscriptionsConfig(AppConfig):
    """Configuration for the subscriptions application."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "subscriptions"
    verbose_name = "Subscriptions"

    def ready(self):
        """Connect the receiver that opens a ledger row for new businesses."""
        from subscriptions import signals  # noqa: F401
