"""
Celery tasks for the periodic subscription jobs.

Scheduled by django-celery-beat (rows seeded by migration 0002). Each task
builds its own SubscriptionScheduler; there is no module-level state.

Usage:
    from subscriptions.tasks import sweep_expired_subscriptions

    # Trigger an out-of-schedule run
    sweep_expired_subscriptions.delay()
"""

from __future__ import annotations

import logging

from celery import shared_task

from subscriptions.scheduler import SubscriptionScheduler

logger = logging.getLogger(__name__)


@shared_task(bind=True)
def sweep_expired_subscriptions(self) -> dict:
    """
    Expire premium subscriptions whose renewal deadline has passed.

    Returns:
        Dict with:
        - status: "completed" or "skipped" (previous run still holds the lock)
        - expired_count: Subscriptions transitioned to EXPIRED
    """
    result = SubscriptionScheduler.build().run_sweep()
    logger.info("Expiry sweep task finished", extra=result)
    return result


@shared_task(bind=True)
def send_renewal_reminders(self) -> dict:
    """
    Send renewal reminders for every configured horizon.

    Returns:
        Dict with:
        - status: "completed" or "skipped"
        - sent: Reminders sent per horizon, e.g. {"7": 2, "3": 0, "1": 1}
    """
    result = SubscriptionScheduler.build().run_notifications()
    logger.info("Renewal reminder task finished", extra=result)
    return result


@shared_task(bind=True)
def check_subscription_health(self) -> dict:
    """
    Run the weekly read-only ledger health check.

    Returns:
        Dict with:
        - status: "completed" or "skipped"
        - report: HealthReport.to_dict()
    """
    result = SubscriptionScheduler.build().run_health_check()
    logger.info(
        "Subscription health check task finished",
        extra={"status": result["status"], "healthy": result.get("report", {}).get("healthy")},
    )
    return result
