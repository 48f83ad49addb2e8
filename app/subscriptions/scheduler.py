"""
Scheduler for the periodic subscription jobs.

Celery beat (DatabaseScheduler) fires the tasks in subscriptions.tasks;
each task builds a SubscriptionScheduler and calls one run_* method. The
scheduler owns the job definitions, the beat rows and the per-job Redis
lock that keeps overlapping runs from executing in parallel.

Jobs:
    renewal_reminders  daily 09:00   RenewalNotifier.notify()
    expiry_sweep       daily 10:00   ExpirySweeper.sweep()
    health_check       Monday 09:00  SubscriptionHealthCheck.run()

All times are in SUBSCRIPTION_SCHEDULE_TIMEZONE.

Usage:
    from subscriptions.scheduler import SubscriptionScheduler

    scheduler = SubscriptionScheduler.build()
    scheduler.start()      # enable the beat rows
    scheduler.status()     # [{"job": "expiry_sweep", "enabled": True, ...}]
    scheduler.run_sweep()  # {"status": "completed", "expired_count": 3, ...}
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from django.conf import settings
from django.utils import timezone

from django_celery_beat.models import CrontabSchedule, PeriodicTask

from subscriptions.exceptions import LockAcquisitionError
from subscriptions.ledger import ledger as default_ledger
from subscriptions.locks import DistributedLock
from subscriptions.services import ReconciliationEngine, SubscriptionHealthCheck
from subscriptions.workers import ExpirySweeper, RenewalNotifier

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime
    from typing import Any

    from subscriptions.ledger import SubscriptionLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScheduledJob:
    """One periodic job and its crontab."""

    name: str
    task: str
    title: str
    description: str
    minute: str = "0"
    hour: str = "*"
    day_of_week: str = "*"


JOBS: tuple[ScheduledJob, ...] = (
    ScheduledJob(
        name="renewal_reminders",
        task="subscriptions.tasks.send_renewal_reminders",
        title="Send Subscription Renewal Reminders",
        description="Emails owners whose premium listing expires in 7, 3 or 1 days.",
        hour="9",
    ),
    ScheduledJob(
        name="expiry_sweep",
        task="subscriptions.tasks.sweep_expired_subscriptions",
        title="Sweep Expired Subscriptions",
        description="Downgrades premium listings whose renewal deadline has passed.",
        hour="10",
    ),
    ScheduledJob(
        name="health_check",
        task="subscriptions.tasks.check_subscription_health",
        title="Check Subscription Health",
        description="Weekly read-only consistency report of the subscription ledger.",
        hour="9",
        day_of_week="1",
    ),
)


class SubscriptionScheduler:
    """
    Owns the periodic subscription jobs.

    Collaborators are injected; build() wires the production defaults.
    """

    def __init__(
        self,
        engine: ReconciliationEngine,
        sweeper: ExpirySweeper,
        notifier: RenewalNotifier,
        health_check: type[SubscriptionHealthCheck] = SubscriptionHealthCheck,
        ledger: SubscriptionLedger | None = None,
        lock_factory: Callable[..., DistributedLock] = DistributedLock,
        clock: Callable[[], datetime] = timezone.now,
    ):
        self.engine = engine
        self.sweeper = sweeper
        self.notifier = notifier
        self.health_check = health_check
        self.ledger = ledger or default_ledger
        self.lock_factory = lock_factory
        self.clock = clock

    @classmethod
    def build(cls) -> SubscriptionScheduler:
        """Scheduler wired with the Stripe gateway and email sender."""
        engine = ReconciliationEngine()
        return cls(
            engine=engine,
            sweeper=ExpirySweeper(engine=engine, ledger=engine.ledger),
            notifier=RenewalNotifier(sender=engine.sender, ledger=engine.ledger),
        )

    # =========================================================================
    # Beat Registration
    # =========================================================================

    def start(self) -> list[str]:
        """Create or enable the beat rows of every job."""
        tz = settings.SUBSCRIPTION_SCHEDULE_TIMEZONE
        for job in JOBS:
            schedule, _ = CrontabSchedule.objects.get_or_create(
                minute=job.minute,
                hour=job.hour,
                day_of_week=job.day_of_week,
                day_of_month="*",
                month_of_year="*",
                timezone=tz,
            )
            periodic_task, _ = PeriodicTask.objects.get_or_create(
                name=job.title,
                defaults={
                    "task": job.task,
                    "crontab": schedule,
                    "description": job.description,
                },
            )
            periodic_task.task = job.task
            periodic_task.crontab = schedule
            periodic_task.enabled = True
            # save() (not update()) so beat notices the change
            periodic_task.save()

        logger.info("Subscription jobs enabled", extra={"jobs": [job.name for job in JOBS]})
        return [job.name for job in JOBS]

    def stop(self) -> list[str]:
        """Disable the beat rows; running jobs finish normally."""
        stopped = []
        for periodic_task in PeriodicTask.objects.filter(name__in=[job.title for job in JOBS]):
            periodic_task.enabled = False
            periodic_task.save()
            stopped.append(periodic_task.name)

        logger.info("Subscription jobs disabled", extra={"jobs": stopped})
        return stopped

    def status(self) -> list[dict[str, Any]]:
        """Report every job with its beat row state."""
        rows = {
            task.name: task
            for task in PeriodicTask.objects.filter(
                name__in=[job.title for job in JOBS]
            ).select_related("crontab")
        }
        report = []
        for job in JOBS:
            row = rows.get(job.title)
            report.append(
                {
                    "job": job.name,
                    "task": job.task,
                    "registered": row is not None,
                    "enabled": bool(row and row.enabled),
                    "schedule": str(row.crontab) if row and row.crontab else None,
                    "last_run_at": row.last_run_at.isoformat() if row and row.last_run_at else None,
                    "total_run_count": row.total_run_count if row else 0,
                }
            )
        return report

    # =========================================================================
    # Job Runs
    # =========================================================================

    def run_sweep(self, now: datetime | None = None) -> dict[str, Any]:
        return self._run_exclusive(
            "expiry_sweep",
            lambda: {"expired_count": self.sweeper.sweep(now or self.clock())},
        )

    def run_notifications(self, now: datetime | None = None) -> dict[str, Any]:
        def notify() -> dict[str, Any]:
            counts = self.notifier.notify(now or self.clock())
            return {"sent": {str(horizon): count for horizon, count in counts.items()}}

        return self._run_exclusive("renewal_reminders", notify)

    def run_health_check(self, now: datetime | None = None) -> dict[str, Any]:
        return self._run_exclusive(
            "health_check",
            lambda: {"report": self.health_check.run(now or self.clock()).to_dict()},
        )

    def _run_exclusive(self, job_name: str, work: Callable[[], dict[str, Any]]) -> dict[str, Any]:
        """Run `work` under the job's lock, or skip if another run holds it."""
        lock = self.lock_factory(
            f"subscriptions:job:{job_name}",
            ttl=settings.SUBSCRIPTION_JOB_LOCK_TTL,
            blocking=False,
        )
        try:
            lock.acquire()
        except LockAcquisitionError:
            logger.info(
                "Skipping job run, previous run still in progress",
                extra={"job": job_name},
            )
            return {"status": "skipped", "job": job_name}

        try:
            logger.info("Starting job run", extra={"job": job_name})
            result = work()
        finally:
            lock.release()

        return {"status": "completed", "job": job_name, **result}
