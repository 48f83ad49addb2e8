"""
Weekly read-only health check of the subscription ledger.

Findings are logged and returned; nothing is healed automatically. Any
fix goes through a provider event or a manual review.

Checks:
    missing_deadline      ACTIVE rows without a renewal deadline
    elapsed_deadline      ACTIVE rows whose deadline has passed (sweeper lag)
    missing_provider_id   ACTIVE rows without a Stripe Subscription ID
    invariant_violations  rows breaking a model invariant
    drift                 rows whose latest event snapshot disagrees with the row
    stale                 old ACTIVE rows with no recent events
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from django.db.models import OuterRef, Q, Subquery
from django.utils import timezone

from core.services import BaseService
from subscriptions.models import Subscription, SubscriptionEvent
from subscriptions.state_machines import PREMIUM_STATUSES, SubscriptionStatus

# ACTIVE rows older than this with no event inside STALE_EVENT_WINDOW are reported
STALE_ACCOUNT_AGE = timedelta(days=90)
STALE_EVENT_WINDOW = timedelta(days=30)


@dataclass
class HealthReport:
    """Findings of one health check run, as lists of subscription refs."""

    checked_at: datetime
    missing_deadline: list[int] = field(default_factory=list)
    elapsed_deadline: list[int] = field(default_factory=list)
    missing_provider_id: list[int] = field(default_factory=list)
    invariant_violations: dict[int, list[str]] = field(default_factory=dict)
    drift: list[int] = field(default_factory=list)
    stale: list[int] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return not (
            self.missing_deadline
            or self.elapsed_deadline
            or self.missing_provider_id
            or self.invariant_violations
            or self.drift
            or self.stale
        )

    def to_dict(self) -> dict:
        return {
            "checked_at": self.checked_at.isoformat(),
            "healthy": self.healthy,
            "missing_deadline": self.missing_deadline,
            "elapsed_deadline": self.elapsed_deadline,
            "missing_provider_id": self.missing_provider_id,
            "invariant_violations": {str(k): v for k, v in self.invariant_violations.items()},
            "drift": self.drift,
            "stale": self.stale,
        }


class SubscriptionHealthCheck(BaseService):
    """Detects ledger inconsistencies without modifying anything."""

    @classmethod
    def run(cls, now: datetime | None = None) -> HealthReport:
        now = now or timezone.now()
        logger = cls.get_logger()
        report = HealthReport(checked_at=now)

        active = Subscription.objects.filter(status=SubscriptionStatus.ACTIVE)
        report.missing_deadline = list(
            active.filter(renewal_deadline__isnull=True).values_list("pk", flat=True)
        )
        report.elapsed_deadline = list(
            active.filter(renewal_deadline__lt=now).values_list("pk", flat=True)
        )
        report.missing_provider_id = list(
            active.filter(
                Q(provider_subscription_id__isnull=True) | Q(provider_subscription_id="")
            ).values_list("pk", flat=True)
        )

        suspicious = Subscription.objects.filter(
            Q(status__in=PREMIUM_STATUSES) | Q(provider_subscription_id__isnull=False)
        )
        for subscription in suspicious.iterator():
            violations = subscription.invariant_violations()
            if violations:
                report.invariant_violations[subscription.pk] = violations

        report.drift = cls._drifted()
        report.stale = cls._stale(now)

        if report.healthy:
            logger.info("Subscription health check passed", extra={"checked_at": now.isoformat()})
        else:
            logger.warning("Subscription health check found issues", extra=report.to_dict())
        return report

    @staticmethod
    def _drifted() -> list[int]:
        """Rows whose latest event snapshot differs from the stored state."""
        latest = SubscriptionEvent.objects.filter(subscription_id=OuterRef("pk")).order_by(
            "-observed_at", "-created_at"
        )
        rows = (
            Subscription.objects.annotate(
                snapshot_status=Subquery(latest.values("status_after")[:1]),
                snapshot_tier=Subquery(latest.values("tier_after")[:1]),
            )
            .filter(snapshot_status__isnull=False)
            .values_list("pk", "status", "tier", "snapshot_status", "snapshot_tier")
        )
        return [
            pk
            for pk, status, tier, snapshot_status, snapshot_tier in rows
            if (status, tier) != (snapshot_status, snapshot_tier)
        ]

    @staticmethod
    def _stale(now: datetime) -> list[int]:
        """Old ACTIVE rows with no event inside the window."""
        recently_touched = SubscriptionEvent.objects.filter(
            observed_at__gte=now - STALE_EVENT_WINDOW
        ).values("subscription_id")
        return list(
            Subscription.objects.filter(
                status=SubscriptionStatus.ACTIVE,
                created_at__lt=now - STALE_ACCOUNT_AGE,
            )
            .exclude(pk__in=recently_touched)
            .values_list("pk", flat=True)
        )
