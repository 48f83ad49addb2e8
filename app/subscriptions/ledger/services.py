"""
Subscription ledger: durable state plus the append-only event log.

All subscription writes go through SubscriptionLedger.record(), which
stores the new state and its SubscriptionEvent in one transaction. Reads
used by the periodic workers (expiry candidates, reminder candidates)
also live here so the query shapes stay next to the indexes they need.

Usage:
    from subscriptions.ledger import ledger, RecordEventParams

    with transaction.atomic():
        subscription = ledger.lock(business_id)
        subscription.renew(renewal_deadline=deadline)
        ledger.record(subscription, RecordEventParams(
            event_id="evt_123",
            kind=EventKind.RENEWED,
            payload=stripe_event,
        ))
"""

from __future__ import annotations

import logging
from datetime import datetime, time, timedelta
from typing import TYPE_CHECKING

from django.utils import timezone

from subscriptions.exceptions import (
    DuplicateEventError,
    LedgerInvariantError,
    SubscriptionNotFoundError,
)
from subscriptions.idempotency import Admission, IdempotencyGuard
from subscriptions.models import Subscription, SubscriptionEvent
from subscriptions.state_machines import SubscriptionStatus

if TYPE_CHECKING:
    from datetime import date, tzinfo

    from django.db.models import QuerySet

    from directory.models import Business

    from .types import RecordEventParams

logger = logging.getLogger(__name__)


# Statuses the expiry sweeper downgrades once the deadline has passed
EXPIRABLE_STATUSES = (
    SubscriptionStatus.ACTIVE,
    SubscriptionStatus.PAST_DUE,
    SubscriptionStatus.CANCELLED,
)


class SubscriptionLedger:
    """
    Service class for subscription ledger operations.

    Key features:
    - State change and event row commit together or not at all
    - Event ids are admitted exactly once (see IdempotencyGuard)
    - Invariants are checked before every write
    - Row locks serialize writers for the same subscription

    All methods are static - no instance state is maintained.
    """

    # =========================================================================
    # Accounts
    # =========================================================================

    @staticmethod
    def open_account(business: Business) -> Subscription:
        """
        Get or create the subscription row of a business.

        New rows start in status NONE with tier FREE.
        """
        subscription, created = Subscription.objects.get_or_create(business=business)
        if created:
            logger.info(
                "Opened subscription account",
                extra={"subscription_ref": business.pk},
            )
        return subscription

    # =========================================================================
    # Reads
    # =========================================================================

    @staticmethod
    def get(subscription_ref: int) -> Subscription:
        """
        Get subscription by reference (business id).

        Raises:
            SubscriptionNotFoundError: If no subscription exists
        """
        try:
            return Subscription.objects.get(pk=subscription_ref)
        except Subscription.DoesNotExist:
            raise SubscriptionNotFoundError(
                f"Subscription {subscription_ref} not found",
                details={"subscription_ref": subscription_ref},
            )

    @staticmethod
    def get_by_subscription_id(subscription_id: str) -> Subscription:
        """
        Get subscription by Stripe Subscription ID.

        Raises:
            SubscriptionNotFoundError: If no subscription carries the id
        """
        try:
            return Subscription.objects.get(provider_subscription_id=subscription_id)
        except Subscription.DoesNotExist:
            raise SubscriptionNotFoundError(
                f"No subscription with provider id {subscription_id}",
                details={"subscription_id": subscription_id},
            )

    @staticmethod
    def lock(subscription_ref: int) -> Subscription | None:
        """
        Lock a subscription row for update.

        Must be called inside a transaction. Returns None if the row does
        not exist.
        """
        return (
            Subscription.objects.select_for_update()
            .select_related("business", "business__owner")
            .filter(pk=subscription_ref)
            .first()
        )

    @staticmethod
    def lock_by_subscription_id(subscription_id: str) -> Subscription | None:
        """Lock the row carrying a Stripe Subscription ID, if any."""
        return (
            Subscription.objects.select_for_update()
            .select_related("business", "business__owner")
            .filter(provider_subscription_id=subscription_id)
            .first()
        )

    @staticmethod
    def holder_of(subscription_id: str) -> int | None:
        """Reference of the subscription currently carrying a provider id."""
        return (
            Subscription.objects.filter(provider_subscription_id=subscription_id)
            .values_list("pk", flat=True)
            .first()
        )

    @staticmethod
    def expiring_on(day: date, tz: tzinfo) -> QuerySet[Subscription]:
        """
        ACTIVE subscriptions whose deadline falls on a local calendar day.

        Args:
            day: Calendar date in `tz`
            tz: Time zone that defines the day boundaries
        """
        start = datetime.combine(day, time.min, tzinfo=tz)
        end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
        return (
            Subscription.objects.filter(
                status=SubscriptionStatus.ACTIVE,
                renewal_deadline__gte=start,
                renewal_deadline__lt=end,
            )
            .select_related("business", "business__owner")
            .order_by("renewal_deadline")
        )

    @staticmethod
    def due_for_expiry(now: datetime) -> QuerySet[Subscription]:
        """Premium subscriptions whose renewal deadline lies before `now`."""
        return Subscription.objects.filter(
            status__in=EXPIRABLE_STATUSES,
            renewal_deadline__lt=now,
        ).order_by("renewal_deadline")

    @staticmethod
    def audit_trail(subscription_ref: int) -> QuerySet[SubscriptionEvent]:
        """Every event applied to a subscription, oldest first."""
        return SubscriptionEvent.objects.filter(subscription_id=subscription_ref).order_by(
            "observed_at", "created_at"
        )

    # =========================================================================
    # Writes
    # =========================================================================

    @staticmethod
    def record(subscription: Subscription, params: RecordEventParams) -> SubscriptionEvent:
        """
        Persist a transitioned subscription together with its event.

        Must be called inside the transaction that holds the row lock.

        Args:
            subscription: Subscription after the in-memory transition
            params: Event to append

        Returns:
            The inserted SubscriptionEvent

        Raises:
            LedgerInvariantError: The new state breaks an invariant
            DuplicateEventError: The event id is already recorded
        """
        violations = subscription.invariant_violations()
        if violations:
            raise LedgerInvariantError(
                f"Subscription {subscription.pk} would violate ledger invariants",
                details={
                    "subscription_ref": subscription.pk,
                    "event_id": params.event_id,
                    "violations": violations,
                },
            )

        event = SubscriptionEvent(
            event_id=params.event_id,
            subscription=subscription,
            kind=params.kind,
            payload=params.payload or {},
            occurred_at=params.occurred_at,
            observed_at=params.observed_at or timezone.now(),
            status_after=subscription.status,
            tier_after=subscription.tier,
        )
        if IdempotencyGuard.admit(event) is Admission.DUPLICATE:
            raise DuplicateEventError(
                f"Event {params.event_id} already recorded",
                details={"event_id": params.event_id},
            )

        subscription.last_event_at = params.occurred_at or event.observed_at
        subscription.save()
        return event


# Singleton instance for convenience
ledger = SubscriptionLedger()
