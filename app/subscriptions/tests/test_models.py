"""
Tests for subscription models: invariants, constraints and immutability.
"""

from datetime import date, timedelta

import pytest
from django.db import IntegrityError, transaction

from subscriptions.exceptions import LedgerInvariantError
from subscriptions.models import NotificationRecord, Subscription
from subscriptions.state_machines import ListingTier, SubscriptionStatus
from subscriptions.tests.conftest import NOW
from subscriptions.tests.factories import (
    BusinessFactory,
    SubscriptionEventFactory,
    premium_subscription,
    set_subscription_state,
)

DEADLINE = NOW + timedelta(days=30)


@pytest.mark.django_db
class TestSubscription:
    def test_business_creation_opens_free_subscription(self):
        business = BusinessFactory()

        subscription = Subscription.objects.get(pk=business.pk)
        assert subscription.status == SubscriptionStatus.NONE
        assert subscription.tier == ListingTier.FREE
        assert subscription.subscription_ref == business.pk
        assert subscription.invariant_violations() == []

    def test_version_increments_on_save(self, business):
        subscription = business.subscription
        initial = subscription.version

        subscription.metadata = {"note": "x"}
        subscription.save()

        assert subscription.version == initial + 1

    def test_provider_id_is_unique(self, business):
        premium_subscription(business, DEADLINE, subscription_id="sub_shared")
        other = BusinessFactory()

        with pytest.raises(IntegrityError), transaction.atomic():
            Subscription.objects.filter(pk=other.pk).update(
                status=SubscriptionStatus.ACTIVE,
                tier=ListingTier.PREMIUM,
                renewal_deadline=DEADLINE,
                provider_subscription_id="sub_shared",
            )

    def test_tier_must_match_status(self, business):
        with pytest.raises(IntegrityError), transaction.atomic():
            Subscription.objects.filter(pk=business.pk).update(
                status=SubscriptionStatus.ACTIVE, tier=ListingTier.FREE
            )

    def test_expired_cannot_keep_provider_id(self, business):
        with pytest.raises(IntegrityError), transaction.atomic():
            Subscription.objects.filter(pk=business.pk).update(
                status=SubscriptionStatus.EXPIRED,
                tier=ListingTier.FREE,
                provider_subscription_id="sub_leftover",
            )


@pytest.mark.django_db
class TestInvariantViolations:
    def test_consistent_premium_row(self, business):
        subscription = premium_subscription(business, DEADLINE)

        assert subscription.invariant_violations() == []
        assert subscription.is_premium
        assert subscription.is_active

    def test_premium_without_deadline_or_provider_id(self, business):
        subscription = set_subscription_state(business, status=SubscriptionStatus.PAST_DUE)

        violations = subscription.invariant_violations()

        assert len(violations) == 2
        assert any("renewal deadline" in v for v in violations)
        assert any("provider subscription id" in v for v in violations)

    def test_tier_mismatch_is_reported(self, business):
        subscription = business.subscription
        subscription.tier = ListingTier.PREMIUM

        assert subscription.invariant_violations() == ["tier 'premium' does not match status 'none'"]


@pytest.mark.django_db
class TestSubscriptionEvent:
    def test_events_are_immutable(self):
        event = SubscriptionEventFactory()

        event.kind = "renewed"
        with pytest.raises(LedgerInvariantError):
            event.save()

    def test_events_cannot_be_deleted(self):
        event = SubscriptionEventFactory()

        with pytest.raises(LedgerInvariantError):
            event.delete()

    def test_event_id_is_unique(self):
        event = SubscriptionEventFactory(event_id="evt_dup")

        with pytest.raises(IntegrityError), transaction.atomic():
            SubscriptionEventFactory(event_id="evt_dup", subscription=event.subscription)


@pytest.mark.django_db
class TestNotificationRecord:
    def test_once_per_subscription_horizon_and_day(self, business):
        NotificationRecord.objects.create(
            subscription=business.subscription,
            horizon_days=7,
            calendar_date=date(2026, 3, 2),
            recipient="owner@example.com",
        )

        with pytest.raises(IntegrityError), transaction.atomic():
            NotificationRecord.objects.create(
                subscription=business.subscription,
                horizon_days=7,
                calendar_date=date(2026, 3, 2),
                recipient="owner@example.com",
            )

    def test_other_horizon_same_day_allowed(self, business):
        for horizon in (7, 3):
            NotificationRecord.objects.create(
                subscription=business.subscription,
                horizon_days=horizon,
                calendar_date=date(2026, 3, 2),
                recipient="owner@example.com",
            )

        assert NotificationRecord.objects.filter(subscription=business.subscription).count() == 2
