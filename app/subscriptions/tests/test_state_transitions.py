"""
Tests for the Subscription state machine (django-fsm transitions).
"""

from datetime import timedelta

import pytest
from django_fsm import TransitionNotAllowed, can_proceed

from subscriptions.models import Subscription
from subscriptions.state_machines import ListingTier, SubscriptionStatus
from subscriptions.tests.conftest import NOW
from subscriptions.tests.factories import premium_subscription, set_subscription_state

DEADLINE = NOW + timedelta(days=365)


@pytest.mark.django_db
class TestActivate:
    def test_none_to_active(self, business):
        subscription = business.subscription

        subscription.activate(
            provider_subscription_id="sub_123",
            renewal_deadline=DEADLINE,
            customer_id="cus_123",
        )
        subscription.save()

        subscription = Subscription.objects.get(pk=business.pk)
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.tier == ListingTier.PREMIUM
        assert subscription.provider_subscription_id == "sub_123"
        assert subscription.customer_id == "cus_123"
        assert subscription.renewal_deadline == DEADLINE

    def test_expired_to_active_clears_cancellation(self, business):
        subscription = set_subscription_state(
            business, status=SubscriptionStatus.EXPIRED, cancelled_at=NOW
        )

        subscription.activate(provider_subscription_id="sub_new", renewal_deadline=DEADLINE)

        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.cancelled_at is None

    @pytest.mark.parametrize(
        "status",
        [SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE, SubscriptionStatus.CANCELLED],
    )
    def test_cannot_activate_from_premium_status(self, business, status):
        subscription = premium_subscription(business, DEADLINE, status=status)

        assert not can_proceed(subscription.activate)
        with pytest.raises(TransitionNotAllowed):
            subscription.activate(provider_subscription_id="sub_x", renewal_deadline=DEADLINE)


@pytest.mark.django_db
class TestRenew:
    def test_past_due_renews_to_active(self, business):
        subscription = premium_subscription(business, NOW, status=SubscriptionStatus.PAST_DUE)

        subscription.renew(renewal_deadline=DEADLINE)

        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.renewal_deadline == DEADLINE

    def test_cancelled_stays_cancelled(self, business):
        subscription = premium_subscription(business, NOW, status=SubscriptionStatus.CANCELLED)

        subscription.renew(renewal_deadline=DEADLINE)

        assert subscription.status == SubscriptionStatus.CANCELLED
        assert subscription.renewal_deadline == DEADLINE

    def test_cannot_renew_unsubscribed(self, business):
        assert not can_proceed(business.subscription.renew)


@pytest.mark.django_db
class TestPaymentFailureAndCancellation:
    def test_mark_past_due_keeps_premium(self, business):
        subscription = premium_subscription(business, DEADLINE)

        subscription.mark_past_due()

        assert subscription.status == SubscriptionStatus.PAST_DUE
        assert subscription.tier == ListingTier.PREMIUM

    def test_cannot_mark_past_due_twice(self, business):
        subscription = premium_subscription(business, DEADLINE, status=SubscriptionStatus.PAST_DUE)

        assert not can_proceed(subscription.mark_past_due)

    def test_cancel_records_first_cancellation_time(self, business):
        subscription = premium_subscription(business, DEADLINE)

        subscription.cancel(cancelled_at=NOW)
        subscription.cancel(cancelled_at=NOW + timedelta(hours=1))

        assert subscription.status == SubscriptionStatus.CANCELLED
        assert subscription.cancelled_at == NOW
        assert subscription.tier == ListingTier.PREMIUM


@pytest.mark.django_db
class TestSyncStatus:
    @pytest.mark.parametrize(
        "provider_status,expected",
        [
            ("active", SubscriptionStatus.ACTIVE),
            ("trialing", SubscriptionStatus.ACTIVE),
            ("past_due", SubscriptionStatus.PAST_DUE),
            ("unpaid", SubscriptionStatus.PAST_DUE),
            ("canceled", SubscriptionStatus.CANCELLED),
        ],
    )
    def test_maps_provider_status(self, business, provider_status, expected):
        subscription = premium_subscription(business, DEADLINE)

        subscription.sync_status(provider_status=provider_status, synced_at=NOW)

        assert subscription.status == expected

    def test_reactivation_clears_cancelled_at(self, business):
        subscription = set_subscription_state(
            business,
            status=SubscriptionStatus.CANCELLED,
            renewal_deadline=DEADLINE,
            provider_subscription_id="sub_1",
            cancelled_at=NOW,
        )

        subscription.sync_status(provider_status="active", synced_at=NOW)

        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.cancelled_at is None


@pytest.mark.django_db
class TestExpire:
    @pytest.mark.parametrize(
        "status",
        [SubscriptionStatus.ACTIVE, SubscriptionStatus.PAST_DUE, SubscriptionStatus.CANCELLED],
    )
    def test_expire_downgrades_and_releases_provider_id(self, business, status):
        subscription = premium_subscription(business, NOW, status=status)

        subscription.expire()

        assert subscription.status == SubscriptionStatus.EXPIRED
        assert subscription.tier == ListingTier.FREE
        assert subscription.provider_subscription_id is None

    def test_cannot_expire_unsubscribed(self, business):
        assert not can_proceed(business.subscription.expire)
