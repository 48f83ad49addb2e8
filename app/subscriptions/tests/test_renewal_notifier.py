"""
Tests for the RenewalNotifier.
"""

from datetime import timedelta
from unittest.mock import patch

import pytest
from django.core import mail

from subscriptions.models import NotificationRecord
from subscriptions.notifications import EmailNotificationSender
from subscriptions.state_machines import NotificationKind, SubscriptionStatus
from subscriptions.tests.conftest import NOW
from subscriptions.tests.factories import BusinessFactory, premium_subscription
from subscriptions.workers import RenewalNotifier

HORIZONS = [7, 3, 1]


@pytest.fixture
def notifier(sender, clock):
    return RenewalNotifier(sender=sender, clock=clock)


@pytest.mark.django_db
class TestRenewalNotifier:
    def test_no_matches_sends_nothing(self, notifier, sender, business):
        counts = notifier.notify(NOW, HORIZONS)

        assert counts == {7: 0, 3: 0, 1: 0}
        assert sender.sent == []
        assert not NotificationRecord.objects.exists()

    def test_reminds_each_matching_horizon(self, notifier, sender):
        week = premium_subscription(BusinessFactory(), NOW + timedelta(days=7))
        tomorrow = premium_subscription(BusinessFactory(), NOW + timedelta(days=1))
        premium_subscription(BusinessFactory(), NOW + timedelta(days=5))

        counts = notifier.notify(NOW, HORIZONS)

        assert counts == {7: 1, 3: 0, 1: 1}
        assert [n["extra"]["days_until_expiry"] for n in sender.sent] == [7, 1]
        assert {n["kind"] for n in sender.sent} == {NotificationKind.RENEWAL_REMINDER}
        assert set(NotificationRecord.objects.values_list("subscription_id", "horizon_days")) == {
            (week.pk, 7),
            (tomorrow.pk, 1),
        }

    def test_second_run_same_day_is_deduplicated(self, notifier, sender):
        premium_subscription(BusinessFactory(), NOW + timedelta(days=3))

        assert notifier.notify(NOW, HORIZONS)[3] == 1
        assert notifier.notify(NOW + timedelta(hours=2), HORIZONS)[3] == 0
        assert len(sender.sent) == 1

    def test_only_active_subscriptions_are_reminded(self, notifier, sender):
        for status in (SubscriptionStatus.PAST_DUE, SubscriptionStatus.CANCELLED):
            premium_subscription(BusinessFactory(), NOW + timedelta(days=7), status=status)

        assert notifier.notify(NOW, HORIZONS) == {7: 0, 3: 0, 1: 0}

    def test_calendar_day_is_local(self, notifier):
        # NOW is 12:00 on 2 March in Sydney; a deadline at 23:30 local on
        # 9 March is 12:30 UTC, still 7 local days away
        premium_subscription(BusinessFactory(), NOW.replace(day=9, hour=12, minute=30))

        assert notifier.notify(NOW, [7]) == {7: 1}

    def test_failed_dispatch_leaves_no_record_and_retries(self, notifier, sender):
        premium_subscription(BusinessFactory(), NOW + timedelta(days=7))
        sender.fail = True

        assert notifier.notify(NOW, HORIZONS)[7] == 0
        assert not NotificationRecord.objects.exists()

        sender.fail = False
        assert notifier.notify(NOW + timedelta(hours=1), HORIZONS)[7] == 1
        assert NotificationRecord.objects.count() == 1

    def test_recipient_and_context(self, notifier, sender):
        business = BusinessFactory(name="Joe's Plumbing", contact_email="joe@example.com")
        subscription = premium_subscription(business, NOW + timedelta(days=1))

        notifier.notify(NOW, [1])

        (notification,) = sender.sent
        assert notification["recipient"] == "joe@example.com"
        assert notification["business_context"]["business_name"] == "Joe's Plumbing"
        assert notification["business_context"]["renewal_deadline"] == subscription.renewal_deadline
        record = NotificationRecord.objects.get()
        assert record.recipient == "joe@example.com"
        assert record.calendar_date.isoformat() == "2026-03-02"

    def test_default_horizons_from_settings(self, notifier, settings):
        settings.SUBSCRIPTION_REMINDER_HORIZONS = [14]
        premium_subscription(BusinessFactory(), NOW + timedelta(days=14))

        assert notifier.notify(NOW) == {14: 1}

    def test_crashing_sender_skips_only_that_listing(self, notifier, sender):
        premium_subscription(BusinessFactory(), NOW + timedelta(days=7))
        premium_subscription(BusinessFactory(), NOW + timedelta(days=7))

        with patch.object(sender, "send", side_effect=[RuntimeError("renderer crashed"), None]):
            assert notifier.notify(NOW, [7]) == {7: 1}

        assert NotificationRecord.objects.count() == 1

    def test_broken_listing_does_not_block_the_batch(self, clock, settings):
        """Should still remind a healthy listing queued after one whose email cannot be built."""
        settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
        premium_subscription(BusinessFactory(name="Acme\nPlumbing"), NOW + timedelta(days=7))
        healthy = premium_subscription(BusinessFactory(name="Good Plumbing"), NOW + timedelta(days=7))
        notifier = RenewalNotifier(sender=EmailNotificationSender(), clock=clock)

        assert notifier.notify(NOW, [7]) == {7: 1}

        assert list(NotificationRecord.objects.values_list("subscription_id", flat=True)) == [healthy.pk]
        (message,) = mail.outbox
        assert "Good Plumbing" in message.subject
