"""
Tests for the subscription Celery tasks.

The tasks build the production scheduler, so Redis is mocked at the lock
and the email backend is Django's locmem outbox.
"""

from datetime import timedelta
from unittest.mock import MagicMock, patch

import pytest
from django.core import mail
from django.utils import timezone

from subscriptions.models import Subscription
from subscriptions.state_machines import SubscriptionStatus
from subscriptions.tasks import (
    check_subscription_health,
    send_renewal_reminders,
    sweep_expired_subscriptions,
)
from subscriptions.tests.factories import BusinessFactory, premium_subscription


@pytest.fixture
def mock_redis_lock():
    """Mock Redis so job locks are always free."""
    mock_redis = MagicMock()
    mock_redis.set.return_value = True
    mock_redis.eval.return_value = 1

    with patch("subscriptions.locks.get_redis_connection", return_value=mock_redis):
        yield mock_redis


@pytest.mark.django_db
class TestSweepExpiredSubscriptions:
    def test_expires_lapsed_subscriptions(self, mock_redis_lock):
        business = BusinessFactory()
        premium_subscription(business, timezone.now() - timedelta(days=1))

        result = sweep_expired_subscriptions()

        assert result == {"status": "completed", "job": "expiry_sweep", "expired_count": 1}
        assert Subscription.objects.get(pk=business.pk).status == SubscriptionStatus.EXPIRED

    def test_skips_when_previous_run_holds_lock(self, mock_redis_lock):
        mock_redis_lock.set.return_value = False
        business = BusinessFactory()
        premium_subscription(business, timezone.now() - timedelta(days=1))

        result = sweep_expired_subscriptions()

        assert result["status"] == "skipped"
        assert Subscription.objects.get(pk=business.pk).status == SubscriptionStatus.ACTIVE


@pytest.mark.django_db
class TestSendRenewalReminders:
    def test_sends_reminder_email(self, mock_redis_lock, settings):
        settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
        business = BusinessFactory(name="Joe's Plumbing")
        premium_subscription(business, timezone.now() + timedelta(days=7))

        result = send_renewal_reminders()

        assert result["status"] == "completed"
        assert result["sent"]["7"] == 1
        assert len(mail.outbox) == 1
        assert mail.outbox[0].subject == "Premium Listing Renewal Reminder - Joe's Plumbing"
        assert mail.outbox[0].to == [business.owner.email]


@pytest.mark.django_db
class TestCheckSubscriptionHealth:
    def test_returns_report(self, mock_redis_lock):
        result = check_subscription_health()

        assert result["status"] == "completed"
        assert result["report"]["healthy"] is True
