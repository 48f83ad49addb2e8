"""
Tests for CheckoutStatusService.
"""

import pytest

from subscriptions.models import SubscriptionEvent
from subscriptions.services import CheckoutStatusService
from subscriptions.state_machines import ListingTier, SubscriptionStatus
from subscriptions.tests.conftest import NOW
from subscriptions.tests.factories import UserFactory, checkout_completed_event

pytestmark = pytest.mark.django_db


class TestCheckoutStatusService:
    def test_owner_sees_status(self, business):
        result = CheckoutStatusService.get_status(business.owner, business.pk)

        assert result.success
        assert result.data["tier"] == ListingTier.FREE
        assert result.data["status"] == SubscriptionStatus.NONE
        assert "checkout_applied" not in result.data

    def test_other_user_gets_not_found(self, business):
        result = CheckoutStatusService.get_status(UserFactory(), business.pk)

        assert not result
        assert result.error_code == "BUSINESS_NOT_FOUND"

    def test_unknown_business(self, owner):
        result = CheckoutStatusService.get_status(owner, 999999)

        assert result.error_code == "BUSINESS_NOT_FOUND"

    def test_checkout_applied_after_webhook(self, engine, business):
        """Should report the session once its Created event is in the log."""
        engine.ingest(
            checkout_completed_event(business, NOW, session_id="cs_test_paid"),
            already_verified=True,
        )

        applied = CheckoutStatusService.get_status(business.owner, business.pk, session_id="cs_test_paid")
        other = CheckoutStatusService.get_status(business.owner, business.pk, session_id="cs_test_other")

        assert applied.data["checkout_applied"] is True
        assert applied.data["status"] == SubscriptionStatus.ACTIVE
        assert applied.data["has_subscription"] is True
        assert other.data["checkout_applied"] is False

    def test_never_writes(self, business):
        CheckoutStatusService.get_status(business.owner, business.pk, session_id="cs_test_abc")

        assert SubscriptionEvent.objects.count() == 0
