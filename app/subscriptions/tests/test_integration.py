"""
End-to-end lifecycle of a premium listing.

Drives the engine, the sweeper and the notifier through one business's
whole subscription history: checkout, reminder, failed payment, recovery,
cancellation, expiry and resubscription.
"""

from datetime import timedelta

import pytest

from subscriptions.ledger import ledger
from subscriptions.services import IngestResult, SubscriptionHealthCheck
from subscriptions.state_machines import EventKind, ListingTier, NotificationKind, SubscriptionStatus
from subscriptions.tests.conftest import NOW, RENEWAL_PERIOD
from subscriptions.tests.factories import (
    checkout_completed_event,
    invoice_event,
    subscription_event,
)
from subscriptions.workers import ExpirySweeper, RenewalNotifier

pytestmark = pytest.mark.django_db


def test_full_subscription_lifecycle(engine, business, sender, django_capture_on_commit_callbacks):
    def deliver(event):
        with django_capture_on_commit_callbacks(execute=True):
            assert engine.ingest(event, already_verified=True) is IngestResult.ACKNOWLEDGE

    sweeper = ExpirySweeper(engine=engine)
    notifier = RenewalNotifier(sender=sender)

    # Checkout
    deliver(checkout_completed_event(business, NOW, subscription_id="sub_life"))
    first_deadline = NOW + RENEWAL_PERIOD
    subscription = ledger.get(business.pk)
    assert subscription.tier == ListingTier.PREMIUM
    assert subscription.renewal_deadline == first_deadline

    # Reminder a week out
    counts = notifier.notify(first_deadline - timedelta(days=7), horizons=[7, 3, 1])
    assert counts == {7: 1, 3: 0, 1: 0}

    # Renewal charge fails, then succeeds on retry
    failed_at = first_deadline - timedelta(days=1)
    deliver(invoice_event("sub_life", failed_at, paid=False, failure_message="Insufficient funds"))
    assert ledger.get(business.pk).status == SubscriptionStatus.PAST_DUE

    renewed_at = first_deadline - timedelta(hours=2)
    deliver(invoice_event("sub_life", renewed_at, paid=True))
    subscription = ledger.get(business.pk)
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.renewal_deadline == renewed_at + RENEWAL_PERIOD

    # Owner cancels; the listing stays premium until the deadline
    second_deadline = subscription.renewal_deadline
    deliver(subscription_event("customer.subscription.deleted", "sub_life", renewed_at + timedelta(days=30)))
    subscription = ledger.get(business.pk)
    assert subscription.status == SubscriptionStatus.CANCELLED
    assert subscription.tier == ListingTier.PREMIUM

    assert sweeper.sweep(second_deadline - timedelta(minutes=1)) == 0
    assert sweeper.sweep(second_deadline + timedelta(minutes=1)) == 1
    subscription = ledger.get(business.pk)
    assert subscription.status == SubscriptionStatus.EXPIRED
    assert subscription.tier == ListingTier.FREE

    # Comes back later with a new Stripe subscription
    returned_at = second_deadline + timedelta(days=60)
    deliver(
        checkout_completed_event(
            business, returned_at, subscription_id="sub_life2", session_id="cs_test_again"
        )
    )
    subscription = ledger.get(business.pk)
    assert subscription.status == SubscriptionStatus.ACTIVE
    assert subscription.provider_subscription_id == "sub_life2"

    kinds = [entry.kind for entry in ledger.audit_trail(business.pk)]
    assert kinds == [
        EventKind.CREATED,
        EventKind.PAYMENT_FAILED,
        EventKind.RENEWED,
        EventKind.CANCELLED,
        EventKind.EXPIRED,
        EventKind.CREATED,
    ]
    assert [sent["kind"] for sent in sender.sent] == [
        NotificationKind.RENEWAL_REMINDER,
        NotificationKind.PAYMENT_FAILURE,
        NotificationKind.SUBSCRIPTION_CANCELLED,
    ]

    report = SubscriptionHealthCheck.run(returned_at + timedelta(days=1))
    assert report.missing_deadline == []
    assert report.elapsed_deadline == []
    assert report.invariant_violations == {}
    assert report.drift == []
