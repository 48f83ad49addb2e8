"""
Concurrent delivery of the same Stripe event.

Needs real row locks and unique-constraint races, so it only runs on
PostgreSQL (SQLite serializes writers at the file level).
"""

import threading

import pytest
from django.db import connection

from subscriptions.models import Subscription, SubscriptionEvent
from subscriptions.services import IngestResult, Outcome, ReconciliationEngine
from subscriptions.state_machines import SubscriptionStatus
from subscriptions.tests.conftest import NOW, RENEWAL_PERIOD, FakeGateway, RecordingSender
from subscriptions.tests.factories import (
    BusinessFactory,
    checkout_completed_event,
    invoice_event,
    premium_subscription,
)

pytestmark = [
    pytest.mark.postgres,
    pytest.mark.skipif(connection.vendor != "postgresql", reason="requires PostgreSQL"),
]


def run_concurrently(target, count):
    barrier = threading.Barrier(count)
    results = []
    errors = []

    def worker():
        try:
            barrier.wait()
            results.append(target())
        except Exception as e:
            errors.append(e)
        finally:
            connection.close()

    threads = [threading.Thread(target=worker) for _ in range(count)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=30)

    assert errors == []
    return results


@pytest.mark.django_db(transaction=True)
class TestConcurrentDelivery:
    def test_same_event_applied_once(self):
        """Two workers racing on one event id: one applies, one sees a duplicate."""
        business = BusinessFactory()
        event = checkout_completed_event(business, NOW, event_id="evt_race")
        sender = RecordingSender()
        engine = ReconciliationEngine(
            gateway=FakeGateway(),
            sender=sender,
            clock=lambda: NOW,
            renewal_period=RENEWAL_PERIOD,
        )

        results = run_concurrently(lambda: engine.process(event, already_verified=True), 2)

        assert sorted(r.outcome for r in results) == sorted([Outcome.APPLIED, Outcome.DUPLICATE])
        assert all(r.ingest_result is IngestResult.ACKNOWLEDGE for r in results)
        assert SubscriptionEvent.objects.filter(event_id="evt_race").count() == 1
        subscription = Subscription.objects.get(pk=business.pk)
        assert subscription.status == SubscriptionStatus.ACTIVE
        assert subscription.renewal_deadline == NOW + RENEWAL_PERIOD
        assert subscription.version == 2

    def test_distinct_events_serialize_on_the_row(self):
        """A renewal racing a payment failure leaves one consistent state."""
        business = BusinessFactory()
        premium_subscription(business, NOW + RENEWAL_PERIOD, subscription_id="sub_race")
        engine = ReconciliationEngine(
            gateway=FakeGateway(),
            sender=RecordingSender(),
            clock=lambda: NOW,
            renewal_period=RENEWAL_PERIOD,
        )
        events = iter(
            [
                invoice_event("sub_race", NOW, paid=True, event_id="evt_paid"),
                invoice_event("sub_race", NOW, paid=False, event_id="evt_failed"),
            ]
        )
        lock = threading.Lock()

        def deliver():
            with lock:
                event = next(events)
            return engine.process(event, already_verified=True)

        results = run_concurrently(deliver, 2)

        assert all(r.ingest_result is IngestResult.ACKNOWLEDGE for r in results)
        applied = [r for r in results if r.outcome is Outcome.APPLIED]
        subscription = Subscription.objects.get(pk=business.pk)
        assert subscription.version == 1 + len(applied)
        assert subscription.invariant_violations() == []
        assert SubscriptionEvent.objects.filter(subscription=subscription).count() == len(applied)
