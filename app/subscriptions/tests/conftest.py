"""
Pytest fixtures for subscription tests.

Collaborators the engine talks to (Stripe, email) are replaced with
in-memory fakes; the clock is pinned to NOW.

Usage:
    def test_checkout_activates(engine, business):
        engine.ingest(checkout_completed_event(business, NOW), already_verified=True)
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone as dt_timezone

import pytest

from subscriptions.exceptions import NotificationDispatchError
from subscriptions.services import ReconciliationEngine
from subscriptions.tests.factories import BusinessFactory, UserFactory

# Whole seconds: Stripe timestamps carry no sub-second part
NOW = datetime(2026, 3, 2, 1, 0, tzinfo=dt_timezone.utc)
RENEWAL_PERIOD = timedelta(days=365)


# =============================================================================
# Fakes
# =============================================================================


class FakeGateway:
    """In-memory PaymentGateway."""

    def __init__(self):
        self.checkout_sessions = {}
        self.subscriptions = {}
        self.error = None
        self.calls = []

    def retrieve_checkout_session(self, session_id):
        self.calls.append(("retrieve_checkout_session", session_id))
        if self.error:
            raise self.error
        return self.checkout_sessions[session_id]

    def retrieve_subscription(self, subscription_id):
        self.calls.append(("retrieve_subscription", subscription_id))
        if self.error:
            raise self.error
        return self.subscriptions[subscription_id]

    def verify_webhook_signature(self, payload, signature):
        raise NotImplementedError


class RecordingSender:
    """NotificationSender that records every send; can be told to fail."""

    def __init__(self):
        self.sent = []
        self.fail = False

    def send(self, kind, recipient, business_context, extra=None):
        if self.fail:
            raise NotificationDispatchError("SMTP unavailable")
        self.sent.append(
            {
                "kind": kind,
                "recipient": recipient,
                "business_context": business_context,
                "extra": extra or {},
            }
        )


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def owner(db):
    """Create a listing owner."""
    return UserFactory()


@pytest.fixture
def business(db, owner):
    """Create a business; its subscription starts NONE/FREE."""
    return BusinessFactory(owner=owner)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def engine(db, gateway, sender, clock):
    """ReconciliationEngine wired with fakes and a pinned clock."""
    return ReconciliationEngine(
        gateway=gateway,
        sender=sender,
        clock=clock,
        renewal_period=RENEWAL_PERIOD,
    )
