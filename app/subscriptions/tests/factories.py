"""
Factory Boy factories and Stripe event builders for subscription tests.

Usage:
    from subscriptions.tests.factories import (
        BusinessFactory,
        checkout_completed_event,
        set_subscription_state,
    )

    business = BusinessFactory()   # opens a NONE/FREE subscription
    subscription = set_subscription_state(
        business,
        status=SubscriptionStatus.ACTIVE,
        renewal_deadline=timezone.now() + timedelta(days=30),
    )
    event = checkout_completed_event(business, created=now, subscription_id="sub_123")
"""

from __future__ import annotations

import uuid
from datetime import datetime

import factory

from directory.models import Business
from subscriptions.models import Subscription, SubscriptionEvent
from subscriptions.state_machines import (
    EventKind,
    ListingTier,
    SubscriptionStatus,
    tier_for_status,
)


class UserFactory(factory.django.DjangoModelFactory):
    """Factory for django.contrib.auth users."""

    class Meta:
        model = "auth.User"
        skip_postgeneration_save = True

    username = factory.Sequence(lambda n: f"owner{n}")
    email = factory.Sequence(lambda n: f"owner{n}@example.com")
    first_name = "Alex"
    last_name = factory.Sequence(lambda n: f"Owner{n}")
    password = factory.PostGenerationMethodCall("set_password", "testpass123")
    is_active = True


class BusinessFactory(factory.django.DjangoModelFactory):
    """
    Factory for Business listings.

    The post_save receiver opens the subscription row, so every business
    built here has a NONE/FREE Subscription.
    """

    class Meta:
        model = Business

    owner = factory.SubFactory(UserFactory)
    name = factory.Sequence(lambda n: f"Business {n}")
    contact_email = ""


class SubscriptionEventFactory(factory.django.DjangoModelFactory):
    """
    Factory for event log rows.

    Only for seeding history in read-side tests; the engine writes real
    events through the ledger.
    """

    class Meta:
        model = SubscriptionEvent

    event_id = factory.LazyFunction(lambda: f"evt_test_{uuid.uuid4().hex[:16]}")
    subscription = factory.LazyFunction(lambda: BusinessFactory().subscription)
    kind = EventKind.CREATED
    payload = factory.LazyFunction(dict)
    status_after = SubscriptionStatus.ACTIVE
    tier_after = ListingTier.PREMIUM


def set_subscription_state(business: Business, **fields) -> Subscription:
    """
    Force a subscription into a state, bypassing the FSM.

    The status field is protected, so the row is updated in the database
    and reloaded. The tier follows the status unless given explicitly.
    """
    if "status" in fields and "tier" not in fields:
        fields["tier"] = tier_for_status(fields["status"])
    Subscription.objects.filter(pk=business.pk).update(**fields)
    return Subscription.objects.get(pk=business.pk)


def premium_subscription(
    business: Business,
    renewal_deadline: datetime,
    status: str = SubscriptionStatus.ACTIVE,
    subscription_id: str | None = None,
) -> Subscription:
    """A subscription in a premium status with a Stripe id and deadline."""
    return set_subscription_state(
        business,
        status=status,
        renewal_deadline=renewal_deadline,
        provider_subscription_id=subscription_id or f"sub_{uuid.uuid4().hex[:14]}",
        customer_id="cus_test123",
    )


# =============================================================================
# Stripe Event Builders
# =============================================================================


def stripe_event(event_type: str, obj: dict, created: datetime, event_id: str | None = None) -> dict:
    """A Stripe event envelope around `obj`."""
    return {
        "id": event_id or f"evt_{uuid.uuid4().hex[:24]}",
        "object": "event",
        "type": event_type,
        "created": int(created.timestamp()),
        "livemode": False,
        "data": {"object": obj},
    }


def checkout_completed_event(
    business: Business,
    created: datetime,
    subscription_id: str | None = "sub_test123",
    owner_id=None,
    session_id: str = "cs_test_abc",
    event_id: str | None = None,
) -> dict:
    session = {
        "id": session_id,
        "object": "checkout.session",
        "mode": "subscription",
        "subscription": subscription_id,
        "customer": "cus_test123",
        "amount_total": 9900,
        "currency": "aud",
        "metadata": {
            "business_id": str(business.pk),
            "user_id": str(owner_id if owner_id is not None else business.owner_id),
        },
    }
    return stripe_event("checkout.session.completed", session, created, event_id)


def invoice_event(
    subscription_id: str,
    created: datetime,
    paid: bool = True,
    failure_message: str | None = None,
    event_id: str | None = None,
) -> dict:
    invoice = {
        "id": f"in_{uuid.uuid4().hex[:14]}",
        "object": "invoice",
        "subscription": subscription_id,
        "customer": "cus_test123",
        "currency": "aud",
        "amount_paid": 9900 if paid else 0,
        "amount_due": 9900,
    }
    if not paid:
        invoice["last_payment_error"] = {"message": failure_message or "Your card was declined."}
    event_type = "invoice.payment_succeeded" if paid else "invoice.payment_failed"
    return stripe_event(event_type, invoice, created, event_id)


def subscription_event(
    event_type: str,
    subscription_id: str,
    created: datetime,
    status: str | None = "active",
    event_id: str | None = None,
) -> dict:
    obj = {
        "id": subscription_id,
        "object": "subscription",
        "customer": "cus_test123",
        "status": status,
    }
    return stripe_event(event_type, obj, created, event_id)
