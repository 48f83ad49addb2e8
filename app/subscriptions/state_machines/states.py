"""
State enums for subscription models.

These are Django TextChoices for database storage and admin integration.

State Machines Overview:

Subscription Status:
    none → active (checkout completed)
    active → past_due → active (payment failed, then recovered)
    active/past_due → cancelled (provider deleted the subscription)
    active/past_due/cancelled → expired (renewal deadline passed)
    expired → active (re-subscription starts a fresh cycle)

Listing Tier:
    free while status is none/expired, premium otherwise
"""

from django.db import models


class SubscriptionStatus(models.TextChoices):
    """
    Lifecycle status of a business's premium subscription.

    State Flow:
        NONE → ACTIVE
        ACTIVE → PAST_DUE → ACTIVE
        ACTIVE/PAST_DUE → CANCELLED
        ACTIVE/PAST_DUE/CANCELLED → EXPIRED
        EXPIRED → ACTIVE

    CANCELLED keeps premium benefits until the renewal deadline; only the
    expiry sweeper downgrades the listing.
    """

    NONE = "none", "None"
    ACTIVE = "active", "Active"
    PAST_DUE = "past_due", "Past Due"
    CANCELLED = "cancelled", "Cancelled"
    EXPIRED = "expired", "Expired"


class ListingTier(models.TextChoices):
    """Listing tier derived from the subscription status."""

    FREE = "free", "Free"
    PREMIUM = "premium", "Premium"


class EventKind(models.TextChoices):
    """
    Canonical kinds of state-changing subscription events.

    Every provider event the normalizer recognizes maps to exactly one of
    these. EXPIRED is synthesized by the expiry sweeper and never comes
    from the provider.
    """

    CREATED = "created", "Created"
    RENEWED = "renewed", "Renewed"
    CANCELLED = "cancelled", "Cancelled"
    PAYMENT_FAILED = "payment_failed", "Payment Failed"
    STATUS_SYNCED = "status_synced", "Status Synced"
    EXPIRED = "expired", "Expired"


class NotificationKind(models.TextChoices):
    """Kinds of notifications requested from the notification sender."""

    RENEWAL_REMINDER = "renewal_reminder", "Renewal Reminder"
    PAYMENT_FAILURE = "payment_failure", "Payment Failure"
    SUBSCRIPTION_CANCELLED = "subscription_cancelled", "Subscription Cancelled"


# Statuses that carry premium benefits.
PREMIUM_STATUSES = frozenset(
    {
        SubscriptionStatus.ACTIVE,
        SubscriptionStatus.PAST_DUE,
        SubscriptionStatus.CANCELLED,
    }
)


def tier_for_status(status: str) -> str:
    """Return the listing tier a subscription in `status` must have."""
    if status in PREMIUM_STATUSES:
        return ListingTier.PREMIUM
    return ListingTier.FREE


__all__ = [
    "EventKind",
    "ListingTier",
    "NotificationKind",
    "PREMIUM_STATUSES",
    "SubscriptionStatus",
    "tier_for_status",
]
