"""
State machine enums and helpers for subscription models.
"""

from subscriptions.state_machines.states import (
    PREMIUM_STATUSES,
    EventKind,
    ListingTier,
    NotificationKind,
    SubscriptionStatus,
    tier_for_status,
)

__all__ = [
    "EventKind",
    "ListingTier",
    "NotificationKind",
    "PREMIUM_STATUSES",
    "SubscriptionStatus",
    "tier_for_status",
]
