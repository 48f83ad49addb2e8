"""
Subscription models.

Models:
    Subscription: Current premium state per business (ledger row)
    SubscriptionEvent: Append-only event log / idempotency guard
    NotificationRecord: Renewal reminder deduplication
"""

from subscriptions.models.notification_record import NotificationRecord
from subscriptions.models.subscription import Subscription
from subscriptions.models.subscription_event import SubscriptionEvent

__all__ = [
    "NotificationRecord",
    "Subscription",
    "SubscriptionEvent",
]
