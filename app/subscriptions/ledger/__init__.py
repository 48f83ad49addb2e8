"""
Subscription ledger - current state and event history of premium listings.

Public API:
    Service:
        ledger - Singleton instance of SubscriptionLedger
        SubscriptionLedger - Class with all ledger operations

    Types:
        RecordEventParams - Parameters for recording an applied event

Usage:
    from subscriptions.ledger import ledger

    subscription = ledger.get(business.id)
    history = ledger.audit_trail(business.id)
"""

from .services import EXPIRABLE_STATUSES, SubscriptionLedger, ledger
from .types import RecordEventParams

__all__ = [
    "EXPIRABLE_STATUSES",
    "ledger",
    "SubscriptionLedger",
    "RecordEventParams",
]
