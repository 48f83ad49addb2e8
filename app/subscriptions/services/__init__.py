"""
Subscription services.

This module provides:
- ReconciliationEngine: Applies normalized events to the ledger
- SubscriptionHealthCheck: Read-only consistency report
- CheckoutStatusService: Read-only status for the checkout success page

Usage:
    from subscriptions.services import ReconciliationEngine, IngestResult

    engine = ReconciliationEngine()
    if engine.ingest(event, already_verified=True) is IngestResult.ACKNOWLEDGE:
        ...
"""

from subscriptions.services.checkout_status import CheckoutStatusService
from subscriptions.services.health_check import HealthReport, SubscriptionHealthCheck
from subscriptions.services.reconciliation_engine import (
    ApplyResult,
    IngestResult,
    Outcome,
    ReconciliationEngine,
)

__all__ = [
    "ApplyResult",
    "CheckoutStatusService",
    "HealthReport",
    "IngestResult",
    "Outcome",
    "ReconciliationEngine",
    "SubscriptionHealthCheck",
]
