"""
Idempotency guard for subscription events.

Every event carries an id: the Stripe event id for webhooks, or a
deterministic synthetic id for sweeper-originated expiries. The unique
constraint on SubscriptionEvent.event_id is the single source of truth;
the guard inserts the event row inside a savepoint and reports whether the
id was new.

Usage:
    from subscriptions.idempotency import Admission, IdempotencyGuard

    with transaction.atomic():
        if IdempotencyGuard.admit(event_row) is Admission.DUPLICATE:
            raise DuplicateEventError(...)
"""

from __future__ import annotations

import logging
from enum import Enum

from django.db import IntegrityError, transaction

from subscriptions.models import SubscriptionEvent

logger = logging.getLogger(__name__)


class Admission(str, Enum):
    """Result of offering an event to the guard."""

    FRESH = "fresh"
    DUPLICATE = "duplicate"


class IdempotencyGuard:
    """
    Exactly-once admission of event ids into the event log.

    is_known() is a cheap pre-check that lets the engine skip provider
    lookups for obvious redeliveries. Two concurrent deliveries of the same
    id can both pass it, so the engine asks again once it holds the row
    lock. admit() is the authoritative check: only one insert survives the
    unique constraint.
    """

    @classmethod
    def is_known(cls, event_id: str) -> bool:
        """Check whether an event id is already in the event log."""
        return SubscriptionEvent.objects.filter(event_id=event_id).exists()

    @classmethod
    def admit(cls, event: SubscriptionEvent) -> Admission:
        """
        Insert the event row unless its id is already recorded.

        Must be called inside the transaction that applies the event so
        that the insert commits or rolls back together with the state
        change.

        Args:
            event: Unsaved SubscriptionEvent

        Returns:
            Admission.FRESH if the row was inserted, DUPLICATE otherwise

        Raises:
            IntegrityError: The insert failed for a reason other than a
                duplicate event id
        """
        try:
            with transaction.atomic():
                event.save(force_insert=True)
        except IntegrityError:
            if cls.is_known(event.event_id):
                logger.info(
                    "Duplicate event id rejected by ledger",
                    extra={"event_id": event.event_id},
                )
                return Admission.DUPLICATE
            raise
        return Admission.FRESH
