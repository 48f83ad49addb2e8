"""
Expiry sweeper: downgrades subscriptions whose renewal deadline passed.

Runs daily. Every expiry is applied through the ReconciliationEngine as a
synthetic event with id `expire:<business id>:<deadline ISO>`, so a rerun
after a crash is safe and the expiry shows up in the audit trail like any
provider event.

Usage:
    from subscriptions.workers import ExpirySweeper

    sweeper = ExpirySweeper(engine=ReconciliationEngine())
    expired_count = sweeper.sweep()
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.utils import timezone

from subscriptions.ledger import ledger as default_ledger
from subscriptions.services.reconciliation_engine import Outcome

if TYPE_CHECKING:
    from datetime import datetime

    from subscriptions.ledger import SubscriptionLedger
    from subscriptions.services import ReconciliationEngine

logger = logging.getLogger(__name__)


class ExpirySweeper:
    """
    Finds lapsed premium subscriptions and expires them one by one.

    Each subscription is its own transaction; a failure on one row is
    logged and the sweep moves on.
    """

    def __init__(self, engine: ReconciliationEngine, ledger: SubscriptionLedger | None = None):
        self.engine = engine
        self.ledger = ledger or default_ledger

    def sweep(self, now: datetime | None = None) -> int:
        """
        Expire every subscription due at `now`.

        Returns:
            Number of subscriptions transitioned to EXPIRED
        """
        now = now or timezone.now()
        candidates = list(
            self.ledger.due_for_expiry(now).values_list("pk", "renewal_deadline")
        )
        logger.info(
            "Starting expiry sweep",
            extra={"candidate_count": len(candidates), "now": now.isoformat()},
        )

        expired_count = 0
        for subscription_ref, renewal_deadline in candidates:
            try:
                result = self.engine.expire(subscription_ref, renewal_deadline, now)
            except Exception as e:
                logger.error(
                    f"Failed to expire subscription: {e}",
                    extra={"subscription_ref": subscription_ref, "error": str(e)},
                    exc_info=True,
                )
                continue

            if result.outcome is Outcome.APPLIED:
                expired_count += 1
            elif result.outcome is Outcome.FAILED:
                logger.error(
                    "Failed to expire subscription",
                    extra={"subscription_ref": subscription_ref, "reason": result.reason},
                )

        logger.info(
            f"Expiry sweep complete: expired {expired_count} subscriptions",
            extra={"expired_count": expired_count},
        )
        return expired_count
