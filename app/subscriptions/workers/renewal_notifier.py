"""
Renewal notifier: emails owners whose premium listing expires soon.

Runs daily. For each horizon (days before expiry) it finds ACTIVE
subscriptions whose renewal deadline falls on `today + horizon` in the
schedule time zone and sends one reminder per subscription, horizon and
calendar day.

A NotificationRecord row is inserted in the same transaction as the
dispatch. The unique constraint on it is the dedup: a second run on the
same day skips already-reminded rows, and a failed dispatch rolls the row
back so a later run can retry.

Usage:
    from subscriptions.workers import RenewalNotifier

    counts = RenewalNotifier(sender=EmailNotificationSender()).notify()
    # {7: 2, 3: 0, 1: 1}
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import TYPE_CHECKING
from zoneinfo import ZoneInfo

from django.conf import settings
from django.db import IntegrityError, transaction
from django.utils import timezone

from subscriptions.exceptions import NotificationDispatchError
from subscriptions.ledger import ledger as default_ledger
from subscriptions.models import NotificationRecord
from subscriptions.notifications import business_context
from subscriptions.state_machines import NotificationKind

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable
    from datetime import datetime

    from subscriptions.ledger import SubscriptionLedger
    from subscriptions.models import Subscription
    from toolkit.protocols import NotificationSender

logger = logging.getLogger(__name__)


class RenewalNotifier:
    """Sends deduplicated renewal reminders."""

    def __init__(
        self,
        sender: NotificationSender,
        ledger: SubscriptionLedger | None = None,
        clock: Callable[[], datetime] = timezone.now,
    ):
        self.sender = sender
        self.ledger = ledger or default_ledger
        self.clock = clock

    def notify(
        self,
        now: datetime | None = None,
        horizons: Iterable[int] | None = None,
    ) -> dict[int, int]:
        """
        Send reminders for every horizon.

        Args:
            now: Reference time (defaults to the clock)
            horizons: Days-before-expiry to remind at
                (defaults to SUBSCRIPTION_REMINDER_HORIZONS)

        Returns:
            Reminders sent per horizon
        """
        now = now or self.clock()
        if horizons is None:
            horizons = settings.SUBSCRIPTION_REMINDER_HORIZONS
        tz = ZoneInfo(settings.SUBSCRIPTION_SCHEDULE_TIMEZONE)
        today = timezone.localdate(now, tz)

        counts: dict[int, int] = {}
        for horizon in horizons:
            counts[horizon] = 0
            target_day = today + timedelta(days=horizon)
            for subscription in self.ledger.expiring_on(target_day, tz):
                if self._remind(subscription, horizon, today):
                    counts[horizon] += 1

        logger.info(
            "Renewal reminders sent",
            extra={"counts": counts, "calendar_date": today.isoformat()},
        )
        return counts

    def _remind(self, subscription: Subscription, horizon: int, today) -> bool:
        """Send one reminder; False if skipped, already sent or failed.

        Failures never escape: one bad listing must not cost the rest of
        the batch its reminder.
        """
        log_context = {
            "subscription_ref": subscription.pk,
            "horizon_days": horizon,
            "calendar_date": today.isoformat(),
        }
        recipient = subscription.business.notification_email
        if not recipient:
            logger.warning("No recipient for renewal reminder", extra=log_context)
            return False

        try:
            with transaction.atomic():
                NotificationRecord.objects.create(
                    subscription=subscription,
                    kind=NotificationKind.RENEWAL_REMINDER,
                    horizon_days=horizon,
                    calendar_date=today,
                    recipient=recipient,
                )
                self.sender.send(
                    NotificationKind.RENEWAL_REMINDER,
                    recipient,
                    business_context(subscription),
                    {"days_until_expiry": horizon},
                )
        except IntegrityError:
            logger.debug("Renewal reminder already sent today", extra=log_context)
            return False
        except NotificationDispatchError as e:
            logger.warning(
                f"Renewal reminder failed: {e.message}",
                extra={**log_context, "error_code": e.error_code},
            )
            return False
        except Exception as e:
            logger.error(
                f"Renewal reminder crashed: {e}",
                extra={**log_context, "error": str(e)},
                exc_info=True,
            )
            return False

        return True
