"""
Periodic subscription workers.

- ExpirySweeper: expires subscriptions past their renewal deadline
- RenewalNotifier: sends deduplicated renewal reminders

Both are driven by SubscriptionScheduler from Celery beat.
"""

from subscriptions.workers.expiry_sweeper import ExpirySweeper
from subscriptions.workers.renewal_notifier import RenewalNotifier

__all__ = ["ExpirySweeper", "RenewalNotifier"]
