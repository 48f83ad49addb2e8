"""
NotificationRecord model: per-day deduplication of renewal reminders.

Derived data, not authoritative. A row exists only for a reminder that was
handed to the notification sender.
"""

from __future__ import annotations

from django.db import models

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from subscriptions.state_machines import NotificationKind


class NotificationRecord(UUIDPrimaryKeyMixin, BaseModel):
    """
    One sent reminder for (subscription, horizon, calendar date).

    Fields:
        subscription: Subscription the reminder was about
        kind: Notification kind (renewal reminders only, today)
        horizon_days: Days until expiry the reminder announced
        calendar_date: Local calendar date of the run that sent it
        recipient: Address the reminder went to
    """

    subscription = models.ForeignKey(
        "subscriptions.Subscription",
        on_delete=models.PROTECT,
        related_name="notification_records",
        help_text="Subscription the reminder was about",
    )

    kind = models.CharField(
        max_length=32,
        choices=NotificationKind.choices,
        default=NotificationKind.RENEWAL_REMINDER,
        help_text="Kind of notification sent",
    )

    horizon_days = models.PositiveSmallIntegerField(
        help_text="Days until expiry announced by the reminder",
    )

    calendar_date = models.DateField(
        help_text="Local calendar date the reminder was sent on",
    )

    recipient = models.EmailField(
        help_text="Address the reminder was sent to",
    )

    class Meta:
        ordering = ["-calendar_date", "horizon_days"]
        verbose_name = "Notification Record"
        verbose_name_plural = "Notification Records"
        constraints = [
            models.UniqueConstraint(
                fields=["subscription", "horizon_days", "calendar_date"],
                name="notification_record_once_per_day",
            ),
        ]

    def __str__(self) -> str:
        return (
            f"NotificationRecord({self.subscription_id}, "
            f"{self.horizon_days}d, {self.calendar_date})"
        )
