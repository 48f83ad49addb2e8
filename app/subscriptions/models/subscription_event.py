"""
SubscriptionEvent model: the append-only event log.

Every state change of a Subscription is recorded here in the same
transaction as the change itself. The unique `event_id` column is also the
idempotency guard for webhook redeliveries.

Usage:
    from subscriptions.models import SubscriptionEvent

    # Full history of one business, oldest first
    SubscriptionEvent.objects.filter(subscription_id=42).order_by("observed_at")
"""

from __future__ import annotations

from django.db import models
from django.utils import timezone

from core.model_mixins import UUIDPrimaryKeyMixin
from core.models import BaseModel
from subscriptions.exceptions import LedgerInvariantError
from subscriptions.state_machines import EventKind, ListingTier, SubscriptionStatus


class SubscriptionEvent(UUIDPrimaryKeyMixin, BaseModel):
    """
    Immutable record of one applied subscription event.

    Rows are inserted once and never updated or deleted; save() on an
    existing row and delete() both raise LedgerInvariantError.

    Fields:
        event_id: Provider event id (evt_xxx) or a deterministic synthetic id
            for sweeper-originated events. Unique.
        subscription: Subscription the event was applied to
        kind: Canonical event kind
        payload: The raw event envelope (opaque)
        occurred_at: Provider timestamp of the event
        observed_at: When this system applied the event
        status_after: Subscription status right after the event
        tier_after: Listing tier right after the event
    """

    event_id = models.CharField(
        max_length=255,
        unique=True,
        help_text="Provider event id or deterministic synthetic id (idempotency key)",
    )

    subscription = models.ForeignKey(
        "subscriptions.Subscription",
        on_delete=models.PROTECT,
        related_name="events",
        help_text="Subscription this event was applied to",
    )

    kind = models.CharField(
        max_length=32,
        choices=EventKind.choices,
        db_index=True,
        help_text="Canonical event kind",
    )

    payload = models.JSONField(
        default=dict,
        blank=True,
        help_text="Raw event envelope as received",
    )

    occurred_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the provider says the event happened",
    )

    observed_at = models.DateTimeField(
        default=timezone.now,
        help_text="When the event was applied to the ledger",
    )

    status_after = models.CharField(
        max_length=16,
        choices=SubscriptionStatus.choices,
        help_text="Subscription status after this event",
    )

    tier_after = models.CharField(
        max_length=16,
        choices=ListingTier.choices,
        help_text="Listing tier after this event",
    )

    class Meta:
        ordering = ["observed_at", "created_at"]
        verbose_name = "Subscription Event"
        verbose_name_plural = "Subscription Events"
        indexes = [
            models.Index(
                fields=["subscription", "observed_at"],
                name="sub_event_observed_idx",
            ),
        ]

    def __str__(self) -> str:
        return f"SubscriptionEvent({self.event_id}, {self.kind}, {self.subscription_id})"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise LedgerInvariantError(
                "Subscription events are immutable",
                details={"event_id": self.event_id},
            )
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise LedgerInvariantError(
            "Subscription events cannot be deleted",
            details={"event_id": self.event_id},
        )
