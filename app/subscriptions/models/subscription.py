"""
Subscription model: the ledger row for a business's premium listing.

There is exactly one Subscription per Business. It is opened with status
NONE when the business is created and is only ever transitioned, never
deleted.

Usage:
    from subscriptions.models import Subscription
    from subscriptions.state_machines import SubscriptionStatus

    subscription = Subscription.objects.get(pk=business.id)

    # State transitions using django-fsm
    subscription.activate(
        provider_subscription_id="sub_xxx",
        renewal_deadline=timezone.now() + timedelta(days=365),
    )  # none -> active
    subscription.save()

Note:
    Writes go through SubscriptionLedger.record() so every state change is
    stored together with its SubscriptionEvent.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from django.db import models
from django.db.models import F, Q

from django_fsm import RETURN_VALUE, FSMField, transition

from core.models import BaseModel
from subscriptions.state_machines import (
    PREMIUM_STATUSES,
    ListingTier,
    SubscriptionStatus,
    tier_for_status,
)

if TYPE_CHECKING:
    from datetime import datetime


# Provider status -> local status for customer.subscription.updated
PROVIDER_STATUS_MAP = {
    "canceled": SubscriptionStatus.CANCELLED,
    "past_due": SubscriptionStatus.PAST_DUE,
    "unpaid": SubscriptionStatus.PAST_DUE,
}


class Subscription(BaseModel):
    """
    Current premium subscription state of one business.

    Uses django-fsm for the status state machine and a version column
    that increments on every save.

    State Flow:
        NONE -> ACTIVE (checkout completed)
        ACTIVE -> PAST_DUE (payment failed)
        PAST_DUE -> ACTIVE (renewal paid)
        ACTIVE/PAST_DUE -> CANCELLED (provider deleted the subscription)
        ACTIVE/PAST_DUE/CANCELLED -> EXPIRED (renewal deadline passed)
        EXPIRED -> ACTIVE (re-subscription)

    Invariants:
        - tier is PREMIUM exactly when status is ACTIVE, PAST_DUE or CANCELLED
        - premium statuses carry a renewal deadline and a provider id
        - NONE and EXPIRED carry no provider id

    Fields:
        business: Owning business; its id is the subscription reference
        provider_subscription_id: Stripe Subscription ID (sub_xxx), unique when set
        customer_id: Stripe Customer ID (cus_xxx)
        status: Current FSM status
        tier: Listing tier derived from status
        renewal_deadline: When premium lapses without a renewal
        cancelled_at: When the provider cancelled the subscription
        last_event_at: Provider timestamp of the last applied event
        version: Incremented on each save
        metadata: Flexible JSON storage
    """

    # ==========================================================================
    # Relationships
    # ==========================================================================

    business = models.OneToOneField(
        "directory.Business",
        on_delete=models.PROTECT,
        primary_key=True,
        related_name="subscription",
        help_text="Business this subscription belongs to (id is the subscription reference)",
    )

    # ==========================================================================
    # Stripe Integration
    # ==========================================================================

    provider_subscription_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        help_text="Stripe Subscription ID (sub_xxx); cleared on expiry",
    )

    customer_id = models.CharField(
        max_length=255,
        null=True,
        blank=True,
        db_index=True,
        help_text="Stripe Customer ID (cus_xxx)",
    )

    # ==========================================================================
    # State
    # ==========================================================================

    status = FSMField(
        default=SubscriptionStatus.NONE,
        choices=SubscriptionStatus.choices,
        db_index=True,
        protected=True,
        help_text="Current subscription status (managed by FSM)",
    )

    tier = models.CharField(
        max_length=16,
        choices=ListingTier.choices,
        default=ListingTier.FREE,
        help_text="Listing tier; premium while the subscription holds benefits",
    )

    renewal_deadline = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When premium lapses unless a renewal arrives",
    )

    cancelled_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the provider cancelled the subscription",
    )

    last_event_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Provider timestamp of the most recently applied event",
    )

    # ==========================================================================
    # Concurrency Control
    # ==========================================================================

    version = models.PositiveIntegerField(
        default=1,
        help_text="Incremented on each save",
    )

    # ==========================================================================
    # Metadata
    # ==========================================================================

    metadata = models.JSONField(
        default=dict,
        blank=True,
        help_text="Arbitrary JSON metadata for extensibility",
    )

    # ==========================================================================
    # Meta & Methods
    # ==========================================================================

    class Meta:
        ordering = ["business_id"]
        verbose_name = "Subscription"
        verbose_name_plural = "Subscriptions"
        indexes = [
            models.Index(
                fields=["status", "renewal_deadline"],
                name="sub_status_deadline_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["provider_subscription_id"],
                condition=Q(provider_subscription_id__isnull=False),
                name="subscription_provider_id_unique",
            ),
            models.CheckConstraint(
                condition=(
                    Q(
                        status__in=[SubscriptionStatus.NONE, SubscriptionStatus.EXPIRED],
                        tier=ListingTier.FREE,
                    )
                    | Q(
                        status__in=[
                            SubscriptionStatus.ACTIVE,
                            SubscriptionStatus.PAST_DUE,
                            SubscriptionStatus.CANCELLED,
                        ],
                        tier=ListingTier.PREMIUM,
                    )
                ),
                name="subscription_tier_matches_status",
            ),
            models.CheckConstraint(
                condition=(
                    ~Q(status=SubscriptionStatus.EXPIRED)
                    | Q(provider_subscription_id__isnull=True)
                ),
                name="subscription_expired_has_no_provider_id",
            ),
        ]

    def __str__(self) -> str:
        return f"Subscription({self.business_id}, {self.status}, {self.tier})"

    def save(self, *args, **kwargs):
        """
        Save with version auto-increment.
        """
        is_update = not self._state.adding and not kwargs.get("force_insert", False)
        if is_update:
            self.version = F("version") + 1
        super().save(*args, **kwargs)
        if is_update:
            self.refresh_from_db(fields=["version"])

    @property
    def subscription_ref(self) -> int:
        """The owning business id, used as the ledger key."""
        return self.business_id

    # ==========================================================================
    # State Transitions (django-fsm)
    # ==========================================================================

    @transition(
        field=status,
        source=[SubscriptionStatus.NONE, SubscriptionStatus.EXPIRED],
        target=SubscriptionStatus.ACTIVE,
    )
    def activate(
        self,
        provider_subscription_id: str,
        renewal_deadline: datetime,
        customer_id: str | None = None,
    ):
        """
        Start a premium cycle after a completed checkout.

        Transition: NONE/EXPIRED -> ACTIVE
        """
        self.provider_subscription_id = provider_subscription_id
        self.customer_id = customer_id or self.customer_id
        self.renewal_deadline = renewal_deadline
        self.tier = ListingTier.PREMIUM
        self.cancelled_at = None

    @transition(
        field=status,
        source=[
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.PAST_DUE,
            SubscriptionStatus.CANCELLED,
        ],
        target=RETURN_VALUE(SubscriptionStatus.ACTIVE, SubscriptionStatus.CANCELLED),
    )
    def renew(self, renewal_deadline: datetime):
        """
        Extend the renewal deadline after a paid invoice.

        Transition: ACTIVE/PAST_DUE -> ACTIVE, CANCELLED -> CANCELLED
        """
        self.renewal_deadline = renewal_deadline
        if self.status == SubscriptionStatus.CANCELLED:
            return SubscriptionStatus.CANCELLED
        return SubscriptionStatus.ACTIVE

    @transition(
        field=status,
        source=SubscriptionStatus.ACTIVE,
        target=SubscriptionStatus.PAST_DUE,
    )
    def mark_past_due(self):
        """
        Mark subscription as past due after payment failure.

        Transition: ACTIVE -> PAST_DUE

        The listing stays premium while Stripe retries the payment.
        """
        pass

    @transition(
        field=status,
        source=[
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.PAST_DUE,
            SubscriptionStatus.CANCELLED,
        ],
        target=SubscriptionStatus.CANCELLED,
    )
    def cancel(self, cancelled_at: datetime):
        """
        Record the provider-side cancellation.

        Transition: ACTIVE/PAST_DUE/CANCELLED -> CANCELLED

        Premium is kept until the renewal deadline passes.
        """
        if self.cancelled_at is None:
            self.cancelled_at = cancelled_at

    @transition(
        field=status,
        source=[
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.PAST_DUE,
            SubscriptionStatus.CANCELLED,
        ],
        target=RETURN_VALUE(
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.PAST_DUE,
            SubscriptionStatus.CANCELLED,
        ),
    )
    def sync_status(self, provider_status: str, synced_at: datetime):
        """
        Mirror the provider's subscription status.

        canceled -> CANCELLED, past_due/unpaid -> PAST_DUE, anything else -> ACTIVE
        """
        new_status = PROVIDER_STATUS_MAP.get(provider_status, SubscriptionStatus.ACTIVE)
        if new_status == SubscriptionStatus.CANCELLED:
            if self.cancelled_at is None:
                self.cancelled_at = synced_at
        else:
            self.cancelled_at = None
        return new_status

    @transition(
        field=status,
        source=[
            SubscriptionStatus.ACTIVE,
            SubscriptionStatus.PAST_DUE,
            SubscriptionStatus.CANCELLED,
        ],
        target=SubscriptionStatus.EXPIRED,
    )
    def expire(self):
        """
        Downgrade the listing once the renewal deadline has passed.

        Transition: ACTIVE/PAST_DUE/CANCELLED -> EXPIRED
        """
        self.tier = ListingTier.FREE
        self.provider_subscription_id = None

    # ==========================================================================
    # Invariants
    # ==========================================================================

    def invariant_violations(self) -> list[str]:
        """Return a description of every invariant the current state breaks."""
        violations = []
        if self.tier != tier_for_status(self.status):
            violations.append(f"tier '{self.tier}' does not match status '{self.status}'")
        if self.status in PREMIUM_STATUSES:
            if self.renewal_deadline is None:
                violations.append(f"status '{self.status}' has no renewal deadline")
            if not self.provider_subscription_id:
                violations.append(f"status '{self.status}' has no provider subscription id")
        elif self.provider_subscription_id:
            violations.append(f"status '{self.status}' still has a provider subscription id")
        return violations

    # ==========================================================================
    # Helper Properties
    # ==========================================================================

    @property
    def is_premium(self) -> bool:
        """Check if the listing currently has premium benefits."""
        return self.tier == ListingTier.PREMIUM

    @property
    def is_active(self) -> bool:
        return self.status == SubscriptionStatus.ACTIVE

    @property
    def is_past_due(self) -> bool:
        return self.status == SubscriptionStatus.PAST_DUE

    @property
    def is_cancelled(self) -> bool:
        return self.status == SubscriptionStatus.CANCELLED
