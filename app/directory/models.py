"""
Business listing model.

Usage:
    from directory.models import Business

    business = Business.objects.create(
        owner=user,
        name="Joe's Plumbing",
        contact_email="joe@example.com",
    )
    # The post_save receiver in subscriptions.signals opens the
    # subscription ledger row (status NONE, tier FREE).
    business.subscription.status  # "none"
"""

from __future__ import annotations

from django.conf import settings
from django.db import models

from core.models import BaseModel


class Business(BaseModel):
    """
    A directory listing owned by a registered user.

    The integer primary key doubles as the subscription reference carried
    in Stripe checkout metadata (`business_id`).

    Fields:
        owner: User who manages the listing and pays for premium
        name: Display name used in notifications
        contact_email: Address notifications are sent to (falls back to
            the owner's email when blank)
    """

    owner = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="businesses",
        help_text="User who owns this listing",
    )

    name = models.CharField(
        max_length=200,
        help_text="Business display name",
    )

    contact_email = models.EmailField(
        blank=True,
        help_text="Notification address; the owner's email is used when blank",
    )

    class Meta:
        ordering = ["name"]
        verbose_name = "Business"
        verbose_name_plural = "Businesses"

    def __str__(self) -> str:
        return f"Business({self.pk}, {self.name})"

    @property
    def notification_email(self) -> str:
        """Address renewal and billing notifications go to."""
        return self.contact_email or self.owner.email
