"""
Read-only subscription status for the checkout success redirect.

The redirect never changes the ledger. It only reports what the webhook
path has already applied, so the page can tell the owner whether their
premium listing is live yet.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.services import BaseService, ServiceResult
from directory.models import Business
from subscriptions.models import Subscription, SubscriptionEvent
from subscriptions.state_machines import EventKind, ListingTier, SubscriptionStatus

if TYPE_CHECKING:
    from typing import Any

    from django.contrib.auth.models import AbstractBaseUser


class CheckoutStatusService(BaseService):
    """Status lookup restricted to the listing owner."""

    @classmethod
    def get_status(
        cls,
        user: AbstractBaseUser,
        business_id: int,
        session_id: str | None = None,
    ) -> ServiceResult[dict[str, Any]]:
        """
        Report the subscription status of a business owned by `user`.

        Args:
            user: Authenticated caller
            business_id: Business (subscription reference) to look up
            session_id: Checkout Session ID from the success redirect

        Returns:
            ServiceResult with tier, status, renewal_deadline,
            has_subscription and, when session_id is given, checkout_applied.
            Fails with BUSINESS_NOT_FOUND if the business does not exist or
            belongs to someone else.
        """
        business = Business.objects.filter(pk=business_id, owner=user).first()
        if business is None:
            return ServiceResult.failure(
                "Business not found",
                error_code="BUSINESS_NOT_FOUND",
            )

        subscription = Subscription.objects.filter(business=business).first()
        data: dict[str, Any] = {
            "business_id": business.pk,
            "tier": subscription.tier if subscription else ListingTier.FREE,
            "status": subscription.status if subscription else SubscriptionStatus.NONE,
            "renewal_deadline": subscription.renewal_deadline if subscription else None,
            "has_subscription": bool(subscription and subscription.provider_subscription_id),
        }
        if session_id:
            data["checkout_applied"] = SubscriptionEvent.objects.filter(
                subscription_id=business.pk,
                kind=EventKind.CREATED,
                payload__data__object__id=session_id,
            ).exists()

        return ServiceResult.success(data)
