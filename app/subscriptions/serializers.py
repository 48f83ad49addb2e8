"""
DRF serializers for the subscriptions app.

Usage:
    serializer = SubscriptionStatusSerializer(result.data)
    return Response(serializer.data)
"""

from __future__ import annotations

from drf_spectacular.utils import OpenApiExample, extend_schema_serializer
from rest_framework import serializers

from subscriptions.state_machines import ListingTier, SubscriptionStatus


@extend_schema_serializer(
    examples=[
        OpenApiExample(
            "Checkout applied",
            value={
                "business_id": 42,
                "tier": "premium",
                "status": "active",
                "renewal_deadline": "2027-01-15T10:30:00Z",
                "has_subscription": True,
                "checkout_applied": True,
            },
            response_only=True,
        ),
        OpenApiExample(
            "Webhook not yet received",
            value={
                "business_id": 42,
                "tier": "free",
                "status": "none",
                "renewal_deadline": None,
                "has_subscription": False,
                "checkout_applied": False,
            },
            response_only=True,
        ),
    ]
)
class SubscriptionStatusSerializer(serializers.Serializer):
    """
    Read-only subscription status of one business.

    `checkout_applied` is only present when the request carried a
    `session_id`.
    """

    business_id = serializers.IntegerField(read_only=True)
    tier = serializers.ChoiceField(choices=ListingTier.choices, read_only=True)
    status = serializers.ChoiceField(choices=SubscriptionStatus.choices, read_only=True)
    renewal_deadline = serializers.DateTimeField(read_only=True, allow_null=True)
    has_subscription = serializers.BooleanField(read_only=True)
    checkout_applied = serializers.BooleanField(read_only=True, required=False)
