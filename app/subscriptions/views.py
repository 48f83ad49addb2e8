"""
DRF views for the subscriptions app.

Endpoints:
    GET /api/v1/subscriptions/businesses/{business_id}/status/ - Subscription status
    POST /api/v1/subscriptions/webhooks/stripe/ - Stripe webhook (see webhooks.views)

Security:
    - The status endpoint requires authentication and only answers owners
    - The webhook verifies the Stripe signature
"""

from __future__ import annotations

import logging

from drf_spectacular.utils import OpenApiParameter, OpenApiResponse, extend_schema
from rest_framework import status
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response
from rest_framework.views import APIView

from subscriptions.serializers import SubscriptionStatusSerializer
from subscriptions.services import CheckoutStatusService

logger = logging.getLogger(__name__)


class SubscriptionStatusView(APIView):
    """
    Subscription status of a business, for the checkout success page.

    GET /api/v1/subscriptions/businesses/{business_id}/status/?session_id=cs_xxx

    Read-only: the checkout redirect never changes the ledger, the
    webhook does.

    Response:
        200 OK: Status payload
        404 Not Found: Business doesn't exist or isn't owned by the caller
    """

    permission_classes = [IsAuthenticated]

    @extend_schema(
        operation_id="get_subscription_status",
        summary="Get subscription status",
        description=(
            "Current tier, status and renewal deadline of a business owned by "
            "the caller. With session_id, also reports whether the webhook "
            "has already applied that checkout."
        ),
        parameters=[
            OpenApiParameter(
                name="session_id",
                type=str,
                required=False,
                description="Stripe Checkout Session ID from the success redirect",
            ),
        ],
        responses={
            200: OpenApiResponse(
                response=SubscriptionStatusSerializer,
                description="Subscription status",
            ),
            404: OpenApiResponse(description="Business not found"),
        },
        tags=["Subscriptions"],
    )
    def get(self, request, business_id):
        """Get subscription status."""
        result = CheckoutStatusService.get_status(
            request.user,
            business_id,
            session_id=request.query_params.get("session_id") or None,
        )
        if not result:
            return Response(
                {"error": result.error, "error_code": result.error_code},
                status=status.HTTP_404_NOT_FOUND,
            )

        serializer = SubscriptionStatusSerializer(result.data)
        return Response(serializer.data)
