"""
Webhook endpoint view for Stripe subscription events.

The view:
1. Verifies the webhook signature
2. Hands the verified event to the ReconciliationEngine
3. Maps the outcome to an HTTP status Stripe understands

Events are applied synchronously: one request, one transaction. A 503
asks Stripe to redeliver later, which is safe because event ids are
deduplicated by the ledger.

Usage:
    # In urls.py
    from subscriptions.webhooks.views import stripe_webhook

    urlpatterns = [
        path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    ]
"""

from __future__ import annotations

import logging

from django.http import HttpRequest, HttpResponse, JsonResponse
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_POST

from subscriptions.adapters import StripeGateway
from subscriptions.exceptions import InvalidSignatureError, MalformedEventError
from subscriptions.services import IngestResult, ReconciliationEngine

logger = logging.getLogger(__name__)


@csrf_exempt
@require_POST
def stripe_webhook(request: HttpRequest) -> HttpResponse:
    """
    Receive and apply a Stripe webhook event.

    Security:
    - Signature verification prevents spoofed webhooks
    - CSRF exemption required for external webhooks
    - Only POST requests accepted

    Returns:
        HttpResponse with status:
        - 200: Event acknowledged (applied, duplicate, ignored or rejected)
        - 400: Missing/invalid signature or malformed envelope
        - 503: Storage or gateway failure, Stripe should redeliver
    """
    payload = request.body
    signature = request.headers.get("Stripe-Signature", "")

    if not signature:
        logger.warning("Webhook received without Stripe-Signature header")
        return HttpResponse("Missing signature", status=400)

    gateway = StripeGateway()
    try:
        event_data = gateway.verify_webhook_signature(payload, signature)
    except InvalidSignatureError as e:
        logger.warning(
            "Webhook signature verification failed",
            extra={"error": str(e)},
        )
        return HttpResponse("Invalid signature", status=400)

    logger.info(
        f"Received Stripe webhook: {event_data.get('type')}",
        extra={
            "stripe_event_id": event_data.get("id"),
            "event_type": event_data.get("type"),
        },
    )

    engine = ReconciliationEngine(gateway=gateway)
    try:
        result = engine.ingest(event_data, already_verified=True)
    except MalformedEventError as e:
        logger.warning("Malformed webhook envelope", extra=e.details)
        return JsonResponse(e.to_dict(), status=400)

    if result is IngestResult.REQUEST_REDELIVERY:
        return JsonResponse({"received": False}, status=503)
    return JsonResponse({"received": True}, status=200)
