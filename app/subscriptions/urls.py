"""
URL configuration for the subscriptions app.

Routes:
    - POST /webhooks/stripe/ - Stripe webhook endpoint
    - GET /businesses/<business_id>/status/ - Subscription status (owner only)

All routes are prefixed with /api/v1/subscriptions/ when included in the main URLconf.
"""

from django.urls import path

from subscriptions.views import SubscriptionStatusView
from subscriptions.webhooks.views import stripe_webhook

app_name = "subscriptions"

urlpatterns = [
    # Webhook endpoints
    path("webhooks/stripe/", stripe_webhook, name="stripe_webhook"),
    # Status
    path(
        "businesses/<int:business_id>/status/",
        SubscriptionStatusView.as_view(),
        name="subscription_status",
    ),
]
