"""
Django signals for the subscriptions app.

Every Business gets its Subscription row (status NONE, tier FREE) the
moment it is created, so webhook handlers can always lock an existing row.

Usage:
    Signals are automatically connected when app is ready.
    See apps.py for registration.
"""

from __future__ import annotations

import logging

from django.db.models.signals import post_save
from django.dispatch import receiver

from subscriptions.ledger import ledger

logger = logging.getLogger(__name__)


@receiver(post_save, sender="directory.Business")
def open_subscription_account(sender, instance, created, **kwargs):
    """
    Open the subscription ledger row for a new business.

    Args:
        sender: Business model class
        instance: Business instance
        created: Whether this is a new business
        **kwargs: Additional signal arguments
    """
    if not created or kwargs.get("raw"):
        return
    ledger.open_account(instance)
