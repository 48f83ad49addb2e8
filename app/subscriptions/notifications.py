"""
Email implementation of the subscription NotificationSender.

Usage:
    from subscriptions.notifications import EmailNotificationSender, business_context

    sender = EmailNotificationSender()
    sender.send(
        NotificationKind.RENEWAL_REMINDER,
        recipient="owner@example.com",
        business_context=business_context(subscription),
        extra={"days_until_expiry": 7},
    )
"""

from __future__ import annotations

import logging
import smtplib
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.mail import BadHeaderError
from django.template import TemplateDoesNotExist

from subscriptions.exceptions import NotificationDispatchError
from subscriptions.state_machines import NotificationKind
from toolkit.services import EmailService

if TYPE_CHECKING:
    from typing import Any

    from subscriptions.models import Subscription
    from toolkit.protocols import EmailSender

logger = logging.getLogger(__name__)


# Subject line per notification kind; formatted with the business name
SUBJECTS = {
    NotificationKind.RENEWAL_REMINDER: "Premium Listing Renewal Reminder - {business_name}",
    NotificationKind.PAYMENT_FAILURE: "Payment Failed - Premium Listing for {business_name}",
    NotificationKind.SUBSCRIPTION_CANCELLED: (
        "Subscription Cancelled - Premium Listing for {business_name}"
    ),
}


def business_context(subscription: Subscription) -> dict[str, Any]:
    """Listing fields every subscription email needs."""
    business = subscription.business
    owner = business.owner
    return {
        "business_id": business.pk,
        "business_name": business.name,
        "owner_name": owner.get_full_name() or owner.get_username(),
        "renewal_deadline": subscription.renewal_deadline,
    }


class EmailNotificationSender:
    """
    Sends subscription notifications through EmailService.

    Implements toolkit.protocols.NotificationSender. SMTP, socket, header
    and missing-template failures surface as NotificationDispatchError.
    """

    template_prefix = "subscriptions/email"

    def __init__(self, email_service: EmailSender = EmailService):
        self.email_service = email_service

    def send(
        self,
        kind: str,
        recipient: str,
        business_context: dict[str, Any],
        extra: dict[str, Any] | None = None,
    ) -> None:
        if kind not in SUBJECTS:
            raise ValueError(f"Unknown notification kind: {kind}")

        context = {
            "site_name": settings.SUBSCRIPTION_SITE_NAME,
            "dashboard_url": settings.SUBSCRIPTION_DASHBOARD_URL,
            **business_context,
            **(extra or {}),
        }
        subject = SUBJECTS[kind].format(business_name=business_context["business_name"])

        try:
            self.email_service.send(
                to=recipient,
                subject=subject,
                template_name=f"{self.template_prefix}/{kind}",
                context=context,
            )
        except (smtplib.SMTPException, OSError, BadHeaderError, TemplateDoesNotExist) as e:
            logger.warning(
                "Subscription notification could not be sent",
                extra={
                    "notification_kind": str(kind),
                    "business_id": business_context.get("business_id"),
                    "error": str(e),
                },
            )
            raise NotificationDispatchError(
                f"Failed to send {kind} notification",
                details={
                    "notification_kind": str(kind),
                    "business_id": business_context.get("business_id"),
                    "error": str(e),
                },
            ) from e
