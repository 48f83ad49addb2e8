"""
Template-based email sending.

A message is a template pair: `<template_name>.html` and
`<template_name>.txt`. The text part falls back to the HTML with tags
stripped when no .txt template exists.

Delivery uses Django's configured backend; EMAIL_TIMEOUT bounds every SMTP
call. Backend errors (smtplib.SMTPException, OSError) propagate so the
caller decides whether a failed email matters.

Usage:
    from toolkit.services import EmailService

    EmailService.send(
        to="owner@example.com",
        subject="Premium Listing Renewal Reminder - Joe's Plumbing",
        template_name="subscriptions/email/renewal_reminder",
        context={"business_name": "Joe's Plumbing", "days_until_expiry": 7},
    )
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.mail import EmailMultiAlternatives
from django.template import TemplateDoesNotExist
from django.template.loader import render_to_string
from django.utils.html import strip_tags

if TYPE_CHECKING:
    from typing import Any

logger = logging.getLogger(__name__)


class EmailService:
    """Stateless; implements toolkit.protocols.EmailSender."""

    @staticmethod
    def send(
        to: str | list[str],
        subject: str,
        template_name: str,
        context: dict[str, Any],
        from_email: str | None = None,
        reply_to: str | None = None,
    ) -> None:
        """Render `template_name` with `context` and send it."""
        body_html = render_to_string(f"{template_name}.html", context)
        try:
            body_text = render_to_string(f"{template_name}.txt", context)
        except TemplateDoesNotExist:
            body_text = strip_tags(body_html)

        EmailService.send_raw(
            to=to,
            subject=subject,
            body_text=body_text,
            body_html=body_html,
            from_email=from_email,
            reply_to=reply_to,
        )

    @staticmethod
    def send_raw(
        to: str | list[str],
        subject: str,
        body_text: str,
        body_html: str | None = None,
        from_email: str | None = None,
        reply_to: str | None = None,
    ) -> None:
        """
        Send already-rendered content.

        Args:
            to: One address or a list
            subject: Subject line
            body_text: Plain text part
            body_html: Optional HTML alternative
            from_email: Defaults to DEFAULT_FROM_EMAIL
            reply_to: Optional Reply-To address
        """
        recipients = [to] if isinstance(to, str) else list(to)

        message = EmailMultiAlternatives(
            subject=subject,
            body=body_text,
            from_email=from_email or settings.DEFAULT_FROM_EMAIL,
            to=recipients,
            reply_to=[reply_to] if reply_to else None,
        )
        if body_html:
            message.attach_alternative(body_html, "text/html")
        message.send(fail_silently=False)

        logger.info("Email sent", extra={"recipients": recipients, "subject": subject})
