"""
Protocol definitions (interfaces) for outbound collaborators.

Protocols define contracts that services must fulfill, enabling:
- Duck typing with static type checking
- Dependency inversion (the reconciliation engine depends on these,
  not on Stripe or SMTP directly)
- Easy mocking in tests

Available Protocols:
    EmailSender: Email sending interface
    NotificationSender: Subscription lifecycle notification interface
    PaymentGateway: Read-only payment provider interface

Usage:
    from toolkit.protocols import NotificationSender

    class RecordingSender:
        def __init__(self):
            self.sent = []

        def send(self, kind, recipient, business_context, extra=None) -> None:
            self.sent.append((kind, recipient))

    # RecordingSender is a valid NotificationSender without inheritance
    sender: NotificationSender = RecordingSender()
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

if TYPE_CHECKING:
    from typing import Any


@runtime_checkable
class EmailSender(Protocol):
    """
    Protocol for email sending services.

    Implementations raise on delivery failure rather than returning False,
    so callers decide whether a failure is fatal.
    """

    def send(
        self,
        to: str | list[str],
        subject: str,
        template_name: str,
        context: dict[str, Any],
        **kwargs: Any,
    ) -> None:
        """
        Render a template pair and send it.

        Args:
            to: Recipient email address(es)
            subject: Email subject
            template_name: Template path without extension
            context: Template context
            **kwargs: Additional options (from_email, reply_to)
        """
        ...


@runtime_checkable
class NotificationSender(Protocol):
    """
    Protocol for subscription lifecycle notifications.

    `kind` is one of the NotificationKind values (renewal_reminder,
    payment_failure, subscription_cancelled). `business_context` carries
    the listing fields the message needs (name, id, renewal deadline).

    Raises:
        NotificationDispatchError: If the message could not be handed off
    """

    def send(
        self,
        kind: str,
        recipient: str,
        business_context: dict[str, Any],
        extra: dict[str, Any] | None = None,
    ) -> None:
        ...


@runtime_checkable
class PaymentGateway(Protocol):
    """
    Protocol for the read-only payment provider operations.

    All calls are blocking with a bounded timeout.

    Raises:
        GatewayUnavailableError: On timeouts, connection failures and 5xx
        GatewayRequestError: On permanent failures (unknown id, bad key)
    """

    def retrieve_checkout_session(self, session_id: str) -> dict[str, Any]:
        """Return the checkout session as a plain dict."""
        ...

    def retrieve_subscription(self, subscription_id: str) -> dict[str, Any]:
        """Return the provider subscription as a plain dict."""
        ...

    def verify_webhook_signature(self, payload: bytes, signature: str) -> dict[str, Any]:
        """Verify a webhook payload and return the parsed event envelope."""
        ...
