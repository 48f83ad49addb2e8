"""
Event normalizer for Stripe webhook envelopes.

Converts a verified Stripe event envelope into a NormalizedEvent carrying
only the fields reconciliation needs. Pure mapping with no I/O.

Provider type mapping:
    checkout.session.completed      -> CREATED
    invoice.payment_succeeded       -> RENEWED
    invoice.paid                    -> RENEWED
    invoice.payment_failed          -> PAYMENT_FAILED
    customer.subscription.deleted   -> CANCELLED
    customer.subscription.updated   -> STATUS_SYNCED
    anything else                   -> UnrecognizedEventKindError

Usage:
    from subscriptions.normalizer import normalize

    event = normalize(stripe_event_dict)
    event.kind  # EventKind.CREATED
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone as dt_timezone
from typing import TYPE_CHECKING

from django.utils import timezone

from subscriptions.exceptions import MalformedEventError, UnrecognizedEventKindError
from subscriptions.state_machines import EventKind

if TYPE_CHECKING:
    from collections.abc import Callable
    from typing import Any


@dataclass(frozen=True)
class NormalizedEvent:
    """
    Canonical form of one subscription event.

    Attributes:
        event_id: Idempotency key (Stripe event id or synthetic id)
        kind: Canonical event kind
        occurred_at: Provider timestamp (falls back to receipt time)
        payload: The raw envelope, stored verbatim in the event log
        provider_type: Original Stripe event type, for logging
        subscription_ref: Business id (checkout metadata / sweeper)
        subscription_id: Stripe Subscription ID (sub_xxx)
        customer_id: Stripe Customer ID (cus_xxx)
        owner_id: User id from checkout metadata
        checkout_session_id: Checkout Session ID (cs_xxx)
        amount: Amount in the smallest currency unit
        currency: ISO 4217 currency code
        failure_reason: Human-readable payment failure reason
        provider_status: Stripe subscription status (status syncs)
    """

    event_id: str
    kind: EventKind
    occurred_at: datetime
    payload: dict[str, Any] = field(default_factory=dict, compare=False, repr=False)
    provider_type: str = ""
    subscription_ref: int | None = None
    subscription_id: str | None = None
    customer_id: str | None = None
    owner_id: str | None = None
    checkout_session_id: str | None = None
    amount: int | None = None
    currency: str | None = None
    failure_reason: str | None = None
    provider_status: str | None = None

    def log_context(self) -> dict[str, Any]:
        """Identifiers for structured log records."""
        return {
            "event_id": self.event_id,
            "event_kind": str(self.kind),
            "provider_type": self.provider_type,
            "subscription_ref": self.subscription_ref,
            "subscription_id": self.subscription_id,
        }


# =============================================================================
# Field Helpers
# =============================================================================


def _id_of(value: Any) -> str | None:
    """Stripe fields may hold an id string or an expanded object."""
    if isinstance(value, dict):
        return value.get("id")
    return value or None


def _as_int(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _timestamp(value: Any, fallback: datetime) -> datetime:
    seconds = _as_int(value)
    if seconds is None:
        return fallback
    try:
        return datetime.fromtimestamp(seconds, tz=dt_timezone.utc)
    except (ValueError, OverflowError, OSError):
        return fallback


def _invoice_subscription_id(invoice: dict[str, Any]) -> str | None:
    """
    Subscription id of an invoice.

    Newer API versions moved it under parent.subscription_details.
    """
    subscription_id = _id_of(invoice.get("subscription"))
    if subscription_id:
        return subscription_id
    parent = invoice.get("parent") or {}
    details = parent.get("subscription_details") or {}
    return _id_of(details.get("subscription"))


# =============================================================================
# Per-Type Extractors
# =============================================================================


def _from_checkout_session(session: dict[str, Any]) -> dict[str, Any]:
    if session.get("mode") not in (None, "subscription"):
        raise UnrecognizedEventKindError(
            "Checkout session is not a subscription checkout",
            details={"mode": session.get("mode")},
        )
    metadata = session.get("metadata") or {}
    owner_id = metadata.get("user_id")
    return {
        "kind": EventKind.CREATED,
        "subscription_ref": _as_int(metadata.get("business_id")),
        "owner_id": str(owner_id) if owner_id not in (None, "") else None,
        "subscription_id": _id_of(session.get("subscription")),
        "customer_id": _id_of(session.get("customer")),
        "checkout_session_id": session.get("id"),
        "amount": _as_int(session.get("amount_total")),
        "currency": session.get("currency"),
    }


def _from_invoice(kind: EventKind) -> Callable[[dict[str, Any]], dict[str, Any]]:
    def extract(invoice: dict[str, Any]) -> dict[str, Any]:
        subscription_id = _invoice_subscription_id(invoice)
        if not subscription_id:
            raise UnrecognizedEventKindError(
                "Invoice is not attached to a subscription",
                details={"invoice_id": invoice.get("id")},
            )
        fields = {
            "kind": kind,
            "subscription_id": subscription_id,
            "customer_id": _id_of(invoice.get("customer")),
            "currency": invoice.get("currency"),
        }
        if kind == EventKind.PAYMENT_FAILED:
            error = invoice.get("last_payment_error") or {}
            fields["amount"] = _as_int(invoice.get("amount_due"))
            fields["failure_reason"] = error.get("message") or "Payment failed"
        else:
            fields["amount"] = _as_int(invoice.get("amount_paid"))
        return fields

    return extract


def _from_subscription(kind: EventKind) -> Callable[[dict[str, Any]], dict[str, Any]]:
    def extract(subscription: dict[str, Any]) -> dict[str, Any]:
        return {
            "kind": kind,
            "subscription_id": subscription.get("id"),
            "customer_id": _id_of(subscription.get("customer")),
            "provider_status": subscription.get("status"),
        }

    return extract


EXTRACTORS: dict[str, Callable[[dict[str, Any]], dict[str, Any]]] = {
    "checkout.session.completed": _from_checkout_session,
    "invoice.payment_succeeded": _from_invoice(EventKind.RENEWED),
    "invoice.paid": _from_invoice(EventKind.RENEWED),
    "invoice.payment_failed": _from_invoice(EventKind.PAYMENT_FAILED),
    "customer.subscription.deleted": _from_subscription(EventKind.CANCELLED),
    "customer.subscription.updated": _from_subscription(EventKind.STATUS_SYNCED),
}


# =============================================================================
# Entry Point
# =============================================================================


def normalize(raw_event: dict[str, Any], received_at: datetime | None = None) -> NormalizedEvent:
    """
    Map a verified Stripe event envelope to a NormalizedEvent.

    Args:
        raw_event: Envelope `{id, type, created, data: {object: {...}}}`
        received_at: Fallback for a missing `created` timestamp

    Returns:
        The normalized event

    Raises:
        MalformedEventError: The envelope lacks id, type or data.object
        UnrecognizedEventKindError: The event is not one we reconcile
    """
    if not isinstance(raw_event, dict):
        raise MalformedEventError("Event envelope must be a JSON object")

    event_id = raw_event.get("id")
    event_type = raw_event.get("type")
    data = raw_event.get("data")
    obj = data.get("object") if isinstance(data, dict) else None
    if not event_id or not event_type or not isinstance(obj, dict):
        raise MalformedEventError(
            "Event envelope is missing id, type or data.object",
            details={"event_id": event_id, "event_type": event_type},
        )

    extractor = EXTRACTORS.get(event_type)
    if extractor is None:
        raise UnrecognizedEventKindError(
            f"Unhandled event type: {event_type}",
            details={"event_id": event_id, "event_type": event_type},
        )

    fields = extractor(obj)
    return NormalizedEvent(
        event_id=event_id,
        occurred_at=_timestamp(raw_event.get("created"), received_at or timezone.now()),
        payload=raw_event,
        provider_type=event_type,
        **fields,
    )
