"""
Reconciliation engine: applies normalized subscription events to the ledger.

Every inbound Stripe event and every sweeper-originated expiry goes through
ReconciliationEngine.apply(). One event is one transaction: the row lock,
the FSM transition, the event-log insert and the state write commit
together or not at all.

Outcomes:
    APPLIED   - transition stored, event logged
    DUPLICATE - event id already in the log, nothing changed
    IGNORED   - not an event we reconcile (acknowledged)
    REJECTED  - precondition failed, logged with payload (acknowledged)
    FAILED    - storage or gateway failure, rolled back (redelivery requested)

Usage:
    from subscriptions.services import ReconciliationEngine, IngestResult

    engine = ReconciliationEngine()
    result = engine.ingest(stripe_event, already_verified=True)
    if result is IngestResult.REQUEST_REDELIVERY:
        return HttpResponse(status=503)
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from functools import partial
from typing import TYPE_CHECKING

from django.conf import settings
from django.core.exceptions import ImproperlyConfigured
from django.db import DatabaseError, transaction
from django.utils import timezone

from django_fsm import can_proceed

from core.services import BaseService
from subscriptions.exceptions import (
    DuplicateEventError,
    GatewayError,
    LedgerInvariantError,
    NotificationDispatchError,
    PreconditionFailedError,
    UnrecognizedEventKindError,
    UnverifiedEventError,
)
from subscriptions.idempotency import IdempotencyGuard
from subscriptions.ledger import RecordEventParams, ledger as default_ledger
from subscriptions.normalizer import NormalizedEvent, normalize
from subscriptions.state_machines import EventKind, NotificationKind

if TYPE_CHECKING:
    from collections.abc import Callable
    from datetime import datetime
    from typing import Any

    from subscriptions.ledger import SubscriptionLedger
    from subscriptions.models import Subscription
    from toolkit.protocols import NotificationSender, PaymentGateway


# =============================================================================
# Result Types
# =============================================================================


class Outcome(str, Enum):
    """What apply() did with an event."""

    APPLIED = "applied"
    DUPLICATE = "duplicate"
    IGNORED = "ignored"
    REJECTED = "rejected"
    FAILED = "failed"


class IngestResult(str, Enum):
    """Answer for the webhook sender."""

    ACKNOWLEDGE = "acknowledge"
    REQUEST_REDELIVERY = "request_redelivery"


@dataclass(frozen=True)
class ApplyResult:
    """
    Result of applying one event.

    Attributes:
        outcome: What happened
        event_id: The event's idempotency key
        subscription_ref: Business id of the affected subscription, if known
        status: Subscription status after the event (APPLIED only)
        reason: Human-readable reason for REJECTED/FAILED
    """

    outcome: Outcome
    event_id: str
    subscription_ref: int | None = None
    status: str | None = None
    reason: str = ""

    @property
    def ingest_result(self) -> IngestResult:
        if self.outcome is Outcome.FAILED:
            return IngestResult.REQUEST_REDELIVERY
        return IngestResult.ACKNOWLEDGE


@dataclass
class _Transitioned:
    """A subscription after an in-memory transition, plus its side effect."""

    subscription: Subscription
    notification: NotificationKind | None = None
    extra: dict[str, Any] = dataclasses.field(default_factory=dict)


# =============================================================================
# Engine
# =============================================================================


class ReconciliationEngine(BaseService):
    """
    State machine that applies normalized events to the subscription ledger.

    Collaborators are injected so tests can substitute the gateway, the
    notification sender and the clock.

    Transition table:
        CREATED        NONE/EXPIRED -> ACTIVE (owner must match)
        RENEWED        ACTIVE/PAST_DUE -> ACTIVE, CANCELLED stays CANCELLED
        PAYMENT_FAILED ACTIVE -> PAST_DUE
        CANCELLED      ACTIVE/PAST_DUE/CANCELLED -> CANCELLED
        STATUS_SYNCED  premium statuses -> mirrored provider status
        EXPIRED        ACTIVE/PAST_DUE/CANCELLED -> EXPIRED (deadline passed)
    """

    HANDLERS: dict[EventKind, str] = {
        EventKind.CREATED: "_apply_created",
        EventKind.RENEWED: "_apply_renewed",
        EventKind.PAYMENT_FAILED: "_apply_payment_failed",
        EventKind.CANCELLED: "_apply_cancelled",
        EventKind.STATUS_SYNCED: "_apply_status_synced",
        EventKind.EXPIRED: "_apply_expired",
    }

    def __init__(
        self,
        ledger: SubscriptionLedger | None = None,
        gateway: PaymentGateway | None = None,
        sender: NotificationSender | None = None,
        clock: Callable[[], datetime] = timezone.now,
        renewal_period: timedelta | None = None,
    ):
        if gateway is None:
            from subscriptions.adapters import StripeGateway

            gateway = StripeGateway()
        if sender is None:
            from subscriptions.notifications import EmailNotificationSender

            sender = EmailNotificationSender()

        self.ledger = ledger or default_ledger
        self.gateway = gateway
        self.sender = sender
        self.clock = clock
        self.renewal_period = renewal_period or timedelta(
            days=settings.SUBSCRIPTION_RENEWAL_PERIOD_DAYS
        )

    # =========================================================================
    # Entry Points
    # =========================================================================

    def ingest(self, raw_event: dict[str, Any], already_verified: bool = False) -> IngestResult:
        """
        Webhook boundary: normalize and apply one verified provider event.

        Args:
            raw_event: Stripe event envelope
            already_verified: Caller confirms the signature was checked

        Returns:
            ACKNOWLEDGE unless a storage or gateway failure asks for redelivery

        Raises:
            UnverifiedEventError: already_verified is False
            MalformedEventError: The envelope lacks id, type or data
        """
        return self.process(raw_event, already_verified=already_verified).ingest_result

    def process(self, raw_event: dict[str, Any], already_verified: bool = False) -> ApplyResult:
        """Same as ingest() but returns the detailed ApplyResult."""
        if not already_verified:
            raise UnverifiedEventError(
                "Refusing to ingest an event whose signature was not verified",
            )

        try:
            event = normalize(raw_event, received_at=self.clock())
        except UnrecognizedEventKindError as e:
            self.get_logger().info(f"Ignoring event: {e.message}", extra=e.details)
            return ApplyResult(Outcome.IGNORED, str(raw_event.get("id")), reason=e.message)

        return self.apply(event)

    def expire(self, subscription_ref: int, renewal_deadline: datetime, now: datetime) -> ApplyResult:
        """
        Apply a sweeper-originated expiry.

        The event id is derived from the subscription and the deadline
        being enforced, so repeated sweeps of the same lapse collapse into
        one event.
        """
        deadline_iso = renewal_deadline.isoformat()
        event = NormalizedEvent(
            event_id=f"expire:{subscription_ref}:{deadline_iso}",
            kind=EventKind.EXPIRED,
            occurred_at=now,
            payload={"reason": "renewal_deadline_passed", "renewal_deadline": deadline_iso},
            provider_type="sweeper.expire",
            subscription_ref=subscription_ref,
        )
        return self.apply(event)

    def apply(self, event: NormalizedEvent) -> ApplyResult:
        """
        Apply one normalized event under a single transaction.

        Never raises for expected outcomes; storage errors are reported as
        FAILED so the caller can request redelivery.
        """
        logger = self.get_logger()
        log_context = event.log_context()

        if IdempotencyGuard.is_known(event.event_id):
            logger.info("Duplicate event skipped", extra=log_context)
            return ApplyResult(Outcome.DUPLICATE, event.event_id, event.subscription_ref)

        try:
            event = self._resolve(event)
        except GatewayError as e:
            if e.is_retryable:
                logger.error(
                    f"Payment gateway unavailable while resolving event: {e.message}",
                    extra={**log_context, "error_code": e.error_code},
                )
                return ApplyResult(
                    Outcome.FAILED, event.event_id, event.subscription_ref, reason=e.message
                )
            logger.warning(
                f"Payment gateway rejected lookup, event rejected: {e.message}",
                extra={**log_context, "error_code": e.error_code, "payload": event.payload},
            )
            return ApplyResult(
                Outcome.REJECTED, event.event_id, event.subscription_ref, reason=e.message
            )

        handler = getattr(self, self.HANDLERS[event.kind])
        try:
            with transaction.atomic():
                transitioned = handler(event)
                subscription = transitioned.subscription
                self.ledger.record(
                    subscription,
                    RecordEventParams(
                        event_id=event.event_id,
                        kind=event.kind,
                        payload=event.payload,
                        occurred_at=event.occurred_at,
                        observed_at=self.clock(),
                    ),
                )
                if transitioned.notification:
                    transaction.on_commit(
                        partial(
                            self._send_notification,
                            transitioned.notification,
                            subscription.pk,
                            transitioned.extra,
                        )
                    )
        except PreconditionFailedError as e:
            logger.warning(
                f"Event rejected: {e.message}",
                extra={**log_context, **e.details, "payload": event.payload},
            )
            return ApplyResult(
                Outcome.REJECTED, event.event_id, event.subscription_ref, reason=e.message
            )
        except DuplicateEventError:
            logger.info("Duplicate event detected under the row lock", extra=log_context)
            return ApplyResult(Outcome.DUPLICATE, event.event_id, event.subscription_ref)
        except LedgerInvariantError as e:
            logger.error(
                f"Ledger invariant violated, event rolled back: {e.message}",
                extra={**log_context, **e.details},
                exc_info=True,
            )
            return ApplyResult(
                Outcome.FAILED, event.event_id, event.subscription_ref, reason=e.message
            )
        except DatabaseError as e:
            logger.error(
                f"Storage failure while applying event: {e}",
                extra=log_context,
                exc_info=True,
            )
            return ApplyResult(
                Outcome.FAILED, event.event_id, event.subscription_ref, reason=str(e)
            )

        logger.info(
            "Event applied",
            extra={
                **log_context,
                "subscription_ref": subscription.pk,
                "status": subscription.status,
                "tier": subscription.tier,
            },
        )
        return ApplyResult(
            Outcome.APPLIED, event.event_id, subscription.pk, status=subscription.status
        )

    # =========================================================================
    # Resolution
    # =========================================================================

    def _resolve(self, event: NormalizedEvent) -> NormalizedEvent:
        """Fill in fields the webhook payload omitted by asking the gateway."""
        if event.kind == EventKind.CREATED and not event.subscription_id:
            if not event.checkout_session_id:
                return event
            session = self.gateway.retrieve_checkout_session(event.checkout_session_id)
            subscription = session.get("subscription")
            if isinstance(subscription, dict):
                subscription = subscription.get("id")
            return dataclasses.replace(
                event,
                subscription_id=subscription or None,
                customer_id=event.customer_id or session.get("customer"),
            )

        if event.kind == EventKind.STATUS_SYNCED and not event.provider_status:
            if not event.subscription_id:
                return event
            provider_subscription = self.gateway.retrieve_subscription(event.subscription_id)
            return dataclasses.replace(event, provider_status=provider_subscription.get("status"))

        return event

    # =========================================================================
    # Handlers
    # =========================================================================

    def _apply_created(self, event: NormalizedEvent) -> _Transitioned:
        if event.subscription_ref is None:
            raise PreconditionFailedError("Checkout session carries no business reference")
        if not event.subscription_id:
            raise PreconditionFailedError(
                "Checkout session has no subscription id",
                details={"checkout_session_id": event.checkout_session_id},
            )

        subscription = self.ledger.lock(event.subscription_ref)
        if subscription is None:
            raise PreconditionFailedError(
                f"Business {event.subscription_ref} has no subscription account",
            )
        self._ensure_not_applied(event)
        owner_id = str(subscription.business.owner_id)
        if event.owner_id != owner_id:
            raise PreconditionFailedError(
                f"Business {event.subscription_ref} is not owned by the paying user",
                details={"owner_id": event.owner_id},
            )
        holder = self.ledger.holder_of(event.subscription_id)
        if holder is not None and holder != subscription.pk:
            raise PreconditionFailedError(
                f"Provider subscription {event.subscription_id} belongs to business {holder}",
            )
        self._require(subscription, subscription.activate, event)

        subscription.activate(
            provider_subscription_id=event.subscription_id,
            renewal_deadline=event.occurred_at + self.renewal_period,
            customer_id=event.customer_id,
        )
        return _Transitioned(subscription)

    def _apply_renewed(self, event: NormalizedEvent) -> _Transitioned:
        subscription = self._lock_by_subscription_id(event)
        self._require(subscription, subscription.renew, event)

        deadline = event.occurred_at + self.renewal_period
        if subscription.renewal_deadline and subscription.renewal_deadline > deadline:
            # Out-of-order redelivery of an older invoice never shortens the cycle
            deadline = subscription.renewal_deadline
        subscription.renew(renewal_deadline=deadline)
        return _Transitioned(subscription)

    def _apply_payment_failed(self, event: NormalizedEvent) -> _Transitioned:
        subscription = self._lock_by_subscription_id(event)
        self._require(subscription, subscription.mark_past_due, event)

        subscription.mark_past_due()
        return _Transitioned(
            subscription,
            notification=NotificationKind.PAYMENT_FAILURE,
            extra={"failure_reason": event.failure_reason},
        )

    def _apply_cancelled(self, event: NormalizedEvent) -> _Transitioned:
        subscription = self._lock_by_subscription_id(event)
        self._require(subscription, subscription.cancel, event)

        already_cancelled = subscription.is_cancelled
        subscription.cancel(cancelled_at=event.occurred_at)
        if already_cancelled:
            return _Transitioned(subscription)
        return _Transitioned(subscription, notification=NotificationKind.SUBSCRIPTION_CANCELLED)

    def _apply_status_synced(self, event: NormalizedEvent) -> _Transitioned:
        subscription = self._lock_by_subscription_id(event)
        self._require(subscription, subscription.sync_status, event)

        subscription.sync_status(provider_status=event.provider_status, synced_at=event.occurred_at)
        return _Transitioned(subscription)

    def _apply_expired(self, event: NormalizedEvent) -> _Transitioned:
        subscription = self.ledger.lock(event.subscription_ref)
        if subscription is None:
            raise PreconditionFailedError(f"Subscription {event.subscription_ref} not found")
        self._ensure_not_applied(event)
        self._require(subscription, subscription.expire, event)

        deadline = subscription.renewal_deadline
        if deadline is None or deadline >= event.occurred_at:
            raise PreconditionFailedError(
                f"Subscription {subscription.pk} has not reached its renewal deadline",
                details={"renewal_deadline": deadline.isoformat() if deadline else None},
            )
        subscription.expire()
        return _Transitioned(subscription)

    # =========================================================================
    # Helpers
    # =========================================================================

    def _lock_by_subscription_id(self, event: NormalizedEvent) -> Subscription:
        subscription = None
        if event.subscription_id:
            subscription = self.ledger.lock_by_subscription_id(event.subscription_id)
        if subscription is None:
            raise PreconditionFailedError(
                f"No subscription with provider id {event.subscription_id}",
            )
        self._ensure_not_applied(event)
        return subscription

    @staticmethod
    def _ensure_not_applied(event: NormalizedEvent) -> None:
        """
        Re-check the event log once the row lock is held.

        A concurrent delivery of the same event may have committed while
        this one waited on the lock; it must read as a duplicate, not as a
        transition the new status no longer allows.
        """
        if IdempotencyGuard.is_known(event.event_id):
            raise DuplicateEventError(
                f"Event {event.event_id} already recorded",
                details={"event_id": event.event_id},
            )

    @staticmethod
    def _require(subscription: Subscription, transition, event: NormalizedEvent) -> None:
        if not can_proceed(transition):
            raise PreconditionFailedError(
                f"Cannot apply {event.kind} to subscription in status '{subscription.status}'",
                details={"subscription_ref": subscription.pk, "status": subscription.status},
            )

    def _send_notification(
        self,
        kind: NotificationKind,
        subscription_ref: int,
        extra: dict[str, Any],
    ) -> None:
        """Best-effort notification; runs after the ledger write committed."""
        from subscriptions.notifications import business_context

        logger = self.get_logger()
        subscription = self.ledger.get(subscription_ref)
        recipient = subscription.business.notification_email
        if not recipient:
            logger.warning(
                "No recipient for subscription notification",
                extra={"subscription_ref": subscription_ref, "notification_kind": str(kind)},
            )
            return

        try:
            self.sender.send(kind, recipient, business_context(subscription), extra)
        except NotificationDispatchError as e:
            logger.warning(
                f"Subscription notification failed: {e.message}",
                extra={"subscription_ref": subscription_ref, **e.details},
            )
        except Exception as e:
            logger.error(
                f"Subscription notification crashed: {e}",
                extra={"subscription_ref": subscription_ref, "notification_kind": str(kind)},
                exc_info=True,
            )


_missing = [kind for kind in EventKind if kind not in ReconciliationEngine.HANDLERS]
_unbound = [
    name for name in ReconciliationEngine.HANDLERS.values() if not hasattr(ReconciliationEngine, name)
]
if _missing or _unbound:
    raise ImproperlyConfigured(
        f"ReconciliationEngine handler table is incomplete: missing={_missing} unbound={_unbound}"
    )


__all__ = [
    "ApplyResult",
    "IngestResult",
    "Outcome",
    "ReconciliationEngine",
]
