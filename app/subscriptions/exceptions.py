"""
Subscription-specific exceptions.

Exception Hierarchy:
    SubscriptionError (base for the subscription domain)
    ├── UnverifiedEventError - ingest() called with an unverified payload (caller bug)
    ├── UnrecognizedEventKindError - provider event type we don't reconcile
    ├── PreconditionFailedError - transition precondition not met (rejected, acknowledged)
    └── LedgerInvariantError - a write would break a ledger invariant (bug)

    MalformedEventError - envelope missing id/type/data (inherits ValidationError)
    SubscriptionNotFoundError - ledger lookup failure (inherits NotFoundError)
    DuplicateEventError - event id already recorded (inherits ConflictError)
    LockAcquisitionError - periodic job lock held elsewhere (inherits ConflictError)

    GatewayError - payment provider failures (inherits ExternalServiceError)
    ├── GatewayUnavailableError - timeouts, connection errors, 5xx (retryable)
    └── GatewayRequestError - unknown ids, bad credentials (permanent)
        └── InvalidSignatureError - webhook signature verification failed

    NotificationDispatchError - notification could not be sent (inherits ExternalServiceError)

Only storage failures and GatewayError make ingest() ask for redelivery.
Everything else is acknowledged.

Usage:
    from subscriptions.exceptions import PreconditionFailedError

    raise PreconditionFailedError(
        "Cannot mark subscription past due from 'cancelled'",
        details={"subscription_ref": 42, "status": "cancelled"},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from core.exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)

if TYPE_CHECKING:
    from typing import Any


# =============================================================================
# Domain Errors
# =============================================================================


class SubscriptionError(BaseApplicationError):
    """Base exception for subscription domain errors."""

    default_error_code: str = "SUBSCRIPTION_ERROR"


class UnverifiedEventError(SubscriptionError):
    """
    ingest() was called without confirming signature verification.

    This is a programming error in the caller, never a provider problem.
    """

    default_error_code: str = "UNVERIFIED_EVENT"


class UnrecognizedEventKindError(SubscriptionError):
    """
    The provider event is not one we reconcile.

    Not a failure: the event is logged, dropped and acknowledged.
    """

    default_error_code: str = "UNRECOGNIZED_EVENT_KIND"


class PreconditionFailedError(SubscriptionError):
    """
    A transition's precondition does not hold for the current ledger state.

    Examples: Created for a business owned by someone else, PaymentFailed
    while already past due, any event for an unknown subscription id.
    The event is not stored and the webhook is acknowledged.
    """

    default_error_code: str = "PRECONDITION_FAILED"


class LedgerInvariantError(SubscriptionError):
    """
    A ledger write would violate a model invariant.

    Indicates a bug. The transaction is rolled back and the event is
    treated as a storage failure.
    """

    default_error_code: str = "LEDGER_INVARIANT_VIOLATION"


class MalformedEventError(ValidationError):
    """The webhook envelope is missing required fields."""

    default_error_code: str = "MALFORMED_EVENT"


class SubscriptionNotFoundError(NotFoundError):
    """No ledger row matches the requested key."""

    default_error_code: str = "SUBSCRIPTION_NOT_FOUND"


class DuplicateEventError(ConflictError):
    """
    The event id is already in the event log.

    Raised inside the reconciliation transaction to unwind it; callers
    see a Duplicate outcome, never this exception.
    """

    default_error_code: str = "DUPLICATE_EVENT"


class LockAcquisitionError(ConflictError):
    """A distributed lock is held by another worker."""

    default_error_code: str = "LOCK_NOT_ACQUIRED"


# =============================================================================
# External Service Errors
# =============================================================================


class GatewayError(ExternalServiceError):
    """
    Base exception for payment provider failures.

    Attributes:
        provider_code: The provider's own error code, when it supplied one
        is_retryable: Whether repeating the call may succeed
    """

    default_error_code: str = "GATEWAY_ERROR"
    is_retryable: bool = False

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        provider_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        details = details or {}
        if provider_code:
            details["provider_code"] = provider_code
        super().__init__(message, error_code=error_code, details=details)
        self.provider_code = provider_code


class GatewayUnavailableError(GatewayError):
    """Timeout, connection failure, rate limit or provider-side error."""

    default_error_code: str = "GATEWAY_UNAVAILABLE"
    is_retryable: bool = True


class GatewayRequestError(GatewayError):
    """The provider rejected the request (unknown id, bad credentials)."""

    default_error_code: str = "GATEWAY_REQUEST_REJECTED"


class InvalidSignatureError(GatewayRequestError):
    """Webhook signature verification failed."""

    default_error_code: str = "INVALID_SIGNATURE"


class NotificationDispatchError(ExternalServiceError):
    """A notification could not be handed to the mail backend."""

    default_error_code: str = "NOTIFICATION_DISPATCH_FAILED"
