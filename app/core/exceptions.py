"""
Application exception hierarchy.

Every domain error carries a machine-readable error_code and a details
dict that goes straight into structured log records (`extra=e.details`).

Hierarchy:
    BaseApplicationError
    ├── ValidationError - malformed input (webhook envelopes, parameters)
    ├── NotFoundError - a lookup by key found nothing
    ├── ConflictError - duplicates and lock contention
    └── ExternalServiceError - Stripe or SMTP failures

Apps subclass these and set `default_error_code`; see
subscriptions.exceptions.

Usage:
    from core.exceptions import NotFoundError

    raise NotFoundError(
        "No subscription for business 42",
        error_code="SUBSCRIPTION_NOT_FOUND",
        details={"subscription_ref": 42},
    )
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from typing import Any


class BaseApplicationError(Exception):
    """
    Base exception for application errors.

    Attributes:
        message: Human-readable description
        error_code: Machine-readable code (class default unless given)
        details: Context for logs; never contains secrets
    """

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Response body for HTTP callers."""
        body: dict[str, Any] = {"error": self.message, "error_code": self.error_code}
        if self.details:
            body["details"] = self.details
        return body

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


class ValidationError(BaseApplicationError):
    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    default_error_code: str = "NOT_FOUND"


class ConflictError(BaseApplicationError):
    """Duplicate entries or a resource held by another worker."""

    default_error_code: str = "CONFLICT"


class ExternalServiceError(BaseApplicationError):
    """
    A third-party call failed.

    Subclasses say whether repeating the call can help (see
    subscriptions.exceptions.GatewayError.is_retryable).
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
