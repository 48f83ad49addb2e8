"""
Service layer base classes.

- ServiceResult: return value for expected failures (not found, not owner)
- BaseService: per-class logger

Expected failures come back as a failed ServiceResult; unexpected ones
(database errors, bugs) are raised.

Usage:
    from core.services import BaseService, ServiceResult

    class CheckoutStatusService(BaseService):
        @classmethod
        def get_status(cls, user, business_id) -> ServiceResult[dict]:
            business = Business.objects.filter(pk=business_id, owner=user).first()
            if business is None:
                return ServiceResult.failure("Business not found", error_code="BUSINESS_NOT_FOUND")
            return ServiceResult.success({"business_id": business.pk})

    result = CheckoutStatusService.get_status(request.user, business_id)
    if not result:
        return Response({"error": result.error, "error_code": result.error_code}, status=404)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")


@dataclass
class ServiceResult(Generic[T]):
    """
    Outcome of a service call.

    Attributes:
        success: Whether the call succeeded
        data: Payload when successful
        error: Human-readable reason when failed
        error_code: Machine-readable reason when failed
    """

    success: bool
    data: T | None = None
    error: str | None = None
    error_code: str | None = None

    @classmethod
    def success(cls, data: T) -> ServiceResult[T]:
        return cls(success=True, data=data)

    @classmethod
    def failure(cls, error: str, error_code: str | None = None) -> ServiceResult[T]:
        return cls(success=False, error=error, error_code=error_code)

    def __bool__(self) -> bool:
        return self.success


class BaseService:
    """
    Base class for services.

    Services are classmethod-only unless they take injected collaborators
    (see subscriptions.services.ReconciliationEngine).
    """

    @classmethod
    def get_logger(cls) -> logging.Logger:
        """Logger named after the concrete service class."""
        return logging.getLogger(f"{cls.__module__}.{cls.__name__}")
