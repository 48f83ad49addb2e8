"""
Core Application - Infrastructure & Base Classes

Generic, reusable building blocks shared by the directory and
subscriptions apps. No business logic lives here.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ValidationError, NotFoundError, ConflictError, ExternalServiceError

Views (import from core.views):
    - health_check: Liveness endpoint for load balancers

Note:
    Models and model mixins are NOT imported here to avoid AppRegistryNotReady
    errors. Import them directly from their modules.
"""

from .exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from .services import BaseService, ServiceResult

__all__ = [
    # Services
    "BaseService",
    "ServiceResult",
    # Exceptions
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "ConflictError",
    "ExternalServiceError",
]
