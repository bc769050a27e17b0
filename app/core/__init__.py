"""
Core Application - Infrastructure & Base Classes

Generic building blocks shared by the bookings, payments, disputes and
notifications apps. No booking or payment rules live here.

Models (import from core.models):
    - BaseModel: Abstract model with timestamps (created_at, updated_at)
    - AuditLogModel: Abstract append-only audit row

Model Mixins (import from core.model_mixins):
    - UUIDPrimaryKeyMixin: UUID as primary key
    - MetadataMixin: Flexible JSON metadata storage

Services (import from core.services):
    - BaseService: Base class for service layer
    - ServiceResult: Standard result wrapper for success/failure handling

Exceptions (import from core.exceptions):
    - BaseApplicationError: Base exception with error codes
    - ValidationError, NotFoundError, PermissionDeniedError, ConflictError
    - ExternalServiceError, InternalError

Helpers (import from core.helpers):
    - percent_of: Integer pence percentage, rounded half-up
    - whole_hours_between: Floored hour difference

Views (import from core.views):
    - error_response: Domain exception to DRF response
    - health_check: Database and cache check

Note:
    Django models and model mixins are NOT imported here to avoid
    AppRegistryNotReady errors. Import them directly from their modules.
"""

# Services (no Django model dependencies)
from .services import BaseService, ServiceResult

# Exceptions (no Django dependencies)
from .exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    InternalError,
    NotFoundError,
    PermissionDeniedError,
    ValidationError,
)

# Helpers (no Django model dependencies)
from .helpers import percent_of, whole_hours_between

__all__ = [
    # Services
    "BaseService",
    "ServiceResult",
    # Exceptions
    "BaseApplicationError",
    "ValidationError",
    "NotFoundError",
    "PermissionDeniedError",
    "ConflictError",
    "ExternalServiceError",
    "InternalError",
    # Helpers
    "percent_of",
    "whole_hours_between",
]
