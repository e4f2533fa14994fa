"""
Shared building blocks for the marketplace apps.

core.services holds BaseService and ServiceResult, core.exceptions the
error hierarchy every API response is built from, and core.helpers the
listing paginator. Abstract models live in core.models and
core.model_mixins; they are not re-exported here because importing them
needs a ready app registry.
"""

from .exceptions import (
    BaseApplicationError,
    ConflictError,
    ExternalServiceError,
    NotFoundError,
    ValidationError,
)
from .helpers import paginate
from .services import BaseService, ServiceResult

__all__ = [
    "BaseApplicationError",
    "BaseService",
    "ConflictError",
    "ExternalServiceError",
    "NotFoundError",
    "ServiceResult",
    "ValidationError",
    "paginate",
]
