"""
Domain errors and their JSON shape.

An error carries the message shown to the client, a stable error_code
clients branch on, and optional details (identifiers, field problems).
Services raise them; views map the class to an HTTP status and return
``to_dict()`` as the body.

    BaseApplicationError
    ├── ValidationError       400
    ├── NotFoundError         404
    ├── ConflictError         409
    └── ExternalServiceError  502

Usage:
    raise ValidationError(
        "Amount must be positive",
        error_code="INVALID_AMOUNT",
        details={"amount": amount},
    )
"""

from __future__ import annotations

from typing import Any


class BaseApplicationError(Exception):
    """Root of the hierarchy; subclasses only change default_error_code."""

    default_error_code: str = "APPLICATION_ERROR"

    def __init__(
        self,
        message: str,
        error_code: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.default_error_code
        self.details = details or {}

    def to_dict(self) -> dict[str, Any]:
        """{"error", "error_code"} plus "details" when there are any."""
        body = {"error": self.message, "error_code": self.error_code}
        if self.details:
            body["details"] = self.details
        return body

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.error_code}: {self.message!r}>"


class ValidationError(BaseApplicationError):
    """
    Service-layer input rejected (amounts, currencies, paging values).

    Request bodies are validated by DRF serializers before they get here.
    """

    default_error_code: str = "VALIDATION_ERROR"


class NotFoundError(BaseApplicationError):
    """A single record the caller expected to exist is missing."""

    default_error_code: str = "NOT_FOUND"


class ConflictError(BaseApplicationError):
    """
    The current state of a record forbids the operation.

    Covers disallowed state transitions, duplicate payments and lock
    contention; views answer 409.
    """

    default_error_code: str = "CONFLICT"


class ExternalServiceError(BaseApplicationError):
    """
    A third-party call failed.

    The provider's own message is logged, never returned to clients.
    """

    default_error_code: str = "EXTERNAL_SERVICE_ERROR"
