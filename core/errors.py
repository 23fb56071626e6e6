# ============================================================================
# SERVICE ERROR TAXONOMY
# ============================================================================
# EPOCH: 1 - ASSET LIFECYCLE
# STATUS: Foundation - Error kinds shared by every layer
# PURPOSE: Typed exceptions mapped to transport status at the API boundary
# CREATED: 02 OCT 2026
# ============================================================================
"""
Service Error Taxonomy

Every public lifecycle operation either succeeds or raises one of the
ServiceError subclasses below. The API layer maps ``code`` to an HTTP status;
nothing else inspects message text.

Only UNAVAILABLE and CANCELED are safe for callers to retry.
"""

from typing import Any, Dict, Optional


class ServiceError(Exception):
    """Base class for all taxonomy errors."""

    code: str = "INTERNAL"
    retryable: bool = False

    def __init__(self, message: str, **details: Any):
        self.message = message
        self.details: Dict[str, Any] = details
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.code, "message": self.message}
        if self.details:
            body["details"] = self.details
        return body


class InvalidArgumentError(ServiceError):
    """Malformed input (missing field, bad id, multi-owner request)."""
    code = "INVALID_ARGUMENT"


class ValidationFailedError(ServiceError):
    """Well-formed input that violates a rule (e.g. signature mismatch)."""
    code = "VALIDATION_FAILED"


class NotFoundError(ServiceError):
    code = "NOT_FOUND"


class ConflictError(ServiceError):
    """State precondition not met, lost a conditional write, or owner bound elsewhere."""
    code = "CONFLICT"


class AlreadyExistsError(ServiceError):
    code = "ALREADY_EXISTS"


class PermissionDeniedError(ServiceError):
    code = "PERMISSION_DENIED"


class UnimplementedError(ServiceError):
    code = "UNIMPLEMENTED"


class UnavailableError(ServiceError):
    """Provider, notifier, or store could not be reached in time."""
    code = "UNAVAILABLE"
    retryable = True


class CanceledError(ServiceError):
    code = "CANCELED"
    retryable = True


# Transport mapping (HTTP). 499 follows the nginx "client closed request" convention.
HTTP_STATUS_BY_CODE: Dict[str, int] = {
    InvalidArgumentError.code: 400,
    ValidationFailedError.code: 422,
    NotFoundError.code: 404,
    ConflictError.code: 409,
    AlreadyExistsError.code: 409,
    PermissionDeniedError.code: 403,
    UnimplementedError.code: 501,
    UnavailableError.code: 503,
    CanceledError.code: 499,
}


def http_status_for(error: ServiceError, default: Optional[int] = 500) -> int:
    """Map a ServiceError to its HTTP status code."""
    return HTTP_STATUS_BY_CODE.get(error.code, default)


__all__ = [
    "ServiceError",
    "InvalidArgumentError",
    "ValidationFailedError",
    "NotFoundError",
    "ConflictError",
    "AlreadyExistsError",
    "PermissionDeniedError",
    "UnimplementedError",
    "UnavailableError",
    "CanceledError",
    "HTTP_STATUS_BY_CODE",
    "http_status_for",
]
