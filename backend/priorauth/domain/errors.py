"""Domain Errors - Centralized Exception Hierarchy"""
from typing import Any, Dict, Optional


class DomainError(Exception):
    """Base domain error - all errors extend this"""

    error_code: str = "DOMAIN_ERROR"
    http_status: int = 400

    def __init__(
        self,
        message: str,
        details: Optional[Dict[str, Any]] = None,
        error_code: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if error_code:
            self.error_code = error_code

    def to_dict(self) -> Dict[str, Any]:
        """Convert error to API response dict"""
        return {
            "error": {
                "code": self.error_code,
                "message": self.message,
                "details": self.details
            }
        }


# Authentication
class AuthenticationError(DomainError):
    """Acting user identity missing"""
    error_code = "AUTHENTICATION_ERROR"
    http_status = 401


# Validation Errors
class ValidationError(DomainError):
    """Input validation failed"""
    error_code = "VALIDATION_ERROR"
    http_status = 400


# Not Found Errors
class NotFoundError(DomainError):
    """Resource not found"""
    error_code = "NOT_FOUND"
    http_status = 404


class AuthorizationNotFoundError(NotFoundError):
    """Prior authorization not found"""
    error_code = "AUTHORIZATION_NOT_FOUND"


class StepNotFoundError(NotFoundError):
    """Workflow step not found"""
    error_code = "STEP_NOT_FOUND"


class TemplateNotFoundError(NotFoundError):
    """No state form template registered"""
    error_code = "TEMPLATE_NOT_FOUND"


# Conflict Errors
class ConflictError(DomainError):
    """Resource conflict (e.g., concurrent modification)"""
    error_code = "CONFLICT"
    http_status = 409


class ConcurrencyError(ConflictError):
    """Optimistic concurrency conflict or lock timeout"""
    error_code = "CONCURRENCY_CONFLICT"


class InvalidStateError(ConflictError):
    """Action not valid for current state"""
    error_code = "INVALID_STATE"


class AlreadyExistsError(ConflictError):
    """Resource already exists"""
    error_code = "ALREADY_EXISTS"


class AlreadyInitializedError(AlreadyExistsError):
    """Workflow steps already exist for the authorization"""
    error_code = "ALREADY_INITIALIZED"


class OutOfSequenceError(InvalidStateError):
    """Step is not the authorization's current step"""
    error_code = "OUT_OF_SEQUENCE"


class StepAlreadyCompletedError(InvalidStateError):
    """Step was already completed"""
    error_code = "ALREADY_COMPLETED"


# Infrastructure Errors
class StorageUnavailableError(DomainError):
    """Persistence layer failed or timed out"""
    error_code = "STORAGE_UNAVAILABLE"
    http_status = 503
