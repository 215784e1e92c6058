"""
Custom domain exceptions for consistent error handling.

These exceptions are mapped to HTTP status codes by the global exception handler
in main.py. Batch and scan operations catch them per item instead of letting
them propagate.
"""
from fastapi import HTTPException, status


class DomainError(HTTPException):
    """Base class for all domain-specific errors."""
    def __init__(self, message: str, status_code: int = status.HTTP_400_BAD_REQUEST, details: dict | None = None):
        super().__init__(status_code=status_code, detail=message)
        self.message = message
        self.details = details or {}

    def __str__(self) -> str:
        return self.message


class NotFoundError(DomainError):
    """Resource not found (404). Also used for resources of another tenant."""
    def __init__(self, resource_type: str, identifier, details: dict | None = None):
        message = f"{resource_type} not found: {identifier}"
        super().__init__(message, status_code=status.HTTP_404_NOT_FOUND, details=details)


class ValidationError(DomainError):
    """Validation error (400)."""
    def __init__(self, message: str, field: str | None = None, details: dict | None = None):
        if field:
            message = f"Validation error on {field}: {message}"
        super().__init__(message, status_code=status.HTTP_400_BAD_REQUEST, details=details)


class ConflictError(DomainError):
    """Resource conflict (409)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_409_CONFLICT, details=details)


class TransitionError(DomainError):
    """
    Illegal status transition (409).

    Raised both for pairs missing from the transition table and for the loser
    of a concurrent write, whose expected status no longer matches.
    """
    def __init__(self, from_status, to_status, order_id=None, message: str | None = None):
        from_label = getattr(from_status, "label", from_status)
        to_label = getattr(to_status, "label", to_status)
        if message is None:
            message = f"Transition not allowed: {from_label} -> {to_label}"
        super().__init__(
            message,
            status_code=status.HTTP_409_CONFLICT,
            details={"order_id": order_id, "from_status": from_label, "to_status": to_label},
        )
        self.from_status = from_status
        self.to_status = to_status
        self.order_id = order_id


class PersistenceError(DomainError):
    """Underlying store failure (503)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_503_SERVICE_UNAVAILABLE, details=details)


class ConfigResolutionError(DomainError):
    """Even the system timeout fallback is unusable (500)."""
    def __init__(self, message: str, details: dict | None = None):
        super().__init__(message, status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, details=details)
