"""
PharaohVault — Error Taxonomy
Every failure a service can raise, each bound to the HTTP status the API
reports it with. The exception handler in app.main renders them as
{"error": message, "details": details}.
"""
from typing import Any, Optional


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str, details: Optional[Any] = None):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        return {"error": self.message, "details": self.details}


class ValidationError(AppError):
    """Missing or out-of-range input, rejected before any side effect."""
    status_code = 400


class NotFoundError(AppError):
    status_code = 404


class PermissionDeniedError(AppError):
    status_code = 403


class StateConflictError(AppError):
    """The action is not valid for the entity's current status."""
    status_code = 409


class PersistenceError(AppError):
    status_code = 500


class UpstreamServiceError(AppError):
    """Payment processor or quote API failure."""
    status_code = 502

    def __init__(self, message: str, details: Optional[Any] = None, error_type: Optional[str] = None):
        super().__init__(message, details)
        self.error_type = error_type

    def to_dict(self) -> dict:
        payload = super().to_dict()
        payload["type"] = self.error_type
        return payload
