"""
Error taxonomy shared by route handlers and stores.

Every error carries an HTTP status and a short public code. Handlers raise these;
the API layer turns them into JSON (API routes) or redirects (auth flows).
"""
from __future__ import annotations


class AppError(Exception):
    status_code = 500
    code = "server_error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.code)
        self.message = message or self.code


class InvalidState(AppError):
    """OAuth state/code mismatch or an error reported by the provider."""

    status_code = 400
    code = "invalid_state"

    def __init__(self, reason: str = "invalid_state") -> None:
        super().__init__(reason)
        self.reason = reason


class Unauthorized(AppError):
    status_code = 401
    code = "unauthorized"

    def __init__(self, message: str = "Unauthorized") -> None:
        super().__init__(message)


class NotFound(AppError):
    """Resource absent or not visible to the caller."""

    status_code = 404
    code = "not_found"

    def __init__(self, message: str = "Not found") -> None:
        super().__init__(message)


class ValidationError(AppError):
    status_code = 400
    code = "validation_error"


class StorageError(AppError):
    """Persistence layer unreachable or failed. Never shown to users verbatim."""

    status_code = 500
    code = "storage_error"
