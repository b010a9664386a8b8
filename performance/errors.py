"""
Error taxonomy shared by the services and the HTTP layer.

Each error carries a machine-readable ``code`` and the HTTP status the API
answers with.  ``api.app`` turns them into the ERROR envelope.
"""

from __future__ import annotations

from typing import Any


class PerformanceError(Exception):
    """Base class for expected, client-visible failures."""

    code = "INTERNAL"
    http_status = 500

    def __init__(self, message: str, details: Any = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict[str, Any]:
        error: dict[str, Any] = {"code": self.code}
        if self.details is not None:
            error["details"] = self.details
        return {"status": "ERROR", "message": self.message, "error": error}


class ValidationError(PerformanceError):
    code = "VALIDATION"
    http_status = 400


class AuthenticationError(PerformanceError):
    code = "UNAUTHENTICATED"
    http_status = 401


class AccessDeniedError(PerformanceError):
    code = "ACCESS_DENIED"
    http_status = 403


class NotFoundError(PerformanceError):
    code = "NOT_FOUND"
    http_status = 404


class ConflictError(PerformanceError):
    code = "CONFLICT"
    http_status = 409
