"""
Domain error taxonomy.

Services raise these; the app-level error handler turns them into
``{"message": ...}`` JSON responses with the matching status code.
"""
from __future__ import annotations


class ComplianceError(Exception):
    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ComplianceError):
    status_code = 400
    default_message = "Invalid request"


class UnauthenticatedError(ComplianceError):
    status_code = 401
    default_message = "Not authenticated"


class ForbiddenError(ComplianceError):
    status_code = 403
    default_message = "Not authorized"


class NotFoundError(ComplianceError):
    status_code = 404
    default_message = "Not found"


class ConflictError(ComplianceError):
    status_code = 409
    default_message = "Conflict"


class RateLimitedError(ComplianceError):
    status_code = 429
    default_message = "Too many requests"


class InternalError(ComplianceError):
    status_code = 500
