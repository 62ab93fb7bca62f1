"""
auth/errors.py -- Error taxonomy shared by the auth core and user management.

Every error carries the HTTP status it maps to. api/main.py renders all of
them with the same envelope ({"success", "message", "timestamp"}) so clients
branch on status code, never on message text.

InternalError messages are for the server log only. The exception handler
replaces them with a generic message before anything reaches the client.
"""

from __future__ import annotations


class ApiError(Exception):
    """Base class for errors that map onto an HTTP response."""

    status_code: int = 500
    default_message: str = "Internal server error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(ApiError):
    status_code = 400
    default_message = "Invalid input"


class InvalidCredentials(ApiError):
    """Login failed: unknown email, no stored hash, or wrong password.

    All three causes share this one message and status so a caller cannot
    tell whether the account exists.
    """

    status_code = 401
    default_message = "Invalid credentials"


class Unauthorized(ApiError):
    status_code = 401
    default_message = "Authentication required"


class Forbidden(Unauthorized):
    status_code = 403
    default_message = "Forbidden"


class NotFound(ApiError):
    status_code = 404
    default_message = "User not found"


class Conflict(ApiError):
    status_code = 409
    default_message = "User already exists"


class InternalError(ApiError):
    status_code = 500
