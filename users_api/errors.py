"""Error taxonomy shared by the store, the token layer and the HTTP handlers."""

from __future__ import annotations

from typing import Optional


class UserServiceError(Exception):
    """Base class for failures that map onto a single HTTP response."""

    status_code = 500
    default_message = "Internal server error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ValidationError(UserServiceError):
    status_code = 400
    default_message = "Invalid request"


class NotFound(UserServiceError):
    status_code = 404
    default_message = "User not found"


class DuplicateEmail(UserServiceError):
    status_code = 409
    default_message = "Email already exists"


class AuthMissing(UserServiceError):
    status_code = 401
    default_message = "Authentication token required"


class AuthInvalid(UserServiceError):
    status_code = 403
    default_message = "Invalid token"


class AuthFailed(UserServiceError):
    status_code = 401
    default_message = "Authentication failed"


class StorageError(UserServiceError):
    status_code = 500
    default_message = "Storage failure"


__all__ = [
    "AuthFailed",
    "AuthInvalid",
    "AuthMissing",
    "DuplicateEmail",
    "NotFound",
    "StorageError",
    "UserServiceError",
    "ValidationError",
]
