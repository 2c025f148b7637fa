"""
auth/errors.py -- Error taxonomy for the credential and token lifecycle.

Every failure that leaves AuthService is one of these. Each carries an
ErrorKind so transport adapters can map kinds to their own status codes
(api/main.py holds the HTTP table) without string matching.

Authentication-class errors (credentials, refresh token) use fixed messages.
Callers must not be able to tell an unknown email from a wrong password, or a
revoked refresh token from a forged one.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

from enum import Enum


class ErrorKind(str, Enum):
    ALREADY_EXISTS = "already_exists"
    INVALID_CREDENTIALS = "invalid_credentials"
    INVALID_REFRESH_TOKEN = "invalid_refresh_token"
    VALIDATION = "validation_error"
    INTERNAL = "internal_error"


class AuthError(Exception):
    """Base class. `kind` identifies the failure; `message` is safe to show clients."""

    kind: ErrorKind = ErrorKind.INTERNAL
    default_message = "An unexpected error occurred."

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class AlreadyExistsError(AuthError):
    kind = ErrorKind.ALREADY_EXISTS
    default_message = "A user with that id or email already exists."


class InvalidCredentialsError(AuthError):
    kind = ErrorKind.INVALID_CREDENTIALS
    default_message = "Invalid email or password."

    def __init__(self) -> None:
        super().__init__()


class InvalidRefreshTokenError(AuthError):
    kind = ErrorKind.INVALID_REFRESH_TOKEN
    default_message = "Invalid refresh token."

    def __init__(self) -> None:
        super().__init__()


class ValidationFailedError(AuthError):
    """Malformed input, rejected before any storage access."""

    kind = ErrorKind.VALIDATION
    default_message = "Invalid input."


class InternalError(AuthError):
    """Unexpected storage or cryptographic failure. Details go to the log only."""

    kind = ErrorKind.INTERNAL
