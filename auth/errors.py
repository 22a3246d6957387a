"""
auth/errors.py -- Error taxonomy for credential flows.

Every transition failure is an AuthError subclass carrying a stable machine
code, a user-safe message, and the HTTP status the API layer should use.
The API exception handler turns any AuthError into {"success": false,
"message": ...}; nothing else about the failure leaves the process.

Layer rule: no imports from api/ or mail/. status_code is plain data here,
not a FastAPI dependency.
"""

from __future__ import annotations


class AuthError(Exception):
    """Base class for all expected credential-flow failures."""

    code: str = "auth_error"
    message: str = "Request could not be processed."
    status_code: int = 400

    def __init__(self, message: str | None = None, *, status_code: int | None = None) -> None:
        if message is not None:
            self.message = message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class ValidationError(AuthError):
    code = "validation_error"
    message = "All fields are required."


class Conflict(AuthError):
    code = "conflict"
    message = "User already exists."


class NotFound(AuthError):
    code = "not_found"
    message = "User not found."


class AlreadyVerified(AuthError):
    code = "already_verified"
    message = "Email is already verified."


class InvalidCredentials(AuthError):
    """Wrong password and unknown email share this one message."""

    code = "invalid_credentials"
    message = "Invalid credentials."


class CodeMismatch(AuthError):
    code = "code_mismatch"
    message = "Invalid verification code."


class CodeExpired(AuthError):
    code = "code_expired"
    message = "Verification code has expired."


class InvalidOrExpiredToken(AuthError):
    code = "invalid_or_expired_token"
    message = "Invalid or expired reset token."


class Unauthenticated(AuthError):
    """Missing, malformed, forged, or expired session token -- one outward signal."""

    code = "unauthenticated"
    message = "Unauthorized."
    status_code = 401


class Internal(AuthError):
    code = "internal_error"
    message = "Something went wrong."
    status_code = 500


class EncodingError(Internal):
    """Raised by the credential codec when the entropy source fails."""

    code = "encoding_error"


class AccountConflictError(Exception):
    """Raised by an AccountStore when create() hits the unique email constraint."""


# Generic message used on the verification path when code errors are collapsed.
COLLAPSED_CODE_MESSAGE = "Invalid or expired verification code."
