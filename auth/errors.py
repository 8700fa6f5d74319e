"""
auth/errors.py -- Failure taxonomy for the auth engine.

Every engine failure is one of these. Each carries a machine-readable code,
the HTTP status the API layer answers with, and a client-safe message. The
API layer maps them in a single exception handler, so route handlers never
build error responses for engine outcomes themselves.

InternalError's message is fixed: the underlying cause is logged where it is
raised and never reaches the client.
"""

from __future__ import annotations


class AuthError(Exception):
    code = "auth_error"
    status_code = 400
    default_message = "Request failed"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class Conflict(AuthError):
    code = "conflict"
    status_code = 400
    default_message = "User already exists"


class WeakPassword(AuthError):
    code = "weak_password"
    status_code = 400
    default_message = "Password is too weak"


class InvalidCredentials(AuthError):
    code = "invalid_credentials"
    status_code = 401
    default_message = "Invalid credentials"


class InvalidOtp(AuthError):
    code = "invalid_otp"
    status_code = 400
    default_message = "Invalid OTP"


class NotFound(AuthError):
    code = "not_found"
    status_code = 404
    default_message = "User not found"


class InvalidOrExpiredToken(AuthError):
    code = "invalid_or_expired_token"
    status_code = 400
    default_message = "Invalid or expired token"


class Unauthorized(AuthError):
    code = "unauthorized"
    status_code = 401
    default_message = "Unauthorized"


class InternalError(AuthError):
    code = "internal_error"
    status_code = 500
    default_message = "Internal Server Error"

    def __init__(self) -> None:
        super().__init__(None)
