"""
Exceptions raised by the auth services.

Each error carries the HTTP status and a short machine-readable code so
routers can let them propagate; ``auth_error_handler`` turns them into
``{"success": false, "error": ..., "message": ...}`` JSON responses.
"""

from __future__ import annotations

from fastapi import Request, status
from fastapi.responses import JSONResponse


class AuthError(Exception):
    """Base exception for authentication and OTP operations."""

    status_code: int = status.HTTP_400_BAD_REQUEST
    code: str = "auth_error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


# ── Lockouts / throttling ─────────────────────────────────────────────────


class AccountLocked(AuthError):
    """A lock key is active for this email."""

    status_code = status.HTTP_423_LOCKED
    code = "account_locked"


class AccountLockedTooManyAttempts(AuthError):
    """The failure that just happened crossed the lockout threshold."""

    status_code = status.HTTP_423_LOCKED
    code = "account_locked_too_many_attempts"


class TooManyRequests(AuthError):
    """Too many OTP sends for this email."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "too_many_requests"


class CooldownActive(AuthError):
    """An OTP was sent to this email less than a minute ago."""

    status_code = status.HTTP_429_TOO_MANY_REQUESTS
    code = "cooldown_active"


# ── OTP verification ──────────────────────────────────────────────────────


class InvalidOrExpiredOtp(AuthError):
    code = "invalid_or_expired_otp"


class InvalidOtp(AuthError):
    code = "invalid_otp"


# ── Accounts / sessions ───────────────────────────────────────────────────


class UserNotFound(AuthError):
    status_code = status.HTTP_404_NOT_FOUND
    code = "user_not_found"


class EmailAlreadyInUse(AuthError):
    status_code = status.HTTP_409_CONFLICT
    code = "email_in_use"


class InvalidCredentials(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "invalid_credentials"


class InvalidToken(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    code = "invalid_token"


class RefreshTokenMissing(AuthError):
    code = "refresh_token_missing"


class EmailDeliveryFailed(AuthError):
    """The OTP email could not be handed to the mail server."""

    status_code = status.HTTP_502_BAD_GATEWAY
    code = "email_delivery_failed"


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.code, "message": exc.message},
    )
