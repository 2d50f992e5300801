"""
Password login with a per-email lockout.

Same shape as the OTP verifier but with its own keys and limits:

    login_attempts:{email}   30 min   wrong passwords in the current window
    login_lock:{email}       30 min   login refused

Four wrong passwords are tolerated; the fifth locks the account.
"""

from __future__ import annotations

import asyncio
import logging

from redis.asyncio import Redis

from app import db
from app.errors import AccountLocked, AccountLockedTooManyAttempts, InvalidCredentials
from app.models import User
from app.security import verify_password
from app.services.email import mask_email
from app.services.otp import incr_with_expiry

logger = logging.getLogger(__name__)

LOGIN_LOCK_TTL = 1800
LOGIN_ATTEMPTS_TTL = 1800
LOGIN_MAX_FAILED_ATTEMPTS = 4


def login_lock_key(email: str) -> str:
    return f"login_lock:{email}"


def login_attempts_key(email: str) -> str:
    return f"login_attempts:{email}"


class LoginGuard:
    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    async def validate_credentials(self, email: str, password: str) -> User:
        """Return the user if the password matches.

        Raises:
            InvalidCredentials: unknown email, or wrong password with attempts left
            AccountLocked: a login lock is active
            AccountLockedTooManyAttempts: wrong password, account now locked
        """
        email = email.lower()
        lock = login_lock_key(email)
        failures_key = login_attempts_key(email)

        user = await db.get_user_by_email(email)
        if user is None:
            raise InvalidCredentials("Invalid login credentials")

        if await self._redis.get(lock):
            raise AccountLocked(
                "Account locked due to multiple failed login attempts, Try again after 30 minutes"
            )

        if await asyncio.to_thread(verify_password, password, user.password):
            await self._redis.delete(failures_key)
            return user

        failures = await incr_with_expiry(self._redis, failures_key, LOGIN_ATTEMPTS_TTL)
        previous = failures - 1

        if previous >= LOGIN_MAX_FAILED_ATTEMPTS:
            await self._redis.set(lock, "locked", ex=LOGIN_LOCK_TTL)
            await self._redis.delete(failures_key)
            logger.warning("Login lock set for %s", mask_email(email))
            raise AccountLockedTooManyAttempts(
                "Too many failed login attempts, your account is locked for 30 minutes"
            )

        logger.warning("Login attempt failed for %s, attempt: %d", mask_email(email), failures)
        remaining = LOGIN_MAX_FAILED_ATTEMPTS - 1 - previous
        raise InvalidCredentials(f"Invalid details. {remaining} attempts left.")
