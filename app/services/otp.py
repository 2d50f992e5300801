"""
Email OTP issuance and verification with abuse controls.

All state lives in Redis as standalone expiring keys, scoped by email:

    otp_lock:{email}            30 min   too many wrong codes
    otp_spam_lock:{email}       60 min   too many send requests
    otp_cooldown:{email}        60 s     spacing between two sends
    otp_request_count:{email}   60 min   sends in the current (sliding) window
    otp_data:{email}            5 min    pending sign-up payload + code
    otp_reset_password:{email}  15 min   pending password-reset code
    otp_attempts:{email}        5 min    wrong codes in the current window

Redis expires everything; a lock can't be lifted early.  Counters are
advanced with ``INCR`` and re-armed with ``EXPIRE`` in one MULTI/EXEC
block, so two concurrent requests can't both read the same value and a
counter never outlives its window.

Typical use::

    otp = OtpService(get_redis())
    await otp.check_send_allowed(email)
    await otp.record_send_attempt(email)
    await otp.issue_registration_otp(candidate)
    ...
    payload = await otp.verify_registration_otp(email, code)
"""

from __future__ import annotations

import asyncio
import logging
import secrets

from redis.asyncio import Redis

from app import db
from app.errors import (
    AccountLocked,
    AccountLockedTooManyAttempts,
    CooldownActive,
    EmailDeliveryFailed,
    InvalidOrExpiredOtp,
    InvalidOtp,
    TooManyRequests,
    UserNotFound,
)
from app.models import RegisterRequest, RegistrationOtpPayload, User
from app.security import hash_password
from app.services.email import mask_email, send_email

logger = logging.getLogger(__name__)

# ── Policy ────────────────────────────────────────────────────────────────

OTP_LOCK_TTL = 1800  # 30 min
OTP_SPAM_LOCK_TTL = 3600  # 1 hour
OTP_COOLDOWN_TTL = 60
OTP_REQUEST_WINDOW = 3600
OTP_REGISTRATION_TTL = 300  # 5 min
OTP_RESET_PASSWORD_TTL = 900  # 15 min
OTP_ATTEMPTS_TTL = 300

# The send that brings the window count to this value is refused.
OTP_MAX_SENDS = 4
# Wrong codes tolerated; the next one locks the account.
OTP_MAX_FAILED_ATTEMPTS = 2

LOCKED_MESSAGE = "Account locked due to multiple failed attempts, Try again after 30 minutes"
SPAM_MESSAGE = "Too many requests!, Please wait 1 hour before requesting again"
COOLDOWN_MESSAGE = "Please wait 1 minute before requesting again"
LOCKED_NOW_MESSAGE = "Too many failed attempts, your account is locked for 30 minutes"


# ── Keys ──────────────────────────────────────────────────────────────────


def lock_key(email: str) -> str:
    return f"otp_lock:{email}"


def spam_lock_key(email: str) -> str:
    return f"otp_spam_lock:{email}"


def cooldown_key(email: str) -> str:
    return f"otp_cooldown:{email}"


def request_count_key(email: str) -> str:
    return f"otp_request_count:{email}"


def registration_key(email: str) -> str:
    return f"otp_data:{email}"


def reset_password_key(email: str) -> str:
    return f"otp_reset_password:{email}"


def attempts_key(email: str) -> str:
    return f"otp_attempts:{email}"


# ── Helpers ───────────────────────────────────────────────────────────────


def generate_otp() -> str:
    """Cryptographically random 6-digit code in [100000, 999999]."""
    return str(100_000 + secrets.randbelow(900_000))


async def incr_with_expiry(redis: Redis, key: str, seconds: int) -> int:
    """Increment a counter and (re)start its expiry window atomically."""
    async with redis.pipeline(transaction=True) as pipe:
        pipe.incr(key)
        pipe.expire(key, seconds)
        count, _ = await pipe.execute()
    return count


def codes_match(stored: str, submitted: str) -> bool:
    """Exact string comparison in constant time ("012345" != "12345")."""
    return secrets.compare_digest(stored.encode("utf-8"), submitted.encode("utf-8"))


class OtpService:
    """Rate/lockout guard, OTP issuer and OTP verifier over one Redis client."""

    def __init__(self, redis: Redis) -> None:
        self._redis = redis

    # ── Guard ──────────────────────────────────────────────────────────

    async def check_send_allowed(self, email: str) -> None:
        """Refuse a send while any lock or the cooldown is active.

        Read-only.  Priority is fixed: verification lock, then spam lock,
        then cooldown.
        """
        locked, spam_locked, cooling_down = await self._redis.mget(
            lock_key(email), spam_lock_key(email), cooldown_key(email)
        )
        if locked:
            raise AccountLocked(LOCKED_MESSAGE)
        if spam_locked:
            raise TooManyRequests(SPAM_MESSAGE)
        if cooling_down:
            raise CooldownActive(COOLDOWN_MESSAGE)

    async def record_send_attempt(self, email: str) -> None:
        """Count a send in the sliding one-hour window.

        The send that brings the count to ``OTP_MAX_SENDS`` sets the spam
        lock and is refused.
        """
        count = await incr_with_expiry(self._redis, request_count_key(email), OTP_REQUEST_WINDOW)

        if count >= OTP_MAX_SENDS:
            await self._redis.set(spam_lock_key(email), "locked", ex=OTP_SPAM_LOCK_TTL)
            logger.warning("OTP send limit reached for %s, spam lock set", mask_email(email))
            raise TooManyRequests(SPAM_MESSAGE)

    # ── Issuer ─────────────────────────────────────────────────────────

    async def issue_registration_otp(self, candidate: RegisterRequest) -> None:
        """Email a sign-up code and park the pending account in Redis.

        Overwrites any earlier pending sign-up for the same email.

        Raises:
            EmailDeliveryFailed: the email could not be sent; nothing is stored
        """
        email = str(candidate.email)
        otp = generate_otp()
        hashed_password = await asyncio.to_thread(hash_password, candidate.password)

        payload = RegistrationOtpPayload(
            email=email,
            name=candidate.name,
            role=candidate.role,
            hashed_password=hashed_password,
            otp=otp,
        )

        sent = await send_email(
            email,
            "Verify your Email",
            "user-activation-mail",
            {"name": candidate.name, "otp": otp},
        )
        if not sent:
            raise EmailDeliveryFailed("Failed to send verification email. Please try again.")

        await self._redis.set(
            registration_key(email), payload.model_dump_json(), ex=OTP_REGISTRATION_TTL
        )
        await self._redis.set(cooldown_key(email), "true", ex=OTP_COOLDOWN_TTL)
        logger.info("Registration OTP sent to %s", mask_email(email))

    async def issue_password_reset_otp(self, user: User) -> None:
        """Email a password-reset code; only the code is stored."""
        otp = generate_otp()

        sent = await send_email(
            user.email,
            "Reset Your Password",
            "forgot-password-mail",
            {"name": user.name, "otp": otp},
        )
        if not sent:
            raise EmailDeliveryFailed("Failed to send password reset email. Please try again.")

        await self._redis.set(reset_password_key(user.email), otp, ex=OTP_RESET_PASSWORD_TTL)
        await self._redis.set(cooldown_key(user.email), "true", ex=OTP_COOLDOWN_TTL)
        logger.info("Password reset OTP sent to %s", mask_email(user.email))

    # ── Verifier ───────────────────────────────────────────────────────

    async def verify_registration_otp(self, email: str, otp: str) -> RegistrationOtpPayload:
        """Consume a sign-up code and return the pending account.

        Raises:
            AccountLocked: a verification lock is active
            InvalidOrExpiredOtp: nothing pending for this email
            InvalidOtp: wrong code, attempts remain
            AccountLockedTooManyAttempts: wrong code, account now locked
        """
        await self._ensure_not_locked(email)

        raw = await self._redis.get(registration_key(email))
        if raw is None:
            raise InvalidOrExpiredOtp("Invalid or expired OTP")

        payload = RegistrationOtpPayload.model_validate_json(raw)
        await self._consume(email, registration_key(email), payload.otp, otp)
        logger.info("Registration OTP verified for %s", mask_email(email))
        return payload

    async def verify_password_reset_otp(self, email: str, otp: str) -> User:
        """Consume a password-reset code and return the account it belongs to.

        Raises:
            UserNotFound: no account with this email (checked first)
            AccountLocked: a verification lock is active
            InvalidOtp: wrong, missing or expired code, attempts remain
            AccountLockedTooManyAttempts: wrong code, account now locked
        """
        user = await db.get_user_by_email(email)
        if user is None:
            raise UserNotFound("User does not exist")

        await self._ensure_not_locked(email)

        # A missing or expired code counts as a wrong guess here
        stored = await self._redis.get(reset_password_key(email))
        await self._consume(email, reset_password_key(email), stored, otp)
        logger.info("Password reset OTP verified for %s", mask_email(email))
        return user

    async def _ensure_not_locked(self, email: str) -> None:
        if await self._redis.get(lock_key(email)):
            raise AccountLocked(LOCKED_MESSAGE)

    async def _consume(
        self, email: str, pending_key: str, stored: str | None, submitted: str
    ) -> None:
        """Compare codes; on success drop the pending code, else count the failure."""
        failures_key = attempts_key(email)

        if stored is not None and codes_match(stored, submitted):
            await asyncio.gather(
                self._redis.delete(pending_key),
                self._redis.delete(failures_key),
            )
            return

        failures = await incr_with_expiry(self._redis, failures_key, OTP_ATTEMPTS_TTL)
        previous = failures - 1

        if previous >= OTP_MAX_FAILED_ATTEMPTS:
            await self._redis.set(lock_key(email), "locked", ex=OTP_LOCK_TTL)
            await self._redis.delete(pending_key, failures_key)
            logger.warning("OTP verification lock set for %s", mask_email(email))
            raise AccountLockedTooManyAttempts(LOCKED_NOW_MESSAGE)

        remaining = OTP_MAX_FAILED_ATTEMPTS - 1 - previous
        logger.info("Wrong OTP for %s (%d attempts left)", mask_email(email), remaining)
        raise InvalidOtp(f"Invalid OTP. {remaining} attempts left.")
