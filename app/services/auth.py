"""
Account flows: sign-up, login, password reset and session tokens.

Thin orchestration over ``OtpService``, ``LoginGuard`` and the user
store.  Every failure is an ``AuthError`` subclass; routers let them
propagate to the app's exception handler.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import UTC, datetime, timedelta

import aiosqlite
from redis.asyncio import Redis

from app import db
from app.config import REFRESH_TOKEN_EXPIRY_DAYS
from app.errors import EmailAlreadyInUse, InvalidToken, UserNotFound
from app.models import RegisterRequest, User
from app.security import create_access_token, generate_refresh_token, hash_password
from app.services.email import mask_email
from app.services.login_guard import LoginGuard
from app.services.otp import OtpService

logger = logging.getLogger(__name__)


def normalize_email(email: str) -> str:
    return email.strip().lower()


class AuthService:
    def __init__(self, redis: Redis) -> None:
        self.otp = OtpService(redis)
        self.login_guard = LoginGuard(redis)

    # ── Sign-up ────────────────────────────────────────────────────────

    async def register(self, candidate: RegisterRequest) -> None:
        """Send a sign-up OTP; the account is created on verification."""
        email = normalize_email(str(candidate.email))
        candidate = candidate.model_copy(update={"email": email})

        if await db.get_user_by_email(email) is not None:
            raise EmailAlreadyInUse("Email already in use")

        await self.otp.check_send_allowed(email)
        await self.otp.record_send_attempt(email)
        await self.otp.issue_registration_otp(candidate)

    async def verify_registration(self, email: str, otp: str) -> User:
        payload = await self.otp.verify_registration_otp(normalize_email(email), otp)
        try:
            user = await db.create_user(
                payload.name,
                payload.email,
                payload.hashed_password,
                payload.role,
            )
        except aiosqlite.IntegrityError:
            # Someone finished signing up with this email in the meantime
            raise EmailAlreadyInUse("Email already in use") from None

        logger.info("User registered: %s", mask_email(user.email))
        return user

    # ── Sessions ───────────────────────────────────────────────────────

    async def _issue_tokens(self, user: User) -> tuple[str, str]:
        access = create_access_token(user.id, user.email, user.role.value)
        refresh = generate_refresh_token()
        expires_at = datetime.now(UTC) + timedelta(days=REFRESH_TOKEN_EXPIRY_DAYS)
        await db.create_refresh_token(user.id, refresh, expires_at)
        return access, refresh

    async def login(self, email: str, password: str) -> tuple[User, str, str]:
        """Check credentials and return ``(user, access_token, refresh_token)``."""
        user = await self.login_guard.validate_credentials(email, password)
        access, refresh = await self._issue_tokens(user)
        logger.info("User logged in: %s", mask_email(user.email))
        return user, access, refresh

    async def refresh(self, refresh_token: str) -> tuple[str, str]:
        """Rotate a refresh token; the old one stops working."""
        stored = await db.get_refresh_token(refresh_token)
        if stored is None or stored.expires_at < datetime.now(UTC):
            logger.warning("Invalid or expired refresh token")
            raise InvalidToken("Invalid or expired refresh token")

        user = await db.get_user_by_id(stored.user_id)
        if user is None:
            logger.warning("Refresh token for missing user %s", stored.user_id)
            raise UserNotFound("User does not exist")

        await db.delete_refresh_token(refresh_token)
        return await self._issue_tokens(user)

    async def logout(self, refresh_token: str) -> None:
        if not await db.delete_refresh_token(refresh_token):
            logger.warning("Invalid refresh token provided")
            raise InvalidToken("Invalid refresh token")
        logger.info("Refresh token deleted for logout")

    # ── Password reset ─────────────────────────────────────────────────

    async def forgot_password(self, email: str) -> None:
        email = normalize_email(email)
        user = await db.get_user_by_email(email)
        if user is None:
            raise UserNotFound("User not found or invalid details")

        await self.otp.check_send_allowed(email)
        await self.otp.record_send_attempt(email)
        await self.otp.issue_password_reset_otp(user)

    async def verify_forgot_password(self, email: str, otp: str) -> str:
        """Consume the reset code and return a token for ``set_new_password``."""
        user = await self.otp.verify_password_reset_otp(normalize_email(email), otp)
        return create_access_token(user.id, user.email, user.role.value)

    async def set_new_password(self, user_id: str, email: str, password: str) -> User:
        user = await db.get_user_by_id(user_id)
        if user is None or user.email != normalize_email(email):
            raise UserNotFound("User not found or invalid details")

        hashed = await asyncio.to_thread(hash_password, password)
        updated = await db.update_password(user.id, hashed)
        if updated is None:
            raise UserNotFound("User not found or invalid details")

        logger.info("Password changed for %s", mask_email(user.email))
        return updated
