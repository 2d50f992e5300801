"""Pydantic models for the Learnverse auth API."""

from __future__ import annotations

import re
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator


class UserRole(str, Enum):
    LEARNER = "LEARNER"
    EDUCATOR = "EDUCATOR"


class AccountProvider(str, Enum):
    EMAIL = "EMAIL"
    GOOGLE = "GOOGLE"


# ── Password policy ───────────────────────────────────────────────────────

_PASSWORD_RULES: list[tuple[str, str]] = [
    (r"[a-z]", "Password must contain at least one lowercase letter"),
    (r"[A-Z]", "Password must contain at least one uppercase letter"),
    (r"[0-9]", "Password must contain at least one digit"),
    (r"[^A-Za-z0-9]", "Password must contain at least one special character"),
]


def _check_password(value: str) -> str:
    for pattern, message in _PASSWORD_RULES:
        if not re.search(pattern, value):
            raise ValueError(message)
    return value


# ── Requests ──────────────────────────────────────────────────────────────


class RegisterRequest(BaseModel):
    """Sign-up details; nothing is persisted until the OTP is verified."""
    name: str = Field(..., min_length=2, max_length=50, description="Display name")
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=8, max_length=64, description="Plaintext password")
    role: UserRole = Field(..., description='"LEARNER" or "EDUCATOR"')

    @field_validator("password")
    @classmethod
    def check_password_policy(cls, value: str) -> str:
        return _check_password(value)


class OtpVerifyRequest(BaseModel):
    email: EmailStr = Field(..., description="User email address")
    otp: str = Field(..., min_length=6, max_length=6, description="6-digit code from the email")


class LoginRequest(BaseModel):
    email: EmailStr = Field(..., description="User email address")
    password: str = Field(..., min_length=8, max_length=64, description="Plaintext password")

    @field_validator("password")
    @classmethod
    def check_password_policy(cls, value: str) -> str:
        return _check_password(value)


class EmailRequest(BaseModel):
    email: EmailStr = Field(..., description="User email address")


class SetPasswordRequest(BaseModel):
    email: str = Field(..., description="Email of the account being reset")
    password: str = Field(..., min_length=8, max_length=64, description="New plaintext password")

    @field_validator("password")
    @classmethod
    def check_password_policy(cls, value: str) -> str:
        return _check_password(value)


# ── Stored records ────────────────────────────────────────────────────────


class RegistrationOtpPayload(BaseModel):
    """Pending sign-up stashed in Redis under ``otp_data:{email}``.

    The password is already hashed; the account row is only created after
    the code is verified.
    """
    email: str
    name: str
    role: UserRole
    hashed_password: str
    otp: str


class User(BaseModel):
    """A persisted user row (includes the password hash)."""
    id: str
    name: str
    email: str
    password: str | None = None
    role: UserRole
    is_role_verified: bool = False
    provider: AccountProvider = AccountProvider.EMAIL
    created_at: datetime
    updated_at: datetime

    def public(self) -> UserInfo:
        return UserInfo(**self.model_dump(exclude={"password"}))


class RefreshToken(BaseModel):
    token: str
    user_id: str
    expires_at: datetime
    created_at: datetime


# ── Responses ─────────────────────────────────────────────────────────────


class UserInfo(BaseModel):
    """User as returned to clients (never carries the password hash)."""
    id: str
    name: str
    email: str
    role: UserRole
    is_role_verified: bool
    provider: AccountProvider
    created_at: datetime
    updated_at: datetime


class MessageResponse(BaseModel):
    success: bool = True
    message: str


class LoginResponse(BaseModel):
    success: bool = True
    message: str
    user: UserInfo
    token: str = Field(..., description="Short-lived access token (Bearer)")


class TokenResponse(BaseModel):
    success: bool = True
    token: str


class PasswordResetTokenResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    message: str
    password_reset_token: str = Field(
        ..., alias="passwordResetToken", description="Bearer token for /reset-password"
    )


class MeResponse(BaseModel):
    success: bool = True
    data: UserInfo


class HealthResponse(BaseModel):
    status: str = Field(..., description="Health status")
    version: str
    timestamp: datetime = Field(..., description="Current timestamp")
