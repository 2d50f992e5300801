"""
Authentication endpoints – email OTP sign-up, password login, password
reset and refresh-token sessions.
"""

import logging
from typing import Annotated

from fastapi import APIRouter, Cookie, Request, Response, status

from app.config import ENVIRONMENT, REFRESH_TOKEN_EXPIRY_DAYS
from app.dependencies import AuthServiceDep, CurrentUser
from app.errors import RefreshTokenMissing
from app.models import (
    EmailRequest,
    LoginRequest,
    LoginResponse,
    MeResponse,
    MessageResponse,
    OtpVerifyRequest,
    PasswordResetTokenResponse,
    RegisterRequest,
    SetPasswordRequest,
    TokenResponse,
)
from app.rate_limit import AUTH, STRICT, limiter

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/auth", tags=["auth"])

REFRESH_COOKIE = "jwt"

RefreshCookie = Annotated[str | None, Cookie(alias=REFRESH_COOKIE)]


def _set_refresh_cookie(response: Response, token: str) -> None:
    production = ENVIRONMENT == "production"
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=token,
        httponly=True,
        samesite="none" if production else "lax",
        secure=production,
        max_age=REFRESH_TOKEN_EXPIRY_DAYS * 86400,
    )


def _require_refresh_cookie(token: str | None) -> str:
    if not token:
        logger.warning("Refresh token missing")
        raise RefreshTokenMissing("Refresh token missing")
    return token


# ── Sign-up ────────────────────────────────────────────────────────────────


@router.post(
    "/register",
    response_model=MessageResponse,
    operation_id="register",
    summary="Start sign-up by emailing a one-time password",
)
@limiter.limit(STRICT)
async def register(request: Request, body: RegisterRequest, auth: AuthServiceDep) -> MessageResponse:
    """
    Validate the sign-up details and email a 6-digit OTP. The account is
    only created once the OTP is verified.
    """
    await auth.register(body)
    return MessageResponse(message="Verify your email to continue")


@router.post(
    "/verify-registration",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    operation_id="verifyRegistration",
    summary="Verify the sign-up OTP and create the account",
)
@limiter.limit(AUTH)
async def verify_registration(
    request: Request, body: OtpVerifyRequest, auth: AuthServiceDep
) -> MessageResponse:
    await auth.verify_registration(body.email, body.otp)
    return MessageResponse(message="User registered successfully")


# ── Sessions ───────────────────────────────────────────────────────────────


@router.post(
    "/login",
    response_model=LoginResponse,
    operation_id="login",
    summary="Log in with email and password",
)
@limiter.limit(AUTH)
async def login(
    request: Request, body: LoginRequest, response: Response, auth: AuthServiceDep
) -> LoginResponse:
    """
    Return a short-lived access token and set the refresh token as an
    HTTP-only cookie.
    """
    user, access, refresh = await auth.login(body.email, body.password)
    _set_refresh_cookie(response, refresh)
    return LoginResponse(message="login successful", user=user.public(), token=access)


@router.get(
    "/refresh",
    response_model=TokenResponse,
    operation_id="refreshToken",
    summary="Exchange the refresh cookie for a new access token",
)
async def refresh_token(
    response: Response, auth: AuthServiceDep, refresh_cookie: RefreshCookie = None
) -> TokenResponse:
    token = _require_refresh_cookie(refresh_cookie)
    access, refresh = await auth.refresh(token)
    _set_refresh_cookie(response, refresh)
    return TokenResponse(token=access)


@router.post(
    "/logout",
    response_model=MessageResponse,
    operation_id="logout",
    summary="Revoke the refresh token and clear its cookie",
)
async def logout(
    response: Response, auth: AuthServiceDep, refresh_cookie: RefreshCookie = None
) -> MessageResponse:
    token = _require_refresh_cookie(refresh_cookie)
    await auth.logout(token)
    response.delete_cookie(REFRESH_COOKIE)
    return MessageResponse(message="Logged out successfully!")


@router.get(
    "/me",
    response_model=MeResponse,
    operation_id="getMe",
    summary="Get current authenticated user info",
)
async def get_me(current_user: CurrentUser) -> MeResponse:
    return MeResponse(data=current_user.public())


# ── Password reset ─────────────────────────────────────────────────────────


@router.post(
    "/forgot-password",
    response_model=MessageResponse,
    operation_id="forgotPassword",
    summary="Email a password-reset OTP",
)
@limiter.limit(STRICT)
async def forgot_password(request: Request, body: EmailRequest, auth: AuthServiceDep) -> MessageResponse:
    await auth.forgot_password(body.email)
    logger.info("Password reset OTP requested")
    return MessageResponse(message="Password reset OTP sent!, check you email")


@router.post(
    "/verify-forgot-password",
    response_model=PasswordResetTokenResponse,
    operation_id="verifyForgotPassword",
    summary="Verify the password-reset OTP",
)
@limiter.limit(AUTH)
async def verify_forgot_password(
    request: Request, body: OtpVerifyRequest, auth: AuthServiceDep
) -> PasswordResetTokenResponse:
    """Return a token to authorise the follow-up /reset-password call."""
    token = await auth.verify_forgot_password(body.email, body.otp)
    return PasswordResetTokenResponse(message="OTP code verified", password_reset_token=token)


@router.post(
    "/reset-password",
    response_model=MessageResponse,
    status_code=status.HTTP_201_CREATED,
    operation_id="resetPassword",
    summary="Set a new password (Bearer password-reset token)",
)
async def reset_password(
    body: SetPasswordRequest, current_user: CurrentUser, auth: AuthServiceDep
) -> MessageResponse:
    await auth.set_new_password(current_user.id, body.email, body.password)
    return MessageResponse(message="Password set successfully")
