"""
Email service — sends transactional emails via SMTP.

In development (no SMTP configured), emails are logged to the console
so you can see what *would* be sent without configuring a mail server.

``send_email`` never raises on delivery problems: it logs and returns
False so callers that only want a best-effort notification keep going.
Callers that depend on delivery (OTP issuance) check the return value.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import formataddr
from typing import Any

import aiosmtplib

from app.config import (
    SMTP_FROM_EMAIL,
    SMTP_FROM_NAME,
    SMTP_HOST,
    SMTP_PASSWORD,
    SMTP_PORT,
    SMTP_USE_TLS,
    SMTP_USERNAME,
    smtp_enabled,
)

logger = logging.getLogger(__name__)


def mask_email(email: str) -> str:
    """``jane.doe@example.com`` -> ``ja***@example.com`` for log lines."""
    local, _, domain = email.partition("@")
    return f"{local[:2]}***@{domain}"


# ── Templates ─────────────────────────────────────────────────────────────


def _layout(title: str, body: str) -> str:
    return f"""
    <html>
    <body style="font-family:sans-serif;color:#333">
      <h2>{title}</h2>
      {body}
      <p style="margin-top:1em;font-size:0.9em;color:#888">
        If you didn't request this, you can safely ignore this email.
      </p>
    </body>
    </html>
    """


def _code_block(otp: Any) -> str:
    return (
        '<p style="font-size:1.6em;font-weight:bold;letter-spacing:0.2em">'
        f"{otp}</p>"
    )


def _user_activation_mail(data: dict[str, Any]) -> tuple[str, str]:
    name, otp = data["name"], data["otp"]
    html = _layout(
        "Welcome to Learnverse",
        f"<p>Hi {name},</p>"
        "<p>Use the code below to verify your email address. "
        "It expires in 5 minutes.</p>"
        f"{_code_block(otp)}",
    )
    plain = f"Hi {name},\n\nYour Learnverse verification code is {otp}. It expires in 5 minutes."
    return html, plain


def _forgot_password_mail(data: dict[str, Any]) -> tuple[str, str]:
    name, otp = data["name"], data["otp"]
    html = _layout(
        "Reset your password",
        f"<p>Hi {name},</p>"
        "<p>Use the code below to reset your password. "
        "It expires in 15 minutes.</p>"
        f"{_code_block(otp)}",
    )
    plain = f"Hi {name},\n\nYour Learnverse password reset code is {otp}. It expires in 15 minutes."
    return html, plain


TEMPLATES: dict[str, Callable[[dict[str, Any]], tuple[str, str]]] = {
    "user-activation-mail": _user_activation_mail,
    "forgot-password-mail": _forgot_password_mail,
}


def render_template(template_name: str, data: dict[str, Any]) -> tuple[str, str]:
    """Render ``(html, plain)`` bodies. Unknown template names raise KeyError."""
    return TEMPLATES[template_name](data)


# ── Sending ───────────────────────────────────────────────────────────────


async def send_email(
    to_email: str,
    subject: str,
    template_name: str,
    data: dict[str, Any],
) -> bool:
    """
    Render a template and send (or log) it.

    Returns True when the message was handed to the SMTP server (or
    logged in dev mode), False if sending failed.
    """
    html_body, plain_body = render_template(template_name, data)

    # ── Console fallback (dev mode) ───────────────────────────────────
    if not smtp_enabled():
        logger.info(
            "📧 [DEV] Would send email to %s:\n"
            "  Subject: %s\n"
            "  Template: %s\n"
            "%s",
            to_email,
            subject,
            template_name,
            plain_body,
        )
        return True

    # ── Real SMTP send ────────────────────────────────────────────────
    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = formataddr((SMTP_FROM_NAME, SMTP_FROM_EMAIL))
    msg["To"] = to_email
    msg.attach(MIMEText(plain_body, "plain"))
    msg.attach(MIMEText(html_body, "html"))

    try:
        await aiosmtplib.send(
            msg,
            hostname=SMTP_HOST,
            port=SMTP_PORT,
            username=SMTP_USERNAME,
            password=SMTP_PASSWORD,
            start_tls=SMTP_USE_TLS,
        )
    except Exception:
        logger.exception("Failed to send %s email to %s", template_name, mask_email(to_email))
        return False

    logger.info("Email sent to %s (%s)", mask_email(to_email), template_name)
    return True
