"""SMTP delivery of verification emails."""

from __future__ import annotations

import smtplib
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional

from loguru import logger

from .config import Settings
from .log import redact_email


class EmailSender:
    """Sends verification emails over SMTP; logs and skips when SMTP is not configured."""

    def __init__(
        self,
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
        from_email: Optional[str] = None,
        frontend_url: str = "http://localhost:3000",
        verification_ttl_seconds: int = 3600,
    ):
        self._smtp_host = smtp_host
        self._smtp_port = smtp_port
        self._smtp_user = smtp_user
        self._smtp_password = smtp_password
        self._from_email = from_email or smtp_user
        self._frontend_url = frontend_url.rstrip("/")
        self._ttl_minutes = max(1, verification_ttl_seconds // 60)

    @classmethod
    def from_settings(cls, settings: Settings) -> "EmailSender":
        return cls(
            smtp_host=settings.smtp_host,
            smtp_port=settings.smtp_port,
            smtp_user=settings.smtp_user,
            smtp_password=settings.smtp_password,
            from_email=settings.email_from,
            frontend_url=settings.frontend_url,
            verification_ttl_seconds=settings.email_verification_ttl_seconds,
        )

    @property
    def is_configured(self) -> bool:
        return bool(self._smtp_host and self._smtp_user and self._smtp_password and self._from_email)

    def verification_url(self, token: str) -> str:
        return f"{self._frontend_url}/verify-email?token={token}"

    def build_verification_message(self, to: str, token: str) -> MIMEMultipart:
        url = self.verification_url(token)

        msg = MIMEMultipart("alternative")
        msg["Subject"] = "Verify your email address"
        msg["From"] = self._from_email or ""
        msg["To"] = to

        text = f"""Welcome! Please verify your email address by visiting:

{url}

This link will expire in {self._ttl_minutes} minutes.

If you didn't create an account, you can safely ignore this email.
"""

        html = f"""
<!DOCTYPE html>
<html>
<head>
    <style>
        body {{ font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', Roboto, sans-serif; }}
        .container {{ max-width: 480px; margin: 40px auto; padding: 20px; }}
        .button {{ display: inline-block; padding: 12px 24px; background: #111827;
                   color: #ffffff; text-decoration: none; border-radius: 8px; }}
        .footer {{ color: #666; font-size: 12px; margin-top: 30px; }}
    </style>
</head>
<body>
    <div class="container">
        <h2>Verify your email</h2>
        <p>Click the button below to verify your email address:</p>
        <p><a class="button" href="{url}">Verify email</a></p>
        <p>This link will expire in {self._ttl_minutes} minutes.</p>
        <p class="footer">If you didn't create an account, you can safely ignore this email.</p>
    </div>
</body>
</html>
"""

        msg.attach(MIMEText(text, "plain"))
        msg.attach(MIMEText(html, "html"))
        return msg

    def send_verification_email(self, to: str, token: str) -> bool:
        """Returns False when SMTP is not configured; raises on delivery failure."""
        if not self.is_configured:
            logger.warning("SMTP not configured, skipping verification email to {}", redact_email(to))
            return False

        msg = self.build_verification_message(to, token)
        with smtplib.SMTP(self._smtp_host, self._smtp_port) as server:
            server.starttls()
            server.login(self._smtp_user, self._smtp_password)
            server.sendmail(self._from_email, to, msg.as_string())

        logger.info("Verification email sent to {}", redact_email(to))
        return True
