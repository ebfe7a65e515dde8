"""
Email service for the welcome email sent after signup.

Supports SMTP, Resend API, and console logging modes. Delivery is
best-effort: every failure is logged and reported in the returned dict,
never raised.
"""

import logging
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from html import escape
from typing import Optional

import httpx
import aiosmtplib

logger = logging.getLogger(__name__)

RESEND_API_URL = "https://api.resend.com/emails"
EMAIL_MODES = ("console", "smtp", "resend")


class EmailService:
    """
    Email service with multi-mode support.

    Modes:
        - console: Log emails to console (development)
        - smtp: Send via SMTP
        - resend: Send via Resend HTTP API
    """

    def __init__(
        self,
        mode: str = "console",
        resend_api_key: Optional[str] = None,
        from_email: str = "noreply@example.com",
        from_name: str = "Identity Service",
        app_url: str = "http://localhost:3000",
        smtp_host: Optional[str] = None,
        smtp_port: int = 465,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
    ):
        self._mode = (mode or "console").lower()
        self._resend_api_key = resend_api_key
        self._from_email = from_email
        self._from_name = from_name
        self._app_url = app_url.rstrip("/")
        self._smtp_host = smtp_host
        self._smtp_port = smtp_port
        self._smtp_user = smtp_user
        self._smtp_password = smtp_password

        # Fall back to console when the chosen transport is not configured
        if self._mode == "resend" and not self._resend_api_key:
            logger.warning("Resend API key not configured, falling back to console mode")
            self._mode = "console"
        elif self._mode == "smtp" and not self._smtp_host:
            logger.warning("SMTP host not configured, falling back to console mode")
            self._mode = "console"
        elif self._mode not in EMAIL_MODES:
            logger.warning(f"Unknown email mode {self._mode!r}, falling back to console mode")
            self._mode = "console"

        logger.info(f"Email service initialized in {self._mode} mode")

    @classmethod
    def from_settings(cls, settings) -> "EmailService":
        return cls(
            mode=settings.EMAIL_MODE,
            resend_api_key=settings.RESEND_API_KEY,
            from_email=settings.SMTP_FROM_EMAIL,
            from_name=settings.SMTP_FROM_NAME,
            app_url=settings.APP_URL,
            smtp_host=settings.SMTP_HOST,
            smtp_port=settings.SMTP_PORT,
            smtp_user=settings.SMTP_USER,
            smtp_password=settings.SMTP_PASSWORD,
        )

    @property
    def mode(self) -> str:
        return self._mode

    async def send_welcome_email(self, to_email: str, name: Optional[str] = None) -> dict:
        """
        Send the welcome email for a new account.

        Args:
            to_email: Recipient email address
            name: Recipient first name (optional)

        Returns:
            dict with success status and details
        """
        display_name = name or "there"
        subject = f"Welcome to {self._from_name}"

        text = (
            f"Hi {display_name},\n\n"
            f"Your account has been created. You can sign in at {self._app_url}.\n\n"
            f"- {self._from_name}"
        )
        html = f"""
<!DOCTYPE html>
<html>
<body style="font-family: Arial, Helvetica, sans-serif; color: #333333;">
    <p>Hi {escape(display_name)},</p>
    <p>Your account has been created. You can sign in at
       <a href="{escape(self._app_url)}">{escape(self._app_url)}</a>.</p>
    <p>- {escape(self._from_name)}</p>
</body>
</html>
"""
        return await self._send(to_email, subject, html, text)

    async def _send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str,
    ) -> dict:
        """Send email via configured provider."""
        if self._mode == "console":
            return self._send_console(to, subject, html, text)
        elif self._mode == "smtp":
            return await self._send_smtp(to, subject, html, text)
        elif self._mode == "resend":
            return await self._send_resend(to, subject, html, text)
        else:
            logger.error(f"Unknown email mode: {self._mode}")
            return {"success": False, "error": f"Unknown email mode: {self._mode}"}

    def _send_console(
        self,
        to: str,
        subject: str,
        html: str,
        text: str,
    ) -> dict:
        """Log email to console (development mode)."""
        logger.info("=" * 60)
        logger.info("EMAIL (console mode)")
        logger.info(f"To: {to}")
        logger.info(f"Subject: {subject}")
        logger.info("-" * 60)
        logger.info(text)
        logger.info("=" * 60)

        return {
            "success": True,
            "mode": "console",
            "message": "Email logged to console",
        }

    async def _send_smtp(
        self,
        to: str,
        subject: str,
        html: str,
        text: str,
    ) -> dict:
        """Send email via SMTP."""
        try:
            message = MIMEMultipart("alternative")
            message["Subject"] = subject
            message["From"] = f"{self._from_name} <{self._from_email}>"
            message["To"] = to
            message.attach(MIMEText(text, "plain"))
            message.attach(MIMEText(html, "html"))

            # Port 465 is implicit TLS; anything else upgrades with STARTTLS
            use_tls = self._smtp_port == 465

            await aiosmtplib.send(
                message,
                hostname=self._smtp_host,
                port=self._smtp_port,
                username=self._smtp_user,
                password=self._smtp_password,
                use_tls=use_tls,
                start_tls=not use_tls,
            )

            logger.info(f"Welcome email sent via SMTP to {to}")
            return {"success": True, "mode": "smtp", "message": "Email sent via SMTP"}

        except Exception as e:
            logger.error(f"Failed to send email via SMTP: {e}")
            return {"success": False, "error": str(e)}

    async def _send_resend(
        self,
        to: str,
        subject: str,
        html: str,
        text: str,
    ) -> dict:
        """Send email via Resend API."""
        async with httpx.AsyncClient() as client:
            try:
                response = await client.post(
                    RESEND_API_URL,
                    headers={
                        "Authorization": f"Bearer {self._resend_api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "from": f"{self._from_name} <{self._from_email}>",
                        "to": [to],
                        "subject": subject,
                        "html": html,
                        "text": text,
                    },
                )

                if response.status_code == 200:
                    data = response.json()
                    return {"success": True, "mode": "resend", "messageId": data.get("id")}

                error_msg = response.json().get("message", "Unknown error")
                logger.error(f"Resend API error: {error_msg}")
                return {"success": False, "error": error_msg}

            except Exception as e:
                logger.error(f"Failed to send email via Resend: {e}")
                return {"success": False, "error": str(e)}
