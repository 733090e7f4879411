"""
Email Service for ProfRate
==========================
Outbound account mail over SMTP:
- Email verification on signup
- Password reset links
- Username reminders

Delivery problems are logged and reported as False; they never fail the
request that triggered them.
"""

import aiosmtplib
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from html import escape
from typing import Optional

from profrate.core.config import settings
from profrate.core.logging_config import logger


class EmailService:
    """Async email service using SMTP"""

    def __init__(self):
        self.smtp_host = settings.SMTP_HOST
        self.smtp_port = settings.SMTP_PORT
        self.smtp_user = settings.SMTP_USER
        self.smtp_password = settings.SMTP_PASSWORD
        self.smtp_timeout = settings.SMTP_TIMEOUT
        self.from_email = settings.EMAIL_FROM
        self.from_name = settings.EMAIL_FROM_NAME
        self.frontend_url = settings.FRONTEND_URL.rstrip("/")

    @property
    def is_configured(self) -> bool:
        return bool(self.smtp_user and self.smtp_password)

    async def send_email(
        self,
        to_email: str,
        subject: str,
        html_content: str,
        text_content: Optional[str] = None
    ) -> bool:
        """Send an email; True on success"""
        if not self.is_configured:
            logger.warning(f"[Email] SMTP not configured, skipping '{subject}'")
            return False

        try:
            message = MIMEMultipart("alternative")
            message["From"] = f"{self.from_name} <{self.from_email}>"
            message["To"] = to_email
            message["Subject"] = subject

            if text_content:
                message.attach(MIMEText(text_content, "plain"))
            message.attach(MIMEText(html_content, "html"))

            await aiosmtplib.send(
                message,
                hostname=self.smtp_host,
                port=self.smtp_port,
                username=self.smtp_user,
                password=self.smtp_password,
                start_tls=True,
                timeout=self.smtp_timeout,
            )

            logger.info(f"[Email/SMTP] Sent '{subject}'")
            return True

        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"[Email/SMTP] Failed to send '{subject}': {type(e).__name__}: {e}")
            return False

    @staticmethod
    def _render(greeting_name: str, paragraphs, link: Optional[str] = None, link_label: str = "") -> str:
        body = "".join(f"<p>{p}</p>" for p in paragraphs)
        if link:
            body += (
                f'<p><a href="{escape(link)}">{escape(link_label)}</a></p>'
                f"<p>Button not working? Copy and paste this link:<br>{escape(link)}</p>"
            )
        return f"<html><body><p>Hi {escape(greeting_name)},</p>{body}<p>- The ProfRate Team</p></body></html>"

    async def send_verification_email(self, to_email: str, username: str, verification_token: str) -> bool:
        """Send the email verification link to a new account"""
        link = f"{self.frontend_url}/verify-email?token={verification_token}"
        subject = "Verify your email - ProfRate"

        html_content = self._render(
            username,
            ["Thanks for joining ProfRate! Please verify your email address to start rating."],
            link,
            "Verify Email Address",
        )
        text_content = (
            f"Hi {username},\n\n"
            f"Thanks for joining ProfRate! Verify your email address here:\n\n{link}\n\n"
            "If you didn't sign up for ProfRate, please ignore this email.\n"
        )
        return await self.send_email(to_email, subject, html_content, text_content)

    async def send_password_reset_email(self, to_email: str, username: str, reset_token: str) -> bool:
        link = f"{self.frontend_url}/reset-password?token={reset_token}"
        subject = "Reset your password - ProfRate"

        html_content = self._render(
            username,
            [
                "We received a request to reset your password.",
                "This link will expire in 24 hours. If you didn't request a password reset, "
                "you can safely ignore this email.",
            ],
            link,
            "Reset Password",
        )
        text_content = (
            f"Hi {username},\n\n"
            f"Reset your ProfRate password here:\n\n{link}\n\n"
            "This link will expire in 24 hours.\n"
        )
        return await self.send_email(to_email, subject, html_content, text_content)

    async def send_username_reminder_email(self, to_email: str, username: str) -> bool:
        subject = "Your ProfRate username"

        html_content = self._render(
            username,
            [f"Your ProfRate username is <strong>{escape(username)}</strong>."],
            f"{self.frontend_url}/login",
            "Sign in",
        )
        text_content = f"Hi {username},\n\nYour ProfRate username is: {username}\n"
        return await self.send_email(to_email, subject, html_content, text_content)


# Singleton instance
email_service = EmailService()
