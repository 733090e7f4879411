"""
Unit Tests for EmailService
"""
import pytest
from unittest.mock import AsyncMock, patch

import aiosmtplib

from profrate.services.email_service import EmailService


@pytest.fixture
def service():
    svc = EmailService()
    svc.smtp_user = "mailer"
    svc.smtp_password = "secret"
    svc.frontend_url = "https://profrate.test"
    return svc


class TestEmailService:

    @pytest.mark.asyncio
    async def test_unconfigured_skips_send(self):
        svc = EmailService()
        svc.smtp_user = ""

        with patch("profrate.services.email_service.aiosmtplib.send", new_callable=AsyncMock) as send:
            assert await svc.send_email("a@example.com", "Hi", "<p>Hi</p>") is False

        send.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_verification_link(self, service):
        with patch("profrate.services.email_service.aiosmtplib.send", new_callable=AsyncMock) as send:
            ok = await service.send_verification_email("alice@example.com", "alice", "tok123")

        assert ok is True
        message = send.await_args.args[0]
        assert message["To"] == "alice@example.com"
        assert "https://profrate.test/verify-email?token=tok123" in message.as_string()

    @pytest.mark.asyncio
    async def test_reset_link(self, service):
        with patch("profrate.services.email_service.aiosmtplib.send", new_callable=AsyncMock) as send:
            await service.send_password_reset_email("carol@example.com", "carol", "rst456")

        assert "https://profrate.test/reset-password?token=rst456" in send.await_args.args[0].as_string()

    @pytest.mark.asyncio
    async def test_username_reminder(self, service):
        with patch("profrate.services.email_service.aiosmtplib.send", new_callable=AsyncMock) as send:
            await service.send_username_reminder_email("dave@example.com", "dave99")

        assert "dave99" in send.await_args.args[0].as_string()

    @pytest.mark.asyncio
    async def test_smtp_failure_returns_false(self, service):
        failing = AsyncMock(side_effect=aiosmtplib.SMTPConnectError("refused"))
        with patch("profrate.services.email_service.aiosmtplib.send", failing):
            assert await service.send_verification_email("a@example.com", "a", "t") is False
