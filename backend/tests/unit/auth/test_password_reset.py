"""
Unit Tests for the password reset workflow
"""
from datetime import datetime, timedelta

import pytest

from profrate.core.exceptions import ExpiredTokenError, InvalidInputError, InvalidTokenError, WeakPasswordError
from profrate.core.security import CredentialHasher, hash_token
from profrate.modules.auth.password_reset import PasswordResetFlow
from profrate.modules.auth.repository import UserRepository


class ManualNow:
    def __init__(self):
        self.value = datetime(2026, 1, 1, 12, 0, 0)

    def __call__(self) -> datetime:
        return self.value


@pytest.fixture
def now():
    return ManualNow()


@pytest.fixture
def hasher():
    return CredentialHasher(rounds=4)


@pytest.fixture
def flow(db_session, hasher, now):
    return PasswordResetFlow(UserRepository(db_session), hasher=hasher, ttl_seconds=86400, now=now)


class TestRequestReset:

    @pytest.mark.asyncio
    async def test_unknown_email_returns_none(self, flow):
        assert await flow.request_reset("nobody@example.com") is None

    @pytest.mark.asyncio
    async def test_known_email_issues_token(self, flow, make_user, now):
        user = await make_user(username="carol", email="carol@example.com")

        issued = await flow.request_reset("Carol@Example.com")

        assert issued is not None
        account, token = issued
        assert account.id == user.id
        assert account.reset_token_hash == hash_token(token)
        assert account.reset_token_expires == now.value + timedelta(hours=24)

    @pytest.mark.asyncio
    async def test_new_request_overwrites_pending_token(self, flow, make_user):
        await make_user(username="carol", email="carol@example.com")
        _, first = await flow.request_reset("carol@example.com")
        _, second = await flow.request_reset("carol@example.com")

        with pytest.raises(InvalidTokenError):
            await flow.consume_reset(first, "NewPassw0rd!")
        assert await flow.consume_reset(second, "NewPassw0rd!")


class TestConsumeReset:

    @pytest.mark.asyncio
    async def test_replaces_hash_and_clears_token(self, flow, make_user, hasher):
        await make_user(username="carol", email="carol@example.com", password="OldPassw0rd!")
        _, token = await flow.request_reset("carol@example.com")

        user = await flow.consume_reset(token, "NewPassw0rd!")

        assert user.reset_token_hash is None
        assert user.reset_token_expires is None
        assert hasher.verify_sync("NewPassw0rd!", user.hashed_password) is True
        assert hasher.verify_sync("OldPassw0rd!", user.hashed_password) is False

    @pytest.mark.asyncio
    async def test_token_cannot_be_reused(self, flow, make_user):
        await make_user(username="carol", email="carol@example.com")
        _, token = await flow.request_reset("carol@example.com")
        await flow.consume_reset(token, "NewPassw0rd!")

        with pytest.raises(InvalidTokenError):
            await flow.consume_reset(token, "Another0ne!!")

    @pytest.mark.asyncio
    async def test_unknown_token(self, flow):
        with pytest.raises(InvalidTokenError):
            await flow.consume_reset("ab" * 32, "NewPassw0rd!")

    @pytest.mark.asyncio
    async def test_expired_token_cleared(self, flow, make_user, now):
        await make_user(username="carol", email="carol@example.com")
        account, token = await flow.request_reset("carol@example.com")
        now.value += timedelta(hours=24, seconds=1)

        with pytest.raises(ExpiredTokenError):
            await flow.consume_reset(token, "NewPassw0rd!")

        assert account.reset_token_hash is None
        with pytest.raises(InvalidTokenError):
            await flow.consume_reset(token, "NewPassw0rd!")

    @pytest.mark.asyncio
    async def test_bad_password_keeps_token(self, flow, make_user):
        """Test a rejected new password does not burn the token"""
        await make_user(username="carol", email="carol@example.com")
        _, token = await flow.request_reset("carol@example.com")

        with pytest.raises(InvalidInputError):
            await flow.consume_reset(token, "short")

        assert await flow.consume_reset(token, "LongEnough1!")

    @pytest.mark.asyncio
    async def test_weak_password_rejected_and_token_kept(self, flow, make_user):
        """Test reset applies the same strength policy as registration"""
        await make_user(username="carol", email="carol@example.com")
        _, token = await flow.request_reset("carol@example.com")

        with pytest.raises(WeakPasswordError) as exc_info:
            await flow.consume_reset(token, "aaaaaaaa")

        assert exc_info.value.details["feedback"]
        assert await flow.consume_reset(token, "LongEnough1!")


class TestInvalidate:

    @pytest.mark.asyncio
    async def test_invalidate_clears_pending_reset(self, flow, make_user):
        await make_user(username="carol", email="carol@example.com")
        account, token = await flow.request_reset("carol@example.com")

        await flow.invalidate(account)

        assert account.has_pending_reset is False
        with pytest.raises(InvalidTokenError):
            await flow.consume_reset(token, "NewPassw0rd!")
