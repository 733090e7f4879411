"""
Forgotten-password workflow.

request_reset() attaches a single-use token with an absolute expiry to the
account; consume_reset() swaps in the new password hash and clears the
token. An unknown email is not an error: the caller answers every request
with the same message.
"""

from datetime import datetime, timedelta
from typing import Callable, Optional, Tuple

from profrate.core.config import settings
from profrate.core.exceptions import ExpiredTokenError, InvalidTokenError
from profrate.core.logging_config import logger
from profrate.core.security import CredentialHasher, credential_hasher, generate_token, hash_token
from profrate.models.user import User
from profrate.modules.auth.repository import UserRepository
from profrate.modules.auth.validators import enforce_password_policy, normalize_email


class PasswordResetFlow:

    def __init__(
        self,
        repository: UserRepository,
        hasher: CredentialHasher = credential_hasher,
        ttl_seconds: int = settings.RESET_TOKEN_TTL_SECONDS,
        now: Callable[[], datetime] = datetime.utcnow,
    ):
        self.repository = repository
        self.hasher = hasher
        self.ttl_seconds = ttl_seconds
        self.now = now

    async def request_reset(self, email: str) -> Optional[Tuple[User, str]]:
        """Returns (user, raw token), or None when no account uses the email"""
        user = await self.repository.get_by_email(normalize_email(email))
        if not user:
            logger.info("[Auth] Password reset requested for unknown email")
            return None

        token = generate_token(32)
        user.reset_token_hash = hash_token(token)
        user.reset_token_expires = self.now() + timedelta(seconds=self.ttl_seconds)
        await self.repository.commit()

        logger.log_auth_event(event="password_reset_requested", success=True, username=user.username)
        return user, token

    async def consume_reset(self, token: str, new_password: str) -> User:
        if not token:
            raise InvalidTokenError("Invalid or expired reset token")

        user = await self.repository.get_by_reset_hash(hash_token(token))
        if not user:
            raise InvalidTokenError("Invalid or expired reset token")

        if user.reset_token_expires is None or self.now() > user.reset_token_expires:
            await self.invalidate(user)
            logger.log_auth_event(
                event="password_reset", success=False, username=user.username, reason="Token expired"
            )
            raise ExpiredTokenError("Reset token has expired. Please request a new one.")

        # A rejected password leaves the token usable for another try
        enforce_password_policy(new_password, self.hasher)
        user.hashed_password = await self.hasher.hash_password(new_password)
        user.reset_token_hash = None
        user.reset_token_expires = None
        await self.repository.commit()

        logger.log_auth_event(event="password_reset", success=True, username=user.username)
        return user

    async def invalidate(self, user: User) -> None:
        user.reset_token_hash = None
        user.reset_token_expires = None
        await self.repository.commit()
