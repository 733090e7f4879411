"""
Email verification tokens.

A fresh account gets a random 256-bit token; the raw value only travels in
the verification link while the account row keeps its SHA-256 digest.
Tokens are single use and do not expire.
"""

from profrate.core.exceptions import EmailNotVerifiedError, InvalidTokenError
from profrate.core.logging_config import logger
from profrate.core.security import generate_token, hash_token
from profrate.models.user import User, UserRole
from profrate.modules.auth.repository import UserRepository


class VerificationTokenFlow:

    def __init__(self, repository: UserRepository):
        self.repository = repository

    @staticmethod
    def issue_verification_token(user: User) -> str:
        """Mark the account unverified and attach a new token; returns the raw token"""
        token = generate_token(32)
        user.verification_token_hash = hash_token(token)
        user.email_verified = False
        return token

    async def verify(self, token: str) -> User:
        if not token:
            raise InvalidTokenError("Invalid or expired verification token")

        user = await self.repository.get_by_verification_hash(hash_token(token))
        if not user:
            raise InvalidTokenError("Invalid or expired verification token")

        user.email_verified = True
        user.verification_token_hash = None
        await self.repository.commit()

        logger.log_auth_event(event="email_verified", success=True, username=user.username)
        return user

    async def reissue(self, user: User) -> str:
        """New token for an account that is still unverified"""
        token = self.issue_verification_token(user)
        await self.repository.commit()
        return token

    @staticmethod
    def ensure_login_allowed(user: User) -> None:
        # Administrators are provisioned out of band and may skip verification
        if user.role == UserRole.ADMIN:
            return
        if not user.email_verified:
            raise EmailNotVerifiedError()
