from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from typing import Optional

from profrate.models.user import User


class UserRepository:
    """All account queries go through here"""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _one(self, *criteria) -> Optional[User]:
        result = await self.db.execute(select(User).where(*criteria))
        return result.scalar_one_or_none()

    async def get_by_id(self, user_id: str) -> Optional[User]:
        return await self._one(User.id == user_id)

    async def get_by_username(self, username: str) -> Optional[User]:
        """Callers pass the normalised (lower-case) username"""
        return await self._one(User.username == username)

    async def get_by_email(self, email: str) -> Optional[User]:
        return await self._one(User.email == email)

    async def get_by_verification_hash(self, token_hash: str) -> Optional[User]:
        return await self._one(User.verification_token_hash == token_hash)

    async def get_by_reset_hash(self, token_hash: str) -> Optional[User]:
        return await self._one(User.reset_token_hash == token_hash)

    async def add(self, user: User) -> User:
        self.db.add(user)
        await self.db.flush()
        return user

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()
