"""
Per-session anti-forgery tokens.

One live token per session id. Tokens are 256-bit hex strings compared as
bytes in constant time. Expired, malformed or mismatching submissions drop
the stored token so the client has to fetch a fresh one.
"""

import time
from typing import Optional

from profrate.core.config import settings
from profrate.core.logging_config import logger
from profrate.core.security import constant_time_hex_equals, generate_token
from profrate.core.state_store import Clock, KeyedLocks, StateStore, build_state_store

SAFE_METHODS = frozenset({"GET", "HEAD", "OPTIONS"})


class CsrfTokenStore:

    def __init__(
        self,
        store: Optional[StateStore] = None,
        ttl_seconds: int = settings.CSRF_TOKEN_TTL_SECONDS,
        single_use: bool = settings.CSRF_SINGLE_USE,
        clock: Clock = time.time,
    ):
        self.store = store or build_state_store("csrf")
        self.ttl_seconds = ttl_seconds
        self.single_use = single_use
        self.clock = clock
        self._locks = KeyedLocks()

    async def issue(self, session_id: str) -> str:
        """Create a token for the session, replacing any previous one"""
        token = generate_token(32)
        expires_at = self.clock() + self.ttl_seconds
        async with self._locks(session_id):
            await self.store.set(
                session_id,
                {"token": token, "expires_at": expires_at},
                ttl=self.ttl_seconds,
            )
        return token

    async def validate(self, session_id: Optional[str], supplied: Optional[str]) -> bool:
        if not session_id or not supplied:
            return False

        async with self._locks(session_id):
            record = await self.store.get(session_id)
            if not record:
                return False

            if self.clock() > record["expires_at"]:
                await self.store.delete(session_id)
                logger.info("[CSRF] Expired token rejected")
                return False

            if not constant_time_hex_equals(record["token"], supplied):
                await self.store.delete(session_id)
                return False

            if self.single_use:
                await self.store.delete(session_id)
            return True

    async def revoke(self, session_id: str) -> None:
        async with self._locks(session_id):
            await self.store.delete(session_id)

    async def sweep(self) -> int:
        return await self.store.sweep()


# Process-wide token store
csrf_token_store = CsrfTokenStore()
