"""
Server-side sessions.

The browser only holds a signed session id in an HTTP-only cookie; the
record itself ({user_id, role, created_at}) lives in a StateStore. A
session with user_id None is anonymous and exists to carry a CSRF token.
Login never promotes that anonymous id: rotate() issues a new one.
"""

import time
import uuid
from typing import Any, Dict, List, Optional, Tuple

from fastapi import Request, Response

from profrate.core.config import settings
from profrate.core.logging_config import logger
from profrate.core.security import create_session_cookie, decode_session_cookie
from profrate.core.state_store import Clock, KeyedLocks, StateStore, build_state_store
from profrate.models.user import User

# Per-user index of live session ids; never a valid session id itself
USER_INDEX_PREFIX = "user:"


class SessionManager:

    def __init__(
        self,
        store: Optional[StateStore] = None,
        ttl_seconds: int = settings.SESSION_TTL_SECONDS,
        cookie_name: str = settings.SESSION_COOKIE_NAME,
        clock: Clock = time.time,
    ):
        self.store = store or build_state_store("sessions")
        self.ttl_seconds = ttl_seconds
        self.cookie_name = cookie_name
        self.clock = clock
        self._locks = KeyedLocks()

    async def create(self, user: Optional[User] = None) -> str:
        session_id = uuid.uuid4().hex
        await self.store.set(session_id, self._record(user), ttl=self.ttl_seconds)
        if user:
            await self._index_session(str(user.id), session_id)
        return session_id

    def _record(self, user: Optional[User]) -> Dict[str, Any]:
        return {
            "user_id": str(user.id) if user else None,
            "role": user.role.value if user else None,
            "created_at": self.clock(),
        }

    @staticmethod
    def _index_key(user_id: str) -> str:
        return f"{USER_INDEX_PREFIX}{user_id}"

    async def _live(self, session_ids: List[str]) -> List[str]:
        return [sid for sid in session_ids if await self.store.get(sid) is not None]

    async def _index_session(self, user_id: str, session_id: str) -> None:
        key = self._index_key(user_id)
        async with self._locks(key):
            session_ids = await self._live(await self.store.get(key) or [])
            session_ids.append(session_id)
            await self.store.set(key, session_ids, ttl=self.ttl_seconds)

    async def get(self, session_id: Optional[str]) -> Optional[Dict[str, Any]]:
        if not session_id:
            return None
        return await self.store.get(session_id)

    async def rotate(self, previous_session_id: Optional[str], user: User) -> str:
        """New session id for a freshly authenticated user; the previous one is destroyed"""
        session_id = await self.create(user)
        await self.destroy(previous_session_id)
        logger.info(f"[Session] New session issued for {user.username}")
        return session_id

    async def user_sessions(self, user_id: str) -> List[str]:
        return await self._live(await self.store.get(self._index_key(user_id)) or [])

    async def destroy_user_sessions(self, user_id: str, keep: Optional[str] = None) -> List[str]:
        """Destroy every session of the user except `keep`; returns the destroyed ids"""
        key = self._index_key(user_id)
        async with self._locks(key):
            session_ids = await self.store.get(key) or []
            destroyed = [sid for sid in session_ids if sid != keep]
            for sid in destroyed:
                await self.store.delete(sid)

            if keep in session_ids:
                await self.store.set(key, [keep], ttl=self.ttl_seconds)
            else:
                await self.store.delete(key)

        if destroyed:
            logger.info(f"[Session] Revoked {len(destroyed)} session(s) for user {user_id}")
        return destroyed

    async def destroy(self, session_id: Optional[str]) -> None:
        if session_id:
            await self.store.delete(session_id)

    async def sweep(self) -> int:
        return await self.store.sweep()

    # ------------------------------------------------------------------
    # Cookie handling
    # ------------------------------------------------------------------

    def session_id_from_request(self, request: Request) -> Optional[str]:
        return decode_session_cookie(request.cookies.get(self.cookie_name, ""))

    async def resolve(self, request: Request) -> Optional[str]:
        """Session id from the cookie, if the cookie is genuine and still live"""
        session_id = self.session_id_from_request(request)
        if session_id and await self.get(session_id) is not None:
            return session_id
        return None

    async def ensure_session(self, request: Request) -> Tuple[str, bool]:
        """Return (session_id, created); creates an anonymous session when needed"""
        session_id = await self.resolve(request)
        if session_id:
            return session_id, False
        return await self.create(), True

    def set_cookie(self, response: Response, request: Request, session_id: str) -> None:
        secure = settings.SESSION_COOKIE_SECURE or request.url.scheme == "https"
        response.set_cookie(
            key=self.cookie_name,
            value=create_session_cookie(session_id),
            max_age=self.ttl_seconds,
            httponly=True,
            samesite="lax",
            secure=secure,
            path="/",
        )

    def clear_cookie(self, response: Response) -> None:
        response.delete_cookie(key=self.cookie_name, path="/")


# Process-wide session manager
session_manager = SessionManager()
