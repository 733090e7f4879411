"""
Ephemeral state storage for sessions, CSRF tokens and login attempts.

These records are security-relevant caches rather than system-of-record data:
they carry a TTL and may be lost on restart. The memory backend is
process-local; the Redis backend lets several instances share state. Call
sites only see the StateStore interface.
"""

import asyncio
import json
import time
from abc import ABC, abstractmethod
from collections import defaultdict
from typing import Any, Callable, Dict, Optional, Tuple

from profrate.core.config import settings
from profrate.core.logging_config import logger
from profrate.core.redis_client import RedisClient, redis_client


Clock = Callable[[], float]


class StateStore(ABC):
    """Key/value store with per-entry time-to-live"""

    namespace: str = ""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        ...

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        ...

    @abstractmethod
    async def delete(self, key: str) -> None:
        ...

    @abstractmethod
    async def sweep(self) -> int:
        """Remove expired entries, returning how many were dropped"""

    @abstractmethod
    async def clear(self) -> None:
        ...


class MemoryStateStore(StateStore):
    """In-process dict backend (single instance deployments)"""

    def __init__(self, namespace: str = "", clock: Clock = time.time):
        self.namespace = namespace
        self.clock = clock
        self._data: Dict[str, Tuple[Any, Optional[float]]] = {}

    def __len__(self) -> int:
        return len(self._data)

    async def get(self, key: str) -> Optional[Any]:
        entry = self._data.get(key)
        if entry is None:
            return None
        value, expires_at = entry
        if expires_at is not None and self.clock() >= expires_at:
            del self._data[key]
            return None
        return value

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        expires_at = self.clock() + ttl if ttl else None
        self._data[key] = (value, expires_at)

    async def delete(self, key: str) -> None:
        self._data.pop(key, None)

    async def sweep(self) -> int:
        now = self.clock()
        expired = [
            key for key, (_, expires_at) in self._data.items()
            if expires_at is not None and now >= expires_at
        ]
        for key in expired:
            del self._data[key]
        return len(expired)

    async def clear(self) -> None:
        self._data.clear()


class RedisStateStore(StateStore):
    """Redis backend; values are stored as JSON and expire natively"""

    def __init__(self, namespace: str, client: RedisClient = redis_client):
        self.namespace = namespace
        self.client = client

    def _key(self, key: str) -> str:
        return f"profrate:{self.namespace}:{key}"

    async def get(self, key: str) -> Optional[Any]:
        raw = await self.client.get(self._key(key))
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any, ttl: Optional[int] = None) -> None:
        await self.client.set(self._key(key), json.dumps(value), expire=ttl)

    async def delete(self, key: str) -> None:
        await self.client.delete(self._key(key))

    async def sweep(self) -> int:
        # Redis expires keys on its own
        return 0

    async def clear(self) -> None:
        keys = await self.client.scan_keys(self._key("*"))
        await self.client.delete(*keys)


def build_state_store(namespace: str) -> StateStore:
    """Create the configured backend for a namespace"""
    backend = settings.STATE_BACKEND.lower()
    if backend == "redis":
        return RedisStateStore(namespace)
    if backend != "memory":
        logger.warning(f"[StateStore] Unknown STATE_BACKEND '{settings.STATE_BACKEND}', using memory")
    return MemoryStateStore(namespace)


class KeyedLocks:
    """
    One asyncio.Lock per key, so read-modify-write sequences on the same key
    never interleave across an await on the store.
    """

    def __init__(self):
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._waiters: Dict[str, int] = defaultdict(int)

    def __len__(self) -> int:
        return len(self._locks)

    def __call__(self, key: str) -> "_KeyedLockContext":
        return _KeyedLockContext(self, key)


class _KeyedLockContext:
    def __init__(self, owner: KeyedLocks, key: str):
        self.owner = owner
        self.key = key

    async def __aenter__(self):
        self.owner._waiters[self.key] += 1
        try:
            await self.owner._locks[self.key].acquire()
        except BaseException:
            self._release_waiter()
            raise

    async def __aexit__(self, exc_type, exc, tb):
        self.owner._locks[self.key].release()
        self._release_waiter()

    def _release_waiter(self) -> None:
        self.owner._waiters[self.key] -= 1
        if self.owner._waiters[self.key] == 0:
            # Nobody else holds or waits on this key
            del self.owner._waiters[self.key]
            del self.owner._locks[self.key]
