"""
Brute-force lockout tracking.

Failures are counted per (username, client IP). Once LOCKOUT_THRESHOLD
failures fall inside the trailing LOCKOUT_WINDOW_SECONDS the key is locked;
it unlocks by itself as soon as the oldest of those failures ages out. A
successful login for the key wipes its history.

A login reserves its attempt with begin_attempt() before the password is
checked. Reservations still in flight count against the threshold, so
concurrent guesses cannot all slip past the lock before any of them fails.
"""

import math
import time
from collections import defaultdict
from typing import Dict, List, Optional

from profrate.core.config import settings
from profrate.core.exceptions import LockoutError
from profrate.core.logging_config import logger
from profrate.core.state_store import Clock, KeyedLocks, StateStore, build_state_store


class LoginAttempt:
    """
    One reserved login attempt. Settle it with fail() or succeed(); release()
    gives the slot back when the login ended for another reason.
    """

    def __init__(self, tracker: "LoginAttemptTracker", identity: str, ip: str):
        self.tracker = tracker
        self.identity = identity
        self.ip = ip
        self.settled = False

    async def fail(self) -> int:
        """Turn the reservation into a recorded failure; returns recent failures"""
        self.settled = True
        return await self.tracker._settle(self.identity, self.ip, failed=True)

    async def succeed(self) -> None:
        self.settled = True
        await self.tracker._settle(self.identity, self.ip, failed=False)

    async def release(self) -> None:
        if self.settled:
            return
        self.settled = True
        await self.tracker._release(self.identity, self.ip)


class LoginAttemptTracker:

    def __init__(
        self,
        store: Optional[StateStore] = None,
        threshold: int = settings.LOCKOUT_THRESHOLD,
        window_seconds: int = settings.LOCKOUT_WINDOW_SECONDS,
        history_limit: int = settings.LOCKOUT_HISTORY_LIMIT,
        history_horizon_seconds: int = settings.LOCKOUT_HISTORY_HORIZON_SECONDS,
        clock: Clock = time.time,
    ):
        self.store = store or build_state_store("login_attempts")
        self.threshold = threshold
        self.window_seconds = window_seconds
        self.history_limit = history_limit
        self.history_horizon_seconds = history_horizon_seconds
        self.clock = clock
        self._locks = KeyedLocks()
        # In-flight reservations are per process, like the locks guarding them
        self._pending: Dict[str, int] = defaultdict(int)

    @staticmethod
    def make_key(identity: str, ip: str) -> str:
        return f"{(identity or '').strip().lower()}:{ip or 'unknown'}"

    async def _failures(self, key: str) -> List[float]:
        return list(await self.store.get(key) or [])

    def _recent(self, failures: List[float], now: float) -> List[float]:
        cutoff = now - self.window_seconds
        return [t for t in failures if t > cutoff]

    def _remaining(self, recent: List[float], now: float) -> int:
        if not recent:
            return 0
        remaining = min(recent) + self.window_seconds - now
        return max(0, math.ceil(remaining))

    async def _append_failure(self, key: str) -> int:
        """Caller holds the key lock"""
        now = self.clock()
        failures = await self._failures(key)
        failures.append(now)

        horizon = now - self.history_horizon_seconds
        failures = [t for t in failures if t > horizon][-self.history_limit:]

        await self.store.set(key, failures, ttl=self.history_horizon_seconds)
        return len(self._recent(failures, now))

    def _log_lockout(self, key: str, recent: int) -> None:
        if recent >= self.threshold:
            logger.warning(
                f"[Lockout] {key} locked after {recent} failed attempts",
                extra={"event_type": "lockout", "lockout_key": key, "failures": recent}
            )

    def _drop_pending(self, key: str) -> None:
        self._pending[key] -= 1
        if self._pending[key] <= 0:
            del self._pending[key]

    async def begin_attempt(self, identity: str, ip: str) -> LoginAttempt:
        """
        Reserve a login attempt for the key, or raise LockoutError when
        recorded failures plus attempts already in flight reach the threshold.
        """
        key = self.make_key(identity, ip)
        async with self._locks(key):
            now = self.clock()
            recent = self._recent(await self._failures(key), now)
            pending = self._pending.get(key, 0)

            if len(recent) + pending >= self.threshold:
                # Assume the in-flight attempts fail: the lock would start now
                remaining = self._remaining(recent + [now] * pending, now)
                raise LockoutError(max(1, remaining))

            self._pending[key] += 1
        return LoginAttempt(self, identity, ip)

    async def _settle(self, identity: str, ip: str, failed: bool) -> int:
        key = self.make_key(identity, ip)
        async with self._locks(key):
            self._drop_pending(key)
            if not failed:
                await self.store.delete(key)
                return 0
            recent = await self._append_failure(key)

        self._log_lockout(key, recent)
        return recent

    async def _release(self, identity: str, ip: str) -> None:
        key = self.make_key(identity, ip)
        async with self._locks(key):
            self._drop_pending(key)

    async def record_failure(self, identity: str, ip: str) -> int:
        """Append a failure; returns the number of failures inside the window"""
        key = self.make_key(identity, ip)
        async with self._locks(key):
            recent = await self._append_failure(key)

        self._log_lockout(key, recent)
        return recent

    async def record_success(self, identity: str, ip: str) -> None:
        key = self.make_key(identity, ip)
        async with self._locks(key):
            await self.store.delete(key)

    async def recent_failures(self, identity: str, ip: str) -> int:
        key = self.make_key(identity, ip)
        failures = await self._failures(key)
        return len(self._recent(failures, self.clock()))

    def pending_attempts(self, identity: str, ip: str) -> int:
        return self._pending.get(self.make_key(identity, ip), 0)

    async def is_locked(self, identity: str, ip: str) -> bool:
        return await self.recent_failures(identity, ip) >= self.threshold

    async def remaining_lockout_seconds(self, identity: str, ip: str) -> int:
        """Seconds until the oldest recent failure ages out; 0 when open"""
        key = self.make_key(identity, ip)
        now = self.clock()
        recent = self._recent(await self._failures(key), now)
        if len(recent) < self.threshold:
            return 0
        return self._remaining(recent, now)

    async def check(self, identity: str, ip: str) -> None:
        """Raise LockoutError while the key is locked"""
        remaining = await self.remaining_lockout_seconds(identity, ip)
        if remaining > 0:
            raise LockoutError(remaining)


# Process-wide tracker
login_attempt_tracker = LoginAttemptTracker()
