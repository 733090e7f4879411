"""Periodic purge of expired sessions, CSRF tokens and login-attempt records."""

import asyncio
from typing import Dict, Optional

from profrate.core.config import settings
from profrate.core.logging_config import logger
from profrate.core.state_store import StateStore
from profrate.modules.auth.csrf import csrf_token_store
from profrate.modules.auth.login_attempts import login_attempt_tracker
from profrate.modules.auth.sessions import session_manager


class StateSweeper:

    def __init__(self, stores: Dict[str, StateStore], interval_seconds: int):
        self.stores = stores
        self.interval_seconds = interval_seconds
        self._task: Optional[asyncio.Task] = None

    async def sweep_once(self) -> int:
        removed = 0
        for name, store in self.stores.items():
            count = await store.sweep()
            if count:
                logger.debug(f"[StateSweeper] Purged {count} expired {name} entries")
            removed += count
        return removed

    async def start(self) -> None:
        async def sweep_loop():
            while True:
                await asyncio.sleep(self.interval_seconds)
                try:
                    await self.sweep_once()
                except Exception as e:
                    logger.error(f"[StateSweeper] Sweep failed: {e}", exc_info=True)

        self._task = asyncio.create_task(sweep_loop())
        logger.info(f"Started state sweeper (every {self.interval_seconds}s)")

    async def stop(self) -> None:
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None


state_sweeper = StateSweeper(
    {
        "csrf": csrf_token_store.store,
        "session": session_manager.store,
        "login_attempt": login_attempt_tracker.store,
    },
    interval_seconds=settings.STATE_SWEEP_INTERVAL_SECONDS,
)
