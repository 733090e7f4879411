import redis.asyncio as aioredis
from redis.asyncio import Redis
from typing import Optional

from profrate.core.config import settings
from profrate.core.logging_config import logger


class RedisClient:
    """Redis client for shared ephemeral auth state"""

    def __init__(self):
        self.redis: Optional[Redis] = None

    @property
    def is_connected(self) -> bool:
        return self.redis is not None

    async def connect(self):
        """Connect to Redis"""
        try:
            self.redis = aioredis.from_url(
                settings.REDIS_URL,
                encoding="utf-8",
                decode_responses=True
            )
            await self.redis.ping()
            logger.info("Redis connected successfully")
        except Exception as e:
            logger.error(f"Redis connection error: {e}")
            self.redis = None
            raise

    async def disconnect(self):
        """Disconnect from Redis"""
        if self.redis:
            await self.redis.aclose()
            self.redis = None
        logger.info("Redis disconnected")

    async def get(self, key: str) -> Optional[str]:
        """Get value from Redis"""
        return await self.redis.get(key)

    async def set(
        self,
        key: str,
        value: str,
        expire: Optional[int] = None
    ) -> bool:
        """Set value in Redis"""
        if expire:
            return await self.redis.setex(key, expire, value)
        return await self.redis.set(key, value)

    async def delete(self, *keys: str) -> bool:
        """Delete keys from Redis"""
        if not keys:
            return False
        return await self.redis.delete(*keys) > 0

    async def scan_keys(self, pattern: str) -> list:
        """Collect keys matching a pattern without blocking the server"""
        return [key async for key in self.redis.scan_iter(match=pattern)]


# Create Redis client instance
redis_client = RedisClient()
