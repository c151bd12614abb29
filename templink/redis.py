import logging
from typing import Optional

import redis.asyncio as redis

logger = logging.getLogger(__name__)


class RedisClient:
    def __init__(self):
        self.client: Optional[redis.Redis] = None

    async def connect(self, url: Optional[str]) -> None:
        if not url:
            logger.info("REDIS_URL not set; rate limiting disabled")
            return
        client = redis.from_url(url, encoding="utf-8", decode_responses=True)
        try:
            await client.ping()
        except redis.RedisError as e:
            logger.error(f"Redis unavailable, continuing without it: {e}")
            await client.aclose()
            return
        self.client = client

    async def close(self) -> None:
        if self.client:
            await self.client.aclose()
            self.client = None

    async def incr_window(self, key: str, window: int) -> Optional[int]:
        """Increments a counter that lives for one window. None when Redis is absent."""
        if not self.client:
            return None
        count = await self.client.incr(key)
        if count == 1:
            await self.client.expire(key, window)
        return count


redis_client = RedisClient()
