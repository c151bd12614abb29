import logging
import time

import redis.asyncio as redis
from fastapi import HTTPException, Request

from ..config import settings
from ..observability import RATE_LIMITED_TOTAL
from ..redis import redis_client

logger = logging.getLogger(__name__)


def client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


class RateLimiter:
    """Fixed-window limit per client IP. Allows everything when Redis is down."""

    def __init__(self, requests: int, window: int, key_prefix: str = "api"):
        self.requests = requests
        self.window = window
        self.key_prefix = key_prefix

    async def __call__(self, request: Request):
        current_window = int(time.time() / self.window)
        key = f"rate:{self.key_prefix}:{client_ip(request)}:{current_window}"

        try:
            count = await redis_client.incr_window(key, self.window)
        except redis.RedisError as e:
            logger.error(f"Rate limiter error: {e}")
            return

        if count is not None and count > self.requests:
            RATE_LIMITED_TOTAL.inc()
            raise HTTPException(status_code=429, detail="Too many requests, please try again later.")


api_rate_limit = RateLimiter(requests=settings.RATE_LIMIT_REQUESTS, window=settings.RATE_LIMIT_WINDOW_SECONDS)
