"""
Rate Limiter Service using Redis sorted sets (sliding window).

Instances are created at startup and injected; state lives in Redis so every
API instance shares one budget, and keys expire after an idle window.
"""
import time
import uuid
from typing import Callable

import structlog

logger = structlog.get_logger()


class RateLimiter:
    """Per-key sliding-window rate limiter using Redis sorted sets."""

    def __init__(
        self,
        redis,
        limit: int,
        window: int,
        prefix: str = "ratelimit",
        clock: Callable[[], float] = time.time,
    ):
        self.redis = redis
        self.limit = limit  # requests per window
        self.window = window  # seconds
        self.prefix = prefix
        self.clock = clock

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    async def is_allowed(self, key: str) -> tuple[bool, int]:
        """
        Check if a request is allowed for the key, recording it if so.

        Returns:
            (allowed: bool, retry_after: int)
        """
        redis_key = self._key(key)
        now = self.clock()
        window_start = now - self.window

        try:
            pipe = self.redis.pipeline()
            pipe.zremrangebyscore(redis_key, 0, window_start)
            pipe.zcard(redis_key)
            results = await pipe.execute()

            request_count = results[1]

            if request_count >= self.limit:
                oldest = await self.redis.zrange(redis_key, 0, 0, withscores=True)
                if oldest:
                    retry_after = int(self.window - (now - oldest[0][1]))
                else:
                    retry_after = self.window
                return False, max(retry_after, 1)

            await self.redis.zadd(redis_key, {f"{now}:{uuid.uuid4().hex}": now})
            await self.redis.expire(redis_key, self.window)

            return True, 0

        except Exception as e:
            # Redis down: fail open rather than block operators
            logger.warning("rate_limiter_unavailable", key=redis_key, error=str(e))
            return True, 0

    async def get_current_count(self, key: str) -> int:
        """Get current request count for the key."""
        redis_key = self._key(key)
        window_start = self.clock() - self.window

        try:
            await self.redis.zremrangebyscore(redis_key, 0, window_start)
            return await self.redis.zcard(redis_key)
        except Exception as e:
            logger.warning("rate_limiter_unavailable", key=redis_key, error=str(e))
            return 0
