from __future__ import annotations
import logging
import uuid

import redis.asyncio as redis

from ...helpers import now_ts
from ._base import RateLimitResult, ALLOWED, DENIED

logger = logging.getLogger(__name__)


# ---- keys
def k_rl(key: str) -> str: return f"rl:{key}"


class RateLimiter:
    """Sorted-set sliding window: one member per allowed hit, scored by time."""

    def __init__(self, r: redis.Redis) -> None:
        self.r = r

    async def check(
        self, key: str, limit: int, window_seconds: int
    ) -> RateLimitResult:
        now = now_ts()
        rk = k_rl(key)
        try:
            pipe = self.r.pipeline(transaction=True)
            pipe.zremrangebyscore(rk, "-inf", now - window_seconds)
            pipe.zcard(rk)
            _, count = await pipe.execute()
            if count >= limit:
                return DENIED

            pipe = self.r.pipeline(transaction=True)
            pipe.zadd(rk, {f"{now}:{uuid.uuid4().hex[:8]}": now})
            pipe.expire(rk, int(window_seconds) + 1)
            await pipe.execute()
        except redis.RedisError:
            # fail open
            logger.exception("[RateLimit] check failed for %s", key)
            return ALLOWED
        return ALLOWED

    async def prune(self, older_than: float) -> int:
        # keys expire on their own
        return 0
