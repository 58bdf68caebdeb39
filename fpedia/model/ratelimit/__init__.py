from typing import Optional, Callable, AsyncContextManager
from sqlalchemy.ext.asyncio import AsyncSession
import redis.asyncio as redis

from ._base import RateLimitResult

Gated = Callable[[], AsyncContextManager[None]]

BACKENDS = ("pg", "redis")


# kind comes from Settings.RATELIMIT_BACKEND
def new_limiter(*, kind: str,
                db: Optional[AsyncSession] = None,
                r: Optional[redis.Redis] = None,
                gated: Gated = None):
    kind = kind.lower()
    if kind not in BACKENDS:
        raise RuntimeError(f"unknown rate limit backend {kind!r}")
    if kind == "redis":
        from ._redis import RateLimiter
        if r is None:
            raise RuntimeError("RateLimiter(redis) requires r=redis.Redis")
        return RateLimiter(r=r)

    from ._postgres import RateLimiter
    if db is None:
        raise RuntimeError("RateLimiter(pg) requires db=AsyncSession")
    if gated is None:
        raise RuntimeError("RateLimiter(pg) requires gated=Gated")
    return RateLimiter(db=db, gated=gated)


__all__ = ["RateLimitResult", "new_limiter", "BACKENDS"]
