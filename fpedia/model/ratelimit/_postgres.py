from __future__ import annotations
import logging
from typing import Callable, AsyncContextManager

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ...helpers import now_ts
from ._base import RateLimitResult, ALLOWED, DENIED

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Sliding window over the rate_limits table.

    Count, then insert a marker row. Two concurrent callers can both pass the
    count before either inserts, so the limit is approximate.
    """

    def __init__(
        self, db: AsyncSession,
        gated: Callable[[], AsyncContextManager[None]]
    ) -> None:
        self.db = db
        self.gated = gated

    async def check(
        self, key: str, limit: int, window_seconds: int
    ) -> RateLimitResult:
        now = now_ts()
        try:
            async with self.gated():
                async with self.db.begin():
                    count = (await self.db.execute(text("""
                        SELECT COUNT(*) FROM rate_limits
                        WHERE key = :k AND created_at > :since
                    """), {"k": key, "since": now - window_seconds}
                    )).scalar_one()
                    if count >= limit:
                        return DENIED
                    await self.db.execute(text("""
                        INSERT INTO rate_limits (key, created_at)
                        VALUES (:k, :now)
                    """), {"k": key, "now": now})
        except SQLAlchemyError:
            # fail open
            logger.exception("[RateLimit] check failed for %s", key)
            return ALLOWED
        return ALLOWED

    async def prune(self, older_than: float) -> int:
        async with self.gated():
            async with self.db.begin():
                res = await self.db.execute(
                    text("DELETE FROM rate_limits WHERE created_at < :t"),
                    {"t": older_than},
                )
        return res.rowcount or 0
