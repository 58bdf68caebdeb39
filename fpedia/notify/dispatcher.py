import asyncio
import logging
from typing import Awaitable, Callable, List, Tuple

from ..infra.timings import timeit

logger = logging.getLogger(__name__)

JobFactory = Callable[[], Awaitable[object]]

BACKGROUND = "background"
INLINE = "inline"


class NotificationDispatcher:
    """
    Best-effort outbound jobs (WhatsApp, mail).

    Jobs queued while a drain is running are picked up by the same chain.
    A failing job is logged and dropped after `max_attempts`; nothing is ever
    raised back to the caller.
    """

    def __init__(self, mode: str = BACKGROUND, max_attempts: int = 1):
        self.mode = mode
        self.max_attempts = max(1, int(max_attempts))
        self._lock = asyncio.Lock()
        self._submissions: List[Tuple[str, JobFactory]] = []
        self._next_task: asyncio.Task | None = None
        self.sent = 0
        self.failed = 0

    async def submit(self, label: str, factory: JobFactory) -> None:
        if self.mode == INLINE:
            await self._run(label, factory)
            return

        async with self._lock:
            self._submissions.append((label, factory))
            # Kick off the chain if not running
            if self._next_task is None or self._next_task.done():
                self._next_task = asyncio.create_task(self._drain())

    async def _drain(self) -> None:
        while True:
            async with self._lock:
                if not self._submissions:
                    self._next_task = None
                    return
                batch, self._submissions = self._submissions, []

            for label, factory in batch:
                await self._run(label, factory)

    async def _run(self, label: str, factory: JobFactory) -> bool:
        for attempt in range(1, self.max_attempts + 1):
            try:
                async with timeit("notify"):
                    ok = await factory()
            except Exception:
                logger.exception(
                    "[Notify] %s failed (attempt %d/%d)",
                    label, attempt, self.max_attempts,
                )
                continue
            if ok is False:
                logger.warning(
                    "[Notify] %s not delivered (attempt %d/%d)",
                    label, attempt, self.max_attempts,
                )
                continue
            self.sent += 1
            return True
        self.failed += 1
        return False

    async def flush_now(self) -> None:
        """Wait until everything queued so far has been attempted."""
        while True:
            async with self._lock:
                task = self._next_task
            if task is None or task.done():
                async with self._lock:
                    if not self._submissions:
                        return
                    self._next_task = asyncio.create_task(self._drain())
                continue
            await task
