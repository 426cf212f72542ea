import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, TypeVar

from tenacity import AsyncRetrying, before_sleep_log, stop_after_attempt, wait_exponential

from digest.config import MAX_RETRIES

logger = logging.getLogger(__name__)

T = TypeVar("T")


class RateLimiter:
    """
    Bounds concurrent calls and spaces out their start times.

    Waiting tasks are released in submission order: both the semaphore and
    the start lock hand out slots to waiters FIFO.
    """

    def __init__(self, max_concurrent: int, min_time: float = 0.0, name: str = "limiter"):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.name = name
        self.max_concurrent = max_concurrent
        self.min_time = min_time
        self._semaphore = asyncio.Semaphore(max_concurrent)
        self._start_lock = asyncio.Lock()
        self._last_start: Optional[float] = None

    async def _wait_for_start(self):
        async with self._start_lock:
            loop = asyncio.get_running_loop()
            if self._last_start is not None and self.min_time > 0:
                delay = self._last_start + self.min_time - loop.time()
                if delay > 0:
                    await asyncio.sleep(delay)
            self._last_start = loop.time()

    async def schedule(self, task: Callable[..., Awaitable[T]], *args: Any, **kwargs: Any) -> T:
        async with self._semaphore:
            await self._wait_for_start()
            return await task(*args, **kwargs)


async def retry(
    task: Callable[..., Awaitable[T]],
    *args: Any,
    max_attempts: int = MAX_RETRIES,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    **kwargs: Any,
) -> T:
    """
    Awaits `task(*args, **kwargs)`, retrying failures.
    Waits 2^attempt seconds after each failed attempt (2s, 4s, ...).
    The last attempt's exception is re-raised unchanged.
    """
    retrying = AsyncRetrying(
        stop=stop_after_attempt(max_attempts),
        wait=wait_exponential(multiplier=2),
        sleep=sleep,
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            result = await task(*args, **kwargs)
    return result
