"""Async utilities for bridging blocking HTTP calls to the async sync engine."""

import asyncio
import logging
import time
from typing import Any, Callable, TypeVar

T = TypeVar("T")
logger = logging.getLogger(__name__)

# ~3 requests/second, the published Notion API average rate limit.
DEFAULT_MIN_INTERVAL = 0.334


async def run_sync(
    func: Callable[..., T], *args: Any, **kwargs: Any
) -> T:
    """Run a synchronous function in a thread pool without blocking the event loop.

    Args:
        func: Synchronous function to call
        *args: Positional arguments for func
        **kwargs: Keyword arguments for func

    Returns:
        Result of func(*args, **kwargs)

    Example:
        client = NotionClient(config)
        page = await run_sync(client.retrieve_page, page_id)
    """
    return await asyncio.to_thread(func, *args, **kwargs)


class RequestQueue:
    """FIFO gate enforcing a minimum spacing between outbound requests.

    Every call goes through :meth:`submit`, which holds a lock for the whole
    request, so at most one request is in flight.  ``asyncio.Lock`` wakes
    waiters in arrival order, giving FIFO dispatch.  Spacing is measured from
    the end of the previous request to the start of the next.

    Args:
        min_interval: Minimum seconds between two requests.
        clock: Monotonic time source (injectable for tests).
        sleep: Coroutine used to wait (injectable for tests).
    """

    def __init__(
        self,
        min_interval: float = DEFAULT_MIN_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Any] = asyncio.sleep,
    ):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._lock: asyncio.Lock | None = None
        self._last_request: float | None = None
        self.request_count = 0

    def _get_lock(self) -> asyncio.Lock:
        # Created lazily so the queue can be built outside a running loop.
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def submit(
        self, func: Callable[..., T], *args: Any, **kwargs: Any
    ) -> T:
        """Run *func* in a worker thread once the queue lets it through."""
        async with self._get_lock():
            if self._last_request is not None:
                elapsed = self._clock() - self._last_request
                if elapsed < self.min_interval:
                    delay = self.min_interval - elapsed
                    logger.debug("Request queue: waiting %.3fs", delay)
                    await self._sleep(delay)
            try:
                return await run_sync(func, *args, **kwargs)
            finally:
                self._last_request = self._clock()
                self.request_count += 1

    async def pause(self, delay: float) -> None:
        """Hold the queue for *delay* seconds (e.g. after a 429 response)."""
        async with self._get_lock():
            await self._sleep(delay)
            self._last_request = self._clock()
