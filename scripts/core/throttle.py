"""Process-wide request throttle.

All outbound GitHub requests, REST or GraphQL, run through one
:class:`ThrottleQueue`.  It dispatches strictly one at a time, in FIFO
order, and before every dispatch waits for

  1. the back-off deadline (set on ``Retry-After`` / secondary limits), then
  2. the minimum spacing since the previous dispatch.

The queue knows nothing about HTTP; it only sequences coroutine factories.
"""

import asyncio
import logging
import time
from collections import deque
from typing import Awaitable, Callable

log = logging.getLogger("gfi.throttle")

# Safe for GitHub's secondary rate limit on the search endpoints
MIN_REQUEST_INTERVAL = 0.8


class ThrottleQueue:
    """Serialized dispatcher with minimum spacing and a global back-off.

    Args:
        min_interval: Minimum seconds between two consecutive dispatches.
        clock: Returns epoch seconds.  Injectable for tests.
        sleep: Coroutine function used for all waits.  Injectable for tests.
    """

    def __init__(self, min_interval: float = MIN_REQUEST_INTERVAL,
                 clock: Callable[[], float] = time.time,
                 sleep: Callable[[float], Awaitable] = asyncio.sleep):
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._pending: deque = deque()
        self._draining = False
        self._drain_task = None
        self._last_dispatch = 0.0
        self._backoff_until = 0.0
        self.dispatched = 0

    # ------------------------------------------------------------------
    # Back-off deadline
    # ------------------------------------------------------------------

    @property
    def backoff_until(self) -> float:
        return self._backoff_until

    @property
    def last_dispatch(self) -> float:
        return self._last_dispatch

    def backoff_remaining(self) -> float:
        return max(0.0, self._backoff_until - self._clock())

    def defer_until(self, deadline: float) -> None:
        """Move the back-off deadline to *deadline*; never shortens it."""
        if deadline > self._backoff_until:
            self._backoff_until = deadline

    def defer_for(self, seconds: float) -> None:
        self.defer_until(self._clock() + seconds)

    def ensure_backoff(self, seconds: float) -> bool:
        """Start a back-off only if none is active.  Returns True if set."""
        now = self._clock()
        if self._backoff_until > now:
            return False
        self._backoff_until = now + seconds
        return True

    # ------------------------------------------------------------------
    # Queue
    # ------------------------------------------------------------------

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def submit(self, request: Callable[[], Awaitable]):
        """Queue *request* and return its result once it has run.

        Exceptions raised by *request* propagate to this caller only; the
        queue keeps draining.
        """
        loop = asyncio.get_running_loop()
        future = loop.create_future()
        self._pending.append((future, request))
        if not self._draining:
            self._draining = True
            self._drain_task = loop.create_task(self._drain())
        return await future

    async def _drain(self):
        try:
            while self._pending:
                wait = self._backoff_until - self._clock()
                if wait > 0:
                    log.info("[限流] 等待 back-off %.1fs (队列 %d)", wait, len(self._pending))
                    await self._sleep(wait)

                gap = self._clock() - self._last_dispatch
                if gap < self.min_interval:
                    await self._sleep(self.min_interval - gap)

                future, request = self._pending.popleft()
                self._last_dispatch = self._clock()
                self.dispatched += 1
                try:
                    result = await request()
                except Exception as exc:
                    if not future.done():
                        future.set_exception(exc)
                else:
                    if not future.done():
                        future.set_result(result)
        finally:
            self._draining = False
