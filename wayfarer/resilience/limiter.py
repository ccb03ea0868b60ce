import asyncio
import time
from typing import Callable, Dict


class RateLimiter:
    """
    Bounded concurrency plus a minimum spacing between call starts.

        async with limiter:
            await do_call()
    """

    def __init__(
        self,
        max_concurrent: int = 3,
        min_interval_s: float = 0.25,
        clock: Callable[[], float] = time.monotonic,
        sleep=asyncio.sleep,
    ):
        self.max_concurrent = max(1, int(max_concurrent))
        self.min_interval_s = max(0.0, float(min_interval_s))
        self._clock = clock
        self._sleep = sleep
        self._sem = asyncio.Semaphore(self.max_concurrent)
        self._spacing = asyncio.Lock()
        self._next_start = 0.0
        self.running = 0
        self.queued = 0

    async def __aenter__(self) -> "RateLimiter":
        self.queued += 1
        try:
            await self._sem.acquire()
        finally:
            self.queued -= 1
        try:
            async with self._spacing:
                wait = self._next_start - self._clock()
                if wait > 0:
                    await self._sleep(wait)
                self._next_start = self._clock() + self.min_interval_s
        except BaseException:
            self._sem.release()
            raise
        self.running += 1
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.running -= 1
        self._sem.release()

    def stats(self) -> Dict[str, int]:
        return {"running": self.running, "queued": self.queued}
