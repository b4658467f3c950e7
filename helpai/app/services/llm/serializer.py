"""Advisory single-slot latch around model calls.

Callers wrap a model call in ``async with serializer.hold():`` to keep at
most one call in flight process-wide in the common case. It is weaker than
a mutex on purpose: a caller that has waited ``wait_ceiling`` seconds goes
ahead anyway, so a slow call can overlap with the next one but can never
lock the backend up. Correctness must not depend on it.
"""

import asyncio
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Awaitable, Callable, TypeVar

from helpai.app.core.logging import get_logger

logger = get_logger(__name__)

T = TypeVar("T")


class LLMSerializer:
    """Best-effort "one model call at a time" latch."""

    def __init__(
        self,
        wait_ceiling: float = 8.0,
        poll_interval: float = 0.12,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.wait_ceiling = wait_ceiling
        self.poll_interval = poll_interval
        self._clock = clock
        self._sleep = sleep
        self._busy = False
        self.overlaps = 0

    @classmethod
    def from_settings(cls, config: Any, **kwargs: Any) -> "LLMSerializer":
        return cls(
            wait_ceiling=config.llm_mutex_wait_ceiling_ms / 1000,
            poll_interval=config.llm_mutex_poll_ms / 1000,
            **kwargs,
        )

    @property
    def busy(self) -> bool:
        return self._busy

    async def acquire(self) -> bool:
        """Wait for the slot, up to the ceiling, then take it regardless.

        Returns:
            True if the slot was free, False if we gave up waiting
        """
        started = self._clock()
        while self._busy and self._clock() - started < self.wait_ceiling:
            await self._sleep(self.poll_interval)

        acquired = not self._busy
        if not acquired:
            self.overlaps += 1
            logger.warning(
                "LLM serializer still busy after %.1fs; proceeding concurrently",
                self.wait_ceiling,
            )
        self._busy = True
        return acquired

    def release(self) -> None:
        self._busy = False

    @asynccontextmanager
    async def hold(self) -> AsyncIterator[None]:
        await self.acquire()
        try:
            yield
        finally:
            self.release()

    async def run(self, func: Callable[[], Awaitable[T]]) -> T:
        """Await ``func()`` while holding the slot."""
        async with self.hold():
            return await func()

    def state(self) -> dict:
        return {"busy": self._busy, "overlaps": self.overlaps}
