"""Admission control for model calls: sliding RPM/TPM windows plus cooldown.

One ``RateLimiter`` is built at process start and shared by every dispatch.
Both windows cover the trailing 60 seconds and are pruned lazily on every
read, so there is no background sweeper and time can be driven by an
injected clock in tests.

All waits are cooperative ``await`` sleeps. The process runs on a single
event loop and no window is mutated across an ``await``, so the windows
need no lock; a waiter simply re-reads state after every sleep, which is
how a cooldown armed by another in-flight call becomes visible to it.
Admission order under contention is best-effort, not FIFO.
"""

import asyncio
import time
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

from helpai.app.core.logging import get_logger

logger = get_logger(__name__)

WINDOW_SECONDS = 60.0

# Upper bound on one token-window sleep, so a waiter notices cooldown changes
TOKEN_POLL_QUANTUM = 1.5
# Upper bound on one cooldown sleep; the deadline can move while we wait
COOLDOWN_POLL_QUANTUM = 1.0
# Request-window waits overshoot the oldest entry's expiry slightly
REQUEST_WAIT_PADDING = 0.03
MIN_SLEEP = 0.05


@dataclass
class _WindowEntry:
    """Single entry in a sliding window."""

    timestamp: float
    weight: int = 1


class SlidingWindow:
    """Entries admitted during the trailing ``span`` seconds.

    An entry expires once its age reaches ``span``.
    """

    def __init__(self, span: float = WINDOW_SECONDS):
        self.span = span
        self._entries: deque[_WindowEntry] = deque()

    def prune(self, now: float) -> None:
        while self._entries and now - self._entries[0].timestamp >= self.span:
            self._entries.popleft()

    def add(self, now: float, weight: int = 1) -> None:
        self._entries.append(_WindowEntry(timestamp=now, weight=weight))

    def count(self, now: float) -> int:
        self.prune(now)
        return len(self._entries)

    def total(self, now: float) -> int:
        self.prune(now)
        return sum(e.weight for e in self._entries)

    def time_until_next_expiry(self, now: float) -> float:
        """Seconds until the oldest entry leaves the window (0 if empty)."""
        self.prune(now)
        if not self._entries:
            return 0.0
        return max(0.0, self.span - (now - self._entries[0].timestamp))


class RateLimiter:
    """Process-wide admission gate for provider calls.

    Holds the request window, the token window and the cooldown deadline.
    ``acquire`` blocks (never rejects) until the cooldown has elapsed and
    both windows have room, then spaces calls at least ``min_gap`` apart.

    Usage:
        limiter = RateLimiter(rpm_limit=3, tpm_limit=12_000)

        await limiter.acquire(tokens=estimate)
        try:
            response = await provider.create_completion(...)
        except RateLimitError as exc:
            limiter.arm_cooldown(retry_after)
    """

    def __init__(
        self,
        rpm_limit: int = 3,
        tpm_limit: int = 12_000,
        min_gap: float = 0.8,
        window: float = WINDOW_SECONDS,
        token_poll_quantum: float = TOKEN_POLL_QUANTUM,
        cooldown_poll_quantum: float = COOLDOWN_POLL_QUANTUM,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if rpm_limit < 1 or tpm_limit < 1:
            raise ValueError("rpm_limit and tpm_limit must be at least 1")
        self.rpm_limit = rpm_limit
        self.tpm_limit = tpm_limit
        self.min_gap = max(0.0, min_gap)
        self.token_poll_quantum = token_poll_quantum
        self.cooldown_poll_quantum = cooldown_poll_quantum
        self._clock = clock
        self._sleep = sleep

        self._requests = SlidingWindow(window)
        self._tokens = SlidingWindow(window)
        self._cooldown_until = float("-inf")
        self._last_admitted_at = float("-inf")
        self.last_usage: Optional[int] = None

    @classmethod
    def from_settings(cls, config: Any, **kwargs: Any) -> "RateLimiter":
        return cls(
            rpm_limit=config.openai_rpm_limit,
            tpm_limit=config.openai_tpm_limit,
            min_gap=config.llm_min_gap_seconds,
            **kwargs,
        )

    # ------------------------------------------------------------------
    # State reads (each prunes first)
    # ------------------------------------------------------------------

    def request_count(self) -> int:
        """Requests admitted in the trailing window."""
        return self._requests.count(self._clock())

    def token_count(self) -> int:
        """Estimated tokens admitted in the trailing window."""
        return self._tokens.total(self._clock())

    def cooldown_remaining(self) -> float:
        """Seconds left on the cooldown, 0 if none is active."""
        return max(0.0, self._cooldown_until - self._clock())

    def cooldown_ms(self) -> int:
        return int(round(self.cooldown_remaining() * 1000))

    def rpm_state(self) -> dict:
        now = self._clock()
        return {
            "limit": self.rpm_limit,
            "used": self._requests.count(now),
            "nextFreeMs": int(round(self._requests.time_until_next_expiry(now) * 1000)),
        }

    def tpm_state(self) -> dict:
        return {"limit": self.tpm_limit, "used": self.token_count()}

    def snapshot(self) -> dict:
        """Diagnostics view; not meant for control flow."""
        return {
            "rpm": self.rpm_state(),
            "tpm": self.tpm_state(),
            "cooldownMs": self.cooldown_ms(),
            "lastUsage": self.last_usage,
        }

    # ------------------------------------------------------------------
    # State writes
    # ------------------------------------------------------------------

    def arm_cooldown(self, seconds: float) -> None:
        """Block new admissions for ``seconds`` from now.

        Overwrites any active deadline, even with a shorter one.
        """
        self._cooldown_until = self._clock() + max(0.0, seconds)
        logger.warning("LLM cooldown armed for %.1fs", seconds)

    def record_usage(self, total_tokens: int) -> None:
        """Remember the provider-reported usage of the last call."""
        self.last_usage = total_tokens

    # ------------------------------------------------------------------
    # Admission
    # ------------------------------------------------------------------

    async def acquire(self, tokens: int = 0) -> float:
        """Wait until a call costing ``tokens`` may be sent.

        Returns:
            Seconds spent waiting
        """
        started = self._clock()
        await self._wait_for_cooldown()
        await self._admit_tokens(max(0, int(tokens)))
        await self._admit_request()
        await self._space_calls()
        waited = self._clock() - started
        if waited > 0:
            logger.debug("LLM admission waited %.2fs for %d tokens", waited, tokens)
        return waited

    async def _wait_for_cooldown(self) -> bool:
        """Sleep in small steps until no cooldown is active."""
        waited = False
        while True:
            remaining = self.cooldown_remaining()
            if remaining <= 0:
                return waited
            waited = True
            await self._sleep(min(remaining, self.cooldown_poll_quantum))

    async def _admit_tokens(self, tokens: int) -> None:
        while True:
            if await self._wait_for_cooldown():
                continue
            now = self._clock()
            used = self._tokens.total(now)
            if used + tokens <= self.tpm_limit:
                self._tokens.add(now, tokens)
                return
            if used == 0:
                # Larger than the whole budget; admit it alone rather than wait forever
                logger.warning(
                    "LLM call estimated at %d tokens exceeds TPM limit %d; admitting alone",
                    tokens,
                    self.tpm_limit,
                )
                self._tokens.add(now, tokens)
                return
            wait = self._tokens.time_until_next_expiry(now)
            await self._sleep(min(max(wait, MIN_SLEEP), self.token_poll_quantum))

    async def _admit_request(self) -> None:
        while True:
            if await self._wait_for_cooldown():
                continue
            now = self._clock()
            if self._requests.count(now) < self.rpm_limit:
                self._requests.add(now)
                return
            wait = self._requests.time_until_next_expiry(now) + REQUEST_WAIT_PADDING
            await self._sleep(max(wait, MIN_SLEEP))

    async def _space_calls(self) -> None:
        """Reserve the next send slot at least ``min_gap`` after the previous one."""
        if self.min_gap <= 0:
            return
        now = self._clock()
        slot = max(now, self._last_admitted_at + self.min_gap)
        self._last_admitted_at = slot
        if slot > now:
            await self._sleep(slot - now)
