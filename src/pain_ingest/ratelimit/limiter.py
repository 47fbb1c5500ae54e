"""Process-wide rate limiter shared by every archive caller.

One ``RateLimiter`` is constructed at startup and injected into every
component that talks to the archive. It combines three limits:

- a concurrency cap on in-flight calls,
- a minimum spacing between call starts,
- a token reservoir that is reset to a fixed amount on a fixed interval,
  bounding sustained throughput independently of burst concurrency.

It also tracks the quota the server reports in its response headers so
callers can pause before firing a request that would be rejected.
"""

import asyncio
import logging
import math
import time
from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import TypeVar

import httpx

from pain_ingest.data import Priority

logger = logging.getLogger(__name__)

T = TypeVar("T")

REMAINING_HEADER = "X-RateLimit-Remaining"
RESET_HEADER = "X-RateLimit-Reset"


@dataclass
class RateLimitState:
    """Server-reported quota.

    ``remaining`` is None while the quota is unknown (unbounded).
    ``reset_at`` is the epoch second at which the quota window resets.
    """

    remaining: int | None = None
    reset_at: float = 0.0


@dataclass(frozen=True)
class LimiterStats:
    """Snapshot of limiter telemetry."""

    running: int
    queued: int
    reservoir: int
    remaining: int | None
    reset_at: float


class RateLimiter:
    """Global concurrency and throughput governor.

    Tasks start in FIFO order. ``priority`` and ``job_id`` are accepted as
    routing hints only; every task is treated the same.

    Args:
        max_concurrent: Maximum tasks in flight at once.
        min_time: Minimum seconds between two task starts.
        reservoir: Initial token count.
        reservoir_refresh_amount: Token count the reservoir is reset to.
        reservoir_refresh_interval: Seconds between reservoir resets.
        quota_safety_threshold: Remaining quota at or below which callers
            are told to wait for the reset.
        low_quota_warning: Remaining quota below which a warning is logged.
        clock: Monotonic clock used for spacing and refills.
        wall_clock: Epoch clock used to compare against reset headers.
        sleep: Coroutine used for every wait.
    """

    def __init__(
        self,
        *,
        max_concurrent: int = 20,
        min_time: float = 0.05,
        reservoir: int = 100,
        reservoir_refresh_amount: int = 100,
        reservoir_refresh_interval: float = 5.0,
        quota_safety_threshold: int = 10,
        low_quota_warning: int = 20,
        clock: Callable[[], float] = time.monotonic,
        wall_clock: Callable[[], float] = time.time,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        if reservoir_refresh_amount < 1 or reservoir_refresh_interval <= 0:
            raise ValueError("reservoir refresh must add at least one token per interval")

        self._max_concurrent = max_concurrent
        self._min_time = min_time
        self._refresh_amount = reservoir_refresh_amount
        self._refresh_interval = reservoir_refresh_interval
        self._safety_threshold = quota_safety_threshold
        self._low_quota_warning = low_quota_warning
        self._clock = clock
        self._wall_clock = wall_clock
        self._sleep = sleep

        self._slots = asyncio.Semaphore(max_concurrent)
        self._start_lock = asyncio.Lock()
        self._reservoir = reservoir
        self._next_refresh = clock() + reservoir_refresh_interval
        self._last_start: float | None = None
        self._running = 0
        self._queued = 0
        self._state = RateLimitState()

    @property
    def state(self) -> RateLimitState:
        """Current server-reported quota."""
        return self._state

    def stats(self) -> LimiterStats:
        """Return a telemetry snapshot."""
        return LimiterStats(
            running=self._running,
            queued=self._queued,
            reservoir=self._reservoir,
            remaining=self._state.remaining,
            reset_at=self._state.reset_at,
        )

    async def schedule(
        self,
        task: Callable[[], Awaitable[T]],
        priority: Priority = Priority.RESEARCH,
        job_id: str | None = None,
    ) -> T:
        """Run ``task`` once a concurrency slot and a reservoir token are free.

        Args:
            task: Zero-argument coroutine factory to run.
            priority: Routing hint.
            job_id: Routing hint identifying the calling job.

        Returns:
            Whatever ``task`` returns.
        """
        logger.debug("Scheduling %s task (job=%s)", priority, job_id)
        self._queued += 1
        try:
            async with self._start_lock:
                await self._slots.acquire()
                try:
                    await self._take_token()
                    await self._wait_for_spacing()
                except BaseException:
                    self._slots.release()
                    raise
                self._last_start = self._clock()
        finally:
            self._queued -= 1

        self._running += 1
        try:
            return await task()
        finally:
            self._running -= 1
            self._slots.release()

    def update_rate_limit_state(self, headers: Mapping[str, str] | httpx.Headers) -> None:
        """Record the quota reported by a response.

        The state only moves forward: a response whose reset time is not
        later than the stored one is ignored, so out-of-order responses
        cannot roll the window back.
        """
        normalized = httpx.Headers(headers)
        reset_raw = normalized.get(RESET_HEADER)
        remaining_raw = normalized.get(REMAINING_HEADER)

        reset_at: float | None
        try:
            reset_at = float(int(float(reset_raw))) if reset_raw is not None else None
        except (ValueError, OverflowError):
            reset_at = None

        if reset_at is None or reset_at <= self._state.reset_at:
            return

        self._state.reset_at = reset_at
        if remaining_raw is not None:
            try:
                self._state.remaining = int(remaining_raw)
            except ValueError:
                self._state.remaining = None

        remaining = self._state.remaining
        if remaining is not None and remaining < self._low_quota_warning:
            logger.warning(
                "Archive rate limit low: %d remaining, resets at %s",
                remaining,
                time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(reset_at)),
            )

    def get_rate_limit_delay(self) -> float:
        """Seconds a caller should wait before its next request.

        Zero while the remaining quota is unknown or above the safety
        threshold, otherwise the time left until the quota resets.
        """
        remaining = self._state.remaining
        if remaining is None or remaining > self._safety_threshold:
            return 0.0

        wait = self._state.reset_at - self._wall_clock()
        if wait > 0:
            logger.info("Near archive limit (%d left), waiting %.1fs for reset", remaining, wait)
            return wait
        return 0.0

    def _refill(self) -> None:
        now = self._clock()
        if now >= self._next_refresh:
            self._reservoir = self._refresh_amount
            elapsed_intervals = math.floor((now - self._next_refresh) / self._refresh_interval)
            self._next_refresh += (elapsed_intervals + 1) * self._refresh_interval

    async def _take_token(self) -> None:
        while True:
            self._refill()
            if self._reservoir > 0:
                self._reservoir -= 1
                return
            await self._sleep(max(self._next_refresh - self._clock(), 0.0))

    async def _wait_for_spacing(self) -> None:
        if self._last_start is None:
            return
        wait = self._last_start + self._min_time - self._clock()
        if wait > 0:
            await self._sleep(wait)
