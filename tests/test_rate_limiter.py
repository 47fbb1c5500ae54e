"""Tests for RateLimiter."""

import asyncio
import logging

import pytest

from pain_ingest.data import Priority
from pain_ingest.ratelimit import RateLimiter


class FakeClock:
    """Monotonic and wall clock that only advances when something sleeps."""

    def __init__(self, start: float = 1_000.0) -> None:
        self.now = start
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds
        await asyncio.sleep(0)


def _limiter(clock: FakeClock, **kwargs: object) -> RateLimiter:
    return RateLimiter(clock=clock, wall_clock=clock, sleep=clock.sleep, **kwargs)  # type: ignore[arg-type]


async def test_schedule_returns_task_result() -> None:
    clock = FakeClock()
    limiter = _limiter(clock)

    async def task() -> str:
        return "done"

    assert await limiter.schedule(task, Priority.COVERAGE, job_id="job-1") == "done"


async def test_schedule_propagates_task_errors_and_frees_slot() -> None:
    clock = FakeClock()
    limiter = _limiter(clock, max_concurrent=1)

    async def failing() -> None:
        raise RuntimeError("boom")

    async def ok() -> int:
        return 1

    with pytest.raises(RuntimeError, match="boom"):
        await limiter.schedule(failing)
    assert await limiter.schedule(ok) == 1
    assert limiter.stats().running == 0


async def test_500_tasks_never_exceed_concurrency_cap() -> None:
    clock = FakeClock()
    limiter = _limiter(
        clock,
        max_concurrent=20,
        reservoir=100,
        reservoir_refresh_amount=100,
        reservoir_refresh_interval=5.0,
    )
    in_flight = 0
    peak = 0
    completed = 0

    async def task() -> None:
        nonlocal in_flight, peak, completed
        in_flight += 1
        peak = max(peak, in_flight)
        for _ in range(3):
            await asyncio.sleep(0)
        in_flight -= 1
        completed += 1

    await asyncio.gather(*(limiter.schedule(task) for _ in range(500)))

    assert completed == 500
    assert 1 <= peak <= 20


async def test_reservoir_throttles_sustained_throughput() -> None:
    clock = FakeClock()
    limiter = _limiter(
        clock,
        min_time=0.0,
        reservoir=10,
        reservoir_refresh_amount=10,
        reservoir_refresh_interval=5.0,
    )
    start = clock.now

    async def task() -> None:
        return None

    await asyncio.gather(*(limiter.schedule(task) for _ in range(25)))

    # 10 immediately, 10 after the first refresh, 5 after the second
    assert clock.now - start >= 10.0


async def test_min_time_spaces_task_starts() -> None:
    clock = FakeClock()
    limiter = _limiter(clock, min_time=0.05)
    starts: list[float] = []

    async def task() -> None:
        starts.append(clock.now)

    for _ in range(3):
        await limiter.schedule(task)

    gaps = [b - a for a, b in zip(starts, starts[1:], strict=False)]
    assert all(gap >= 0.05 - 1e-9 for gap in gaps)


def test_invalid_configuration_rejected() -> None:
    with pytest.raises(ValueError):
        RateLimiter(max_concurrent=0)
    with pytest.raises(ValueError):
        RateLimiter(reservoir_refresh_interval=0)


def test_initial_state_is_unbounded() -> None:
    limiter = RateLimiter()
    assert limiter.state.remaining is None
    assert limiter.get_rate_limit_delay() == 0.0


def test_update_rate_limit_state_reads_headers_case_insensitively() -> None:
    limiter = RateLimiter()
    limiter.update_rate_limit_state({"x-ratelimit-remaining": "42", "x-ratelimit-reset": "2000"})

    assert limiter.state.remaining == 42
    assert limiter.state.reset_at == 2000.0


def test_update_rate_limit_state_is_monotonic() -> None:
    limiter = RateLimiter()
    limiter.update_rate_limit_state({"X-RateLimit-Remaining": "50", "X-RateLimit-Reset": "2000"})
    # Older response arriving late must not roll the window back.
    limiter.update_rate_limit_state({"X-RateLimit-Remaining": "90", "X-RateLimit-Reset": "1500"})

    assert limiter.state.reset_at == 2000.0
    assert limiter.state.remaining == 50

    limiter.update_rate_limit_state({"X-RateLimit-Remaining": "99", "X-RateLimit-Reset": "2500"})
    assert limiter.state.reset_at == 2500.0
    assert limiter.state.remaining == 99


def test_update_rate_limit_state_ignores_missing_or_bad_headers() -> None:
    limiter = RateLimiter()
    limiter.update_rate_limit_state({})
    limiter.update_rate_limit_state({"X-RateLimit-Reset": "not-a-number"})

    assert limiter.state.remaining is None
    assert limiter.state.reset_at == 0.0


def test_get_rate_limit_delay_waits_for_reset_when_quota_low() -> None:
    clock = FakeClock(start=1_000.0)
    limiter = _limiter(clock)
    limiter.update_rate_limit_state({"X-RateLimit-Remaining": "5", "X-RateLimit-Reset": "1030"})

    assert limiter.get_rate_limit_delay() == pytest.approx(30.0)


def test_get_rate_limit_delay_zero_above_threshold() -> None:
    clock = FakeClock(start=1_000.0)
    limiter = _limiter(clock)
    limiter.update_rate_limit_state({"X-RateLimit-Remaining": "11", "X-RateLimit-Reset": "1030"})

    assert limiter.get_rate_limit_delay() == 0.0


def test_get_rate_limit_delay_zero_after_reset_passed() -> None:
    clock = FakeClock(start=1_000.0)
    limiter = _limiter(clock)
    limiter.update_rate_limit_state({"X-RateLimit-Remaining": "0", "X-RateLimit-Reset": "990"})

    assert limiter.get_rate_limit_delay() == 0.0


def test_low_quota_logs_warning(caplog: pytest.LogCaptureFixture) -> None:
    limiter = RateLimiter()
    with caplog.at_level(logging.WARNING, logger="pain_ingest.ratelimit.limiter"):
        limiter.update_rate_limit_state(
            {"X-RateLimit-Remaining": "19", "X-RateLimit-Reset": "2000"}
        )

    assert "rate limit low" in caplog.text


def test_no_warning_at_threshold(caplog: pytest.LogCaptureFixture) -> None:
    limiter = RateLimiter()
    with caplog.at_level(logging.WARNING, logger="pain_ingest.ratelimit.limiter"):
        limiter.update_rate_limit_state(
            {"X-RateLimit-Remaining": "20", "X-RateLimit-Reset": "2000"}
        )

    assert caplog.text == ""


def test_update_rate_limit_state_accepts_fractional_reset() -> None:
    limiter = RateLimiter()
    limiter.update_rate_limit_state(
        {"X-RateLimit-Remaining": "40", "X-RateLimit-Reset": "1700000060.7"}
    )

    assert limiter.state.remaining == 40
    assert limiter.state.reset_at == 1_700_000_060.0


def test_stale_headers_do_not_repeat_low_quota_warning(caplog: pytest.LogCaptureFixture) -> None:
    limiter = RateLimiter()
    with caplog.at_level(logging.WARNING, logger="pain_ingest.ratelimit.limiter"):
        limiter.update_rate_limit_state(
            {"X-RateLimit-Remaining": "15", "X-RateLimit-Reset": "2000"}
        )
        for _ in range(5):
            limiter.update_rate_limit_state(
                {"X-RateLimit-Remaining": "14", "X-RateLimit-Reset": "2000"}
            )

    assert len(caplog.records) == 1
    assert limiter.state.remaining == 15
