import asyncio
import time

import pytest

from easycal.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


async def test_runs_function_and_returns_result():
    limiter = RateLimiter(max_concurrent=1, min_time=0, reservoir=None)

    async def double(value):
        return value * 2

    assert await limiter.schedule(double, 21) == 42


async def test_concurrency_is_capped():
    limiter = RateLimiter(max_concurrent=2, min_time=0, reservoir=None)
    running = 0
    peak = 0

    async def work(i):
        nonlocal running, peak
        running += 1
        peak = max(peak, running)
        await asyncio.sleep(0.05)
        running -= 1
        return i

    results = await asyncio.gather(*(limiter.schedule(work, i) for i in range(5)))

    assert results == [0, 1, 2, 3, 4]
    assert peak == 2
    assert limiter.status() == {"running": 0, "queued": 0, "reservoir": None}


async def test_starts_are_spaced_by_min_time():
    limiter = RateLimiter(max_concurrent=3, min_time=0.1, reservoir=None)
    starts = []

    async def work():
        starts.append(time.monotonic())

    await asyncio.gather(*(limiter.schedule(work) for _ in range(3)))

    gaps = [later - earlier for earlier, later in zip(sorted(starts), sorted(starts)[1:])]
    assert all(gap >= 0.09 for gap in gaps)


async def test_reservoir_blocks_until_refill():
    clock = FakeClock()
    limiter = RateLimiter(max_concurrent=3, min_time=0, reservoir=2, reservoir_refresh_interval=60, clock=clock)

    async def work(i):
        return i

    assert await limiter.schedule(work, 1) == 1
    assert await limiter.schedule(work, 2) == 2
    assert limiter.status()["reservoir"] == 0

    blocked = asyncio.create_task(limiter.schedule(work, 3))
    await asyncio.sleep(0.2)
    assert not blocked.done()
    assert limiter.status()["queued"] == 1

    clock.now += 60
    assert await asyncio.wait_for(blocked, timeout=3) == 3
    assert limiter.status()["reservoir"] == 1


async def test_refill_amount_can_differ_from_initial_reservoir():
    clock = FakeClock()
    limiter = RateLimiter(
        max_concurrent=1,
        min_time=0,
        reservoir=1,
        reservoir_refresh_interval=10,
        reservoir_refresh_amount=5,
        clock=clock,
    )

    async def noop():
        return None

    await limiter.schedule(noop)
    clock.now += 10
    await limiter.schedule(noop)
    assert limiter.status()["reservoir"] == 4


async def test_exception_propagates_and_frees_slot():
    limiter = RateLimiter(max_concurrent=1, min_time=0, reservoir=None)

    async def boom():
        raise ValueError("nope")

    with pytest.raises(ValueError):
        await limiter.schedule(boom)

    assert limiter.status()["running"] == 0

    async def ok():
        return "ok"

    assert await limiter.schedule(ok) == "ok"


def test_rejects_zero_concurrency():
    with pytest.raises(ValueError):
        RateLimiter(max_concurrent=0)
