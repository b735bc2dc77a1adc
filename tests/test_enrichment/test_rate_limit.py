"""Tests for the rolling-window request limiter."""

from unittest.mock import AsyncMock

import pytest

from agent_pulse.enrichment.rate_limit import RequestRateLimiter


class FakeClock:
    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now


class TestRequestRateLimiter:
    """Tests for RequestRateLimiter.acquire."""

    def test_negative_rate_rejected(self):
        with pytest.raises(ValueError):
            RequestRateLimiter(-1)

    @pytest.mark.asyncio
    async def test_disabled_never_waits(self):
        sleep = AsyncMock()
        limiter = RequestRateLimiter(0, sleep=sleep)

        for _ in range(100):
            await limiter.acquire()

        assert not limiter.enabled
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_under_cap_does_not_wait(self):
        sleep = AsyncMock()
        limiter = RequestRateLimiter(3, clock=FakeClock(), sleep=sleep)

        for _ in range(3):
            await limiter.acquire()

        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_waits_for_oldest_slot_to_expire(self):
        clock = FakeClock()
        waits: list[float] = []

        async def fake_sleep(seconds: float) -> None:
            waits.append(seconds)
            clock.now += seconds

        limiter = RequestRateLimiter(2, clock=clock, sleep=fake_sleep)
        await limiter.acquire()
        clock.now += 10
        await limiter.acquire()
        clock.now += 5

        await limiter.acquire()

        # First slot was taken 15s ago, so it frees after 45s more
        assert waits == [45.0]
