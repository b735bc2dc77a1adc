"""Tests for exponential backoff and the retry policy."""

from unittest.mock import AsyncMock

import pytest

from agent_pulse.queues.backoff import ExponentialBackoff, OutcomeKind, RetryPolicy


class TestExponentialBackoff:
    """Tests for ExponentialBackoff delay calculation."""

    def test_delays_double_without_jitter(self):
        backoff = ExponentialBackoff(base_delay=1.0, max_delay=60.0, multiplier=2.0)
        assert [backoff.next_delay() for _ in range(3)] == [1.0, 2.0, 4.0]
        assert backoff.attempt == 3

    def test_caps_at_max_delay(self):
        backoff = ExponentialBackoff(base_delay=10.0, max_delay=30.0, multiplier=2.0)
        backoff.next_delay()  # 10
        backoff.next_delay()  # 20
        assert backoff.next_delay() == 30.0

    def test_jitter_stays_in_range(self):
        """Jitter of 0.5 keeps the first delay within [5, 15]."""
        for _ in range(50):
            backoff = ExponentialBackoff(base_delay=10.0, jitter_range=0.5)
            assert 5.0 <= backoff.next_delay() <= 15.0

    def test_reset(self):
        backoff = ExponentialBackoff(base_delay=1.0)
        backoff.next_delay()
        backoff.next_delay()
        backoff.reset()
        assert backoff.attempt == 0
        assert backoff.next_delay() == 1.0

    def test_peek_does_not_advance(self):
        backoff = ExponentialBackoff(base_delay=2.0)
        assert backoff.peek_delay() == 2.0
        assert backoff.peek_delay(attempt=2) == 8.0
        assert backoff.attempt == 0


class TestRetryPolicy:
    """Tests for RetryPolicy.run outcomes."""

    def test_negative_retries_rejected(self):
        with pytest.raises(ValueError):
            RetryPolicy(max_retries=-1)

    def test_max_attempts_counts_first_call(self):
        assert RetryPolicy(max_retries=3).max_attempts == 4

    @pytest.mark.asyncio
    async def test_success_first_try(self):
        sleep = AsyncMock()
        policy = RetryPolicy(max_retries=3, sleep=sleep)
        operation = AsyncMock(return_value="done")

        outcome = await policy.run(operation)

        assert outcome.ok
        assert outcome.value == "done"
        assert outcome.attempts == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_retries_then_succeeds(self):
        sleep = AsyncMock()
        policy = RetryPolicy(max_retries=3, base_delay=1.0, multiplier=2.0, sleep=sleep)
        operation = AsyncMock(side_effect=[ConnectionError("a"), ConnectionError("b"), 42])

        outcome = await policy.run(operation)

        assert outcome.kind == OutcomeKind.SUCCESS
        assert outcome.value == 42
        assert outcome.attempts == 3
        assert [c.args[0] for c in sleep.await_args_list] == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhausted(self):
        sleep = AsyncMock()
        policy = RetryPolicy(max_retries=2, sleep=sleep)
        error = TimeoutError("slow")
        operation = AsyncMock(side_effect=error)

        outcome = await policy.run(operation)

        assert outcome.kind == OutcomeKind.EXHAUSTED
        assert outcome.attempts == 3
        assert outcome.error is error
        assert not outcome.ok
        assert sleep.await_count == 2

    @pytest.mark.asyncio
    async def test_terminal_error_stops_immediately(self):
        sleep = AsyncMock()
        policy = RetryPolicy(max_retries=5, sleep=sleep)
        operation = AsyncMock(side_effect=ValueError("bad prompt"))

        outcome = await policy.run(
            operation, is_retryable=lambda e: not isinstance(e, ValueError)
        )

        assert outcome.kind == OutcomeKind.TERMINAL
        assert outcome.attempts == 1
        assert operation.await_count == 1
        sleep.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_zero_retries_is_single_attempt(self):
        policy = RetryPolicy(max_retries=0, sleep=AsyncMock())
        outcome = await policy.run(AsyncMock(side_effect=ConnectionError("x")))
        assert outcome.kind == OutcomeKind.EXHAUSTED
        assert outcome.attempts == 1
