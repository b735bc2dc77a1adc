"""
Exponential backoff and a reusable retry policy.

ExponentialBackoff computes delays. RetryPolicy drives an async callable
through those delays and reports how it ended as a tagged RetryOutcome
(success / exhausted / terminal) instead of raising, so callers branch on
the outcome rather than nesting try/except inside their own loops.
"""

import asyncio
import logging
import random
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from enum import Enum
from typing import Generic, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class ExponentialBackoff:
    """
    Exponential backoff with optional jitter.

    Computes delays as: min(base * multiplier^attempt, max_delay) + jitter.
    Call reset() after a successful operation to zero the attempt counter.
    """

    def __init__(
        self,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        multiplier: float = 2.0,
        jitter_range: float = 0.0,
    ):
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.multiplier = multiplier
        self.jitter_range = jitter_range
        self._attempt = 0

    @property
    def attempt(self) -> int:
        """Current attempt count."""
        return self._attempt

    def peek_delay(self, attempt: int | None = None) -> float:
        """Delay for ``attempt`` (default: the next one) without jitter."""
        n = self._attempt if attempt is None else attempt
        return min(self.base_delay * (self.multiplier ** n), self.max_delay)

    def next_delay(self) -> float:
        """Calculate and return the next backoff delay, incrementing the attempt counter."""
        delay = self.peek_delay()
        if self.jitter_range:
            # ±jitter_range fraction of delay
            delay += delay * random.uniform(-self.jitter_range, self.jitter_range)
        self._attempt += 1
        return max(0.0, delay)

    def reset(self) -> None:
        """Reset the attempt counter after a successful operation."""
        self._attempt = 0


class OutcomeKind(str, Enum):
    """How a retried operation ended."""

    SUCCESS = "success"
    EXHAUSTED = "exhausted"  # retryable failures used up every attempt
    TERMINAL = "terminal"  # non-retryable failure, no further attempts


@dataclass
class RetryOutcome(Generic[T]):
    """Tagged result of RetryPolicy.run()."""

    kind: OutcomeKind
    attempts: int
    value: T | None = None
    error: Exception | None = None

    @property
    def ok(self) -> bool:
        return self.kind == OutcomeKind.SUCCESS


def _always_retry(_exc: Exception) -> bool:
    return True


class RetryPolicy:
    """
    Bounded retry with exponential backoff.

    ``max_retries`` counts retries after the first attempt, so a policy
    with max_retries=3 makes at most four calls.

    Usage:
        policy = RetryPolicy(max_retries=3, base_delay=1.0, multiplier=2.0)
        outcome = await policy.run(lambda: client.generate(prompt), is_retryable)
        if outcome.ok:
            use(outcome.value)
        elif outcome.kind == OutcomeKind.EXHAUSTED:
            ...
    """

    def __init__(
        self,
        max_retries: int = 3,
        base_delay: float = 1.0,
        multiplier: float = 2.0,
        max_delay: float = 60.0,
        jitter_range: float = 0.0,
        sleep: Callable[[float], Awaitable[object]] = asyncio.sleep,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.multiplier = multiplier
        self.max_delay = max_delay
        self.jitter_range = jitter_range
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def new_backoff(self) -> ExponentialBackoff:
        return ExponentialBackoff(
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            multiplier=self.multiplier,
            jitter_range=self.jitter_range,
        )

    async def run(
        self,
        operation: Callable[[], Awaitable[T]],
        is_retryable: Callable[[Exception], bool] = _always_retry,
        description: str = "operation",
    ) -> RetryOutcome[T]:
        """
        Call ``operation`` until it succeeds, fails terminally, or runs out of attempts.

        Args:
            operation: Zero-argument coroutine factory, called once per attempt.
            is_retryable: Classifies a raised exception.
            description: Label used in log messages.

        Returns:
            RetryOutcome tagged success, exhausted, or terminal.
        """
        backoff = self.new_backoff()

        for attempt in range(1, self.max_attempts + 1):
            try:
                value = await operation()
            except Exception as e:
                if not is_retryable(e):
                    logger.debug(
                        "%s failed terminally on attempt %d: %s", description, attempt, e
                    )
                    return RetryOutcome(OutcomeKind.TERMINAL, attempt, error=e)

                if attempt >= self.max_attempts:
                    logger.warning(
                        "%s exhausted %d attempts: %s", description, attempt, e
                    )
                    return RetryOutcome(OutcomeKind.EXHAUSTED, attempt, error=e)

                delay = backoff.next_delay()
                logger.warning(
                    "%s failed (attempt %d/%d), retrying in %.2fs: %s",
                    description,
                    attempt,
                    self.max_attempts,
                    delay,
                    e,
                )
                await self._sleep(delay)
                continue

            return RetryOutcome(OutcomeKind.SUCCESS, attempt, value=value)

        # Unreachable: the loop always returns
        raise RuntimeError("retry loop exited without an outcome")
