"""Circuit breaker for the model service clients.

CLOSED → OPEN → HALF_OPEN → CLOSED. Each GeminiClient / OllamaClient owns
one breaker so a model host that keeps failing stops receiving traffic for
``recovery_timeout`` seconds instead of burning every record's retry budget.

Usage:
    breaker = GenericCircuitBreaker(failure_threshold=5, recovery_timeout=60.0)
    try:
        result = await breaker.call(client._post_generate, body)
    except CircuitOpenError:
        ...
"""

import enum
import logging
import time
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(enum.Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(Exception):
    """Raised when calling through an open circuit breaker."""


class GenericCircuitBreaker:
    """Wraps an async callable with circuit breaker protection.

    - CLOSED: Calls pass through. Consecutive failures tracked.
    - OPEN: Calls rejected with CircuitOpenError until recovery_timeout
      has elapsed since the last failure.
    - HALF_OPEN: One probe call. Success closes, failure reopens.

    ``should_trip`` decides which exceptions count as failures. Terminal
    request errors such as a malformed prompt (HTTP 400) say nothing about
    the host's health and are passed through without being counted.
    """

    def __init__(
        self,
        failure_threshold: int = 5,
        recovery_timeout: float = 60.0,
        name: str = "circuit_breaker",
        should_trip: Callable[[Exception], bool] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._failure_threshold = failure_threshold
        self._recovery_timeout = recovery_timeout
        self._name = name
        self._should_trip = should_trip or (lambda _exc: True)
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        self._last_failure_time: float = 0.0

    @property
    def name(self) -> str:
        return self._name

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def consecutive_failures(self) -> int:
        return self._consecutive_failures

    async def call(
        self,
        fn: Callable[..., Coroutine[Any, Any, T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Execute ``fn`` through the breaker.

        Raises:
            CircuitOpenError: The circuit is open and the recovery timeout
                has not elapsed.
        """
        if self._state == CircuitState.OPEN:
            if self._clock() - self._last_failure_time >= self._recovery_timeout:
                self._state = CircuitState.HALF_OPEN
                logger.info(
                    "Circuit breaker %s: OPEN → HALF_OPEN (recovery probe)",
                    self._name,
                )
            else:
                raise CircuitOpenError(f"Circuit breaker {self._name} is OPEN")

        try:
            result = await fn(*args, **kwargs)
        except Exception as e:
            if self._should_trip(e):
                self._record_failure()
            raise

        if self._state == CircuitState.HALF_OPEN:
            logger.info(
                "Circuit breaker %s: HALF_OPEN → CLOSED (probe succeeded)",
                self._name,
            )
        self._state = CircuitState.CLOSED
        self._consecutive_failures = 0
        return result

    def _record_failure(self) -> None:
        self._consecutive_failures += 1
        self._last_failure_time = self._clock()

        if self._state == CircuitState.HALF_OPEN:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker %s: HALF_OPEN → OPEN (probe failed)", self._name
            )
        elif self._consecutive_failures >= self._failure_threshold:
            self._state = CircuitState.OPEN
            logger.warning(
                "Circuit breaker %s: CLOSED → OPEN after %d failures",
                self._name,
                self._consecutive_failures,
            )
