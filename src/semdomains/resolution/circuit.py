from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitOpenError(RuntimeError):
    def __init__(self, retry_in: float):
        super().__init__(f"Circuit breaker open; retry in {retry_in:.0f}s")
        self.retry_in = retry_in


class CircuitBreaker:
    """In-process circuit breaker for a flaky external service.

    After ``failure_threshold`` consecutive failures the circuit opens and
    calls are rejected with :class:`CircuitOpenError` until
    ``reset_timeout`` seconds have passed; the next call then runs in
    half-open state and closes the circuit on success.
    """

    def __init__(
        self,
        *,
        failure_threshold: int = 5,
        reset_timeout: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.failure_threshold = max(1, int(failure_threshold))
        self.reset_timeout = float(reset_timeout)
        self._clock = clock
        self.state = CircuitState.CLOSED
        self.failures = 0
        self._opened_at = 0.0

    def call(self, operation: Callable[[], T]) -> T:
        if self.state is CircuitState.OPEN:
            elapsed = self._clock() - self._opened_at
            if elapsed < self.reset_timeout:
                raise CircuitOpenError(self.reset_timeout - elapsed)
            logger.info("Circuit breaker half-open; probing external service")
            self.state = CircuitState.HALF_OPEN

        try:
            result = operation()
        except Exception:
            self._record_failure()
            raise

        if self.state is not CircuitState.CLOSED or self.failures:
            if self.state is CircuitState.HALF_OPEN:
                logger.info("Circuit breaker closed after successful probe")
            self.state = CircuitState.CLOSED
            self.failures = 0
        return result

    def _record_failure(self) -> None:
        self.failures += 1
        if self.state is CircuitState.HALF_OPEN or self.failures >= self.failure_threshold:
            self.state = CircuitState.OPEN
            self._opened_at = self._clock()
            logger.warning(
                "Circuit breaker opened",
                extra={"failures": self.failures, "threshold": self.failure_threshold},
            )
