"""
resilience.py
Deadline, retry and circuit-breaker helpers for outbound calls.

Provides:
- with_deadline: run an awaitable under a deadline
- with_retry: exponential backoff around an async operation
- CircuitBreaker: stop calling a failing service for a while
"""

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

from src.book_agent.errors import OperationTimeoutError

T = TypeVar("T")

logger = logging.getLogger(__name__)


async def with_deadline(
    operation: Awaitable[T],
    seconds: float,
    message: str = "Operation timed out",
) -> T:
    """
    Await an operation, giving up after `seconds`.

    The operation is cancelled when the deadline fires.

    Raises:
        OperationTimeoutError: If the deadline is exceeded
    """
    try:
        return await asyncio.wait_for(operation, timeout=seconds)
    except asyncio.TimeoutError:
        raise OperationTimeoutError(message, timeout=seconds) from None


def backoff_delay(attempt: int, base: float = 1.0, maximum: Optional[float] = None) -> float:
    """Delay in seconds after failed attempt `attempt` (1-based): base * 2**attempt."""
    delay = base * (2 ** attempt)
    if maximum is not None:
        delay = min(delay, maximum)
    return delay


async def with_retry(
    operation: Callable[[], Awaitable[T]],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: Optional[float] = None,
    retry_on: Tuple[Type[BaseException], ...] = (Exception,),
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    label: str = "operation",
) -> T:
    """
    Call `operation` up to `max_retries` times with exponential backoff.

    The error of the final attempt propagates unchanged.

    Args:
        operation: Zero-argument coroutine factory
        max_retries: Total number of attempts
        base_delay: Multiplier for the 2**attempt backoff, in seconds
        max_delay: Optional ceiling on a single delay
        retry_on: Exception types that trigger another attempt
        sleep: Awaitable sleep function (injectable for tests)
        label: Name used in log messages
    """
    if max_retries < 1:
        raise ValueError("max_retries must be at least 1")

    for attempt in range(1, max_retries + 1):
        try:
            return await operation()
        except retry_on as e:
            if attempt == max_retries:
                raise
            delay = backoff_delay(attempt, base_delay, max_delay)
            logger.warning(
                f"{label} attempt {attempt} failed ({e!r}), retrying in {delay:.1f}s",
                extra={"attempt": attempt, "delay": delay},
            )
            await sleep(delay)


class CircuitOpenError(Exception):
    """Raised when a call is attempted while the circuit is open."""


class CircuitBreaker:
    """
    Circuit breaker for async operations.

    CLOSED: calls pass through, failures are counted.
    OPEN: calls fail fast until `reset_timeout` seconds have passed.
    HALF_OPEN: one trial call decides whether to close or re-open.
    """

    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"

    def __init__(
        self,
        threshold: int = 5,
        reset_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.threshold = threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._failures = 0
        self._last_failure_time = 0.0
        self._trial_in_flight = False
        self._state = self.CLOSED

    @property
    def state(self) -> str:
        return self._state

    async def call(self, operation: Callable[[], Awaitable[T]]) -> T:
        if self._state == self.OPEN:
            if self._clock() - self._last_failure_time > self.reset_timeout:
                self._state = self.HALF_OPEN
                logger.info("Circuit breaker moving to HALF_OPEN state")
            else:
                raise CircuitOpenError("Circuit breaker is OPEN")

        trial = self._state == self.HALF_OPEN
        if trial:
            if self._trial_in_flight:
                raise CircuitOpenError("Circuit breaker is HALF_OPEN, trial call in progress")
            self._trial_in_flight = True

        try:
            result = await operation()
        except Exception:
            self._record_failure()
            raise
        finally:
            if trial:
                self._trial_in_flight = False

        if trial:
            logger.info("Circuit breaker reset to CLOSED state")
        self._reset()
        return result

    def _record_failure(self) -> None:
        self._failures += 1
        self._last_failure_time = self._clock()

        if self._state == self.HALF_OPEN or self._failures >= self.threshold:
            self._state = self.OPEN
            logger.warning(f"Circuit breaker opened after {self._failures} failures")

    def _reset(self) -> None:
        self._failures = 0
        self._state = self.CLOSED
