"""
Timeout utilities for shipgate.

Gate execution is raced against a deadline. The evaluation loop polls the
deadline between criteria, so an expired gate stops evaluating instead of
finishing work nobody will look at.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional

from .errors import ErrorContext, GateTimeoutError

logger = logging.getLogger(__name__)


class Deadline:
    """
    A cancellation point with an explicit deadline.

    Example:
        deadline = Deadline(30.0)
        for criterion in gate.criteria:
            deadline.check(f"Gate execution timeout after {deadline.seconds}s")
            evaluate(criterion)
    """

    def __init__(
        self,
        seconds: Optional[float],
        clock: Callable[[], float] = time.monotonic,
    ):
        self.seconds = seconds
        self._clock = clock
        self._started = clock()

    @property
    def unbounded(self) -> bool:
        return self.seconds is None or self.seconds <= 0

    def elapsed(self) -> float:
        return self._clock() - self._started

    def remaining(self) -> Optional[float]:
        """Seconds left before expiry, or None for an unbounded deadline."""
        if self.unbounded:
            return None
        return max(0.0, self.seconds - self.elapsed())

    @property
    def expired(self) -> bool:
        if self.unbounded:
            return False
        return self.elapsed() >= self.seconds

    def check(self, message: str = "Operation timed out", context: Optional[ErrorContext] = None) -> None:
        """Raise GateTimeoutError once the deadline has passed."""
        if self.expired:
            raise GateTimeoutError(message, timeout=float(self.seconds or 0), context=context)


@contextmanager
def monitored_deadline(
    operation: str,
    timeout_seconds: Optional[float],
    clock: Callable[[], float] = time.monotonic,
) -> Iterator[Deadline]:
    """
    Context manager that yields a Deadline and logs how long the block took.

    Example:
        with monitored_deadline("gate critical-functionality", 300) as deadline:
            deadline.check()
    """
    deadline = Deadline(timeout_seconds, clock=clock)
    try:
        yield deadline
    finally:
        logger.debug(
            f"{operation} completed in {deadline.elapsed():.3f}s "
            f"(timeout: {timeout_seconds}s)"
        )
