"""
Retry with exponential backoff for document store writes.

``retry_call`` is what the manager uses: one call plus ``retry_attempts``
retries, sleeping ``retry_delay`` seconds before the first retry and
doubling after that. A ShipgateError decides for itself whether it is
worth retrying; other exceptions are retried only when they are I/O
failures.
"""

from __future__ import annotations

import functools
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Tuple, Type, TypeVar

from .errors import ShipgateError

logger = logging.getLogger(__name__)

T = TypeVar("T")

RETRYABLE_EXCEPTIONS: Tuple[Type[Exception], ...] = (ConnectionError, OSError)


@dataclass
class RetryConfig:
    # Total number of attempts, including the first one
    max_retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 60.0
    backoff_factor: float = 2.0


def calculate_delay(attempt: int, config: RetryConfig) -> float:
    """Seconds to sleep after failed attempt number ``attempt`` (1-based)."""
    delay = config.base_delay * (config.backoff_factor ** (attempt - 1))
    return min(delay, config.max_delay)


def should_retry(exception: Exception, attempt: int, config: RetryConfig) -> bool:
    if attempt >= config.max_retries:
        return False
    if isinstance(exception, ShipgateError):
        return exception.retryable
    return isinstance(exception, RETRYABLE_EXCEPTIONS)


def _callable_name(func: Callable[..., Any]) -> str:
    return getattr(func, "__qualname__", None) or repr(func)


def retry_with_backoff(
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    backoff_factor: float = 2.0,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator for automatic retry with exponential backoff.

    Example:
        @retry_with_backoff(max_retries=3, base_delay=0.5)
        def save_history():
            ...
    """
    config = RetryConfig(
        max_retries=max(1, max_retries),
        base_delay=base_delay,
        max_delay=max_delay,
        backoff_factor=backoff_factor,
    )

    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        name = _callable_name(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            attempt = 0
            while True:
                attempt += 1
                try:
                    return func(*args, **kwargs)
                except Exception as exc:
                    if not should_retry(exc, attempt, config):
                        if attempt > 1:
                            logger.error("Giving up on %s after %d attempts: %s", name, attempt, exc)
                        raise
                    delay = calculate_delay(attempt, config)
                    logger.warning(
                        "Retry %d/%d for %s after %.2fs: %s",
                        attempt,
                        config.max_retries - 1,
                        name,
                        delay,
                        exc,
                    )
                    time.sleep(delay)

        return wrapper

    return decorator


def retry_call(
    func: Callable[..., T],
    *args: Any,
    retry_attempts: int = 0,
    retry_delay: float = 0.0,
    **kwargs: Any,
) -> T:
    """Call ``func`` once plus up to ``retry_attempts`` retries.

    ``retry_delay`` is the base delay in seconds; later retries back off
    exponentially from it.
    """
    wrapped = retry_with_backoff(
        max_retries=max(0, int(retry_attempts)) + 1,
        base_delay=max(0.0, retry_delay),
    )(func)
    return wrapped(*args, **kwargs)
