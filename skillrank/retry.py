"""
Retry logic with exponential backoff for transient collaborator failures.

Used by the recompute coordinator around skill score lookups, requirement
lookups and every match store write.
"""

import logging
import time
from typing import Any, Callable, Type

from skillrank.config import RETRY_BASE_DELAY, RETRY_MAX_ATTEMPTS, RETRY_MAX_DELAY
from skillrank.utils import SkillRankError

logger = logging.getLogger(__name__)


class RetryError(SkillRankError):
    """Raised when all retry attempts are exhausted."""

    def __init__(self, message: str, attempts: int, last_exception: Exception):
        super().__init__(message)
        self.attempts = attempts
        self.last_exception = last_exception


def backoff_delays(
    max_attempts: int = RETRY_MAX_ATTEMPTS,
    base_delay: float = RETRY_BASE_DELAY,
    max_delay: float = RETRY_MAX_DELAY,
    exponential_base: float = 2.0,
) -> list[float]:
    """
    Compute the sleep before each retry.

    Args:
        max_attempts: Total attempts including the first call
        base_delay: Delay before the first retry in seconds
        max_delay: Cap for any single delay in seconds
        exponential_base: Multiplier applied after each retry

    Returns:
        List of max_attempts - 1 delays
    """
    delays = []
    delay = base_delay
    for _ in range(max(max_attempts - 1, 0)):
        delays.append(min(delay, max_delay))
        delay *= exponential_base
    return delays


def call_with_retry(
    func: Callable[..., Any],
    *args,
    max_attempts: int = RETRY_MAX_ATTEMPTS,
    base_delay: float = RETRY_BASE_DELAY,
    max_delay: float = RETRY_MAX_DELAY,
    exceptions: tuple[Type[Exception], ...] = (Exception,),
    on_retry: Callable[[int, Exception, float], None] | None = None,
    sleep: Callable[[float], None] = time.sleep,
    **kwargs,
) -> Any:
    """
    Call func, retrying with exponential backoff on the given exceptions.

    Args:
        func: Callable to invoke
        max_attempts: Total attempts including the first call (minimum 1)
        base_delay: Initial delay in seconds
        max_delay: Maximum delay between retries in seconds
        exceptions: Exception types that trigger a retry
        on_retry: Optional callback(attempt, exception, delay) before sleeping
        sleep: Sleep function (patched in tests)

    Returns:
        Whatever func returns

    Raises:
        RetryError: When every attempt failed
    """
    delays = backoff_delays(max_attempts, base_delay, max_delay)
    attempts = len(delays) + 1

    for attempt in range(1, attempts + 1):
        try:
            return func(*args, **kwargs)
        except exceptions as e:
            if attempt == attempts:
                raise RetryError(
                    f"Failed after {attempts} attempts: {e}", attempts, e
                ) from e

            delay = delays[attempt - 1]
            if on_retry:
                on_retry(attempt, e, delay)
            else:
                logger.warning(
                    f"Attempt {attempt}/{attempts} of {getattr(func, '__name__', func)} "
                    f"failed ({e}); retrying in {delay:.2f}s"
                )
            sleep(delay)

    # Unreachable: the loop either returns or raises
    raise RetryError("Unexpected retry exhaustion", attempts, RuntimeError())
