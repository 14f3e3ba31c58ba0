"""Bounded retry with exponential backoff."""
import logging
import time
from typing import Callable, Tuple, Type, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")


def call_with_retry(
    operation: Callable[[], T],
    description: str,
    retry_on: Tuple[Type[BaseException], ...],
    should_retry: Callable[[BaseException], bool] = lambda e: True,
    max_retries: int = 2,
    initial_delay: float = 0.5,
    max_delay: float = 8.0,
    sleep: Callable[[float], None] = time.sleep
) -> T:
    """
    Run an operation, retrying transient failures.

    Args:
        operation: Zero-argument callable to run
        description: Human-readable name used in log lines
        retry_on: Exception types eligible for retry
        should_retry: Further filter on an eligible exception
        max_retries: Retries after the first attempt
        initial_delay: Delay before the first retry in seconds
        max_delay: Upper bound for the exponential delay
        sleep: Sleep function (injected by tests)

    Returns:
        Whatever the operation returns

    Raises:
        The last exception once retries are exhausted, or immediately when
        the exception is not retryable
    """
    delay = initial_delay
    attempts = max_retries + 1

    for attempt in range(attempts):
        try:
            return operation()
        except retry_on as e:
            if not should_retry(e) or attempt == attempts - 1:
                raise
            logger.warning(
                f"{description} failed on attempt {attempt + 1}/{attempts}: {e}. "
                f"Retrying in {delay}s..."
            )
            sleep(delay)
            delay = min(delay * 2, max_delay)

    # Unreachable: the final attempt either returns or raises
    raise RuntimeError(f"{description} exhausted retries")
