"""
Retry with exponential backoff.
"""

import time
import logging
from typing import Callable, Optional, Tuple, Type, TypeVar

from .exceptions import TransportError, ServerError, RetryLaterError

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Failures worth another attempt: nothing reached the server, or the server
# failed on its side
TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (TransportError, ServerError, RetryLaterError)


def retry_with_backoff(
    func: Callable[[], T],
    max_retries: int = 3,
    base_delay: float = 1.0,
    max_delay: float = 60.0,
    backoff_factor: float = 2.0,
    exceptions: tuple = (Exception,),
    sleep: Callable[[float], None] = time.sleep,
) -> T:
    """
    Retry function with exponential backoff.

    Args:
        func: Zero-argument function to call
        max_retries: Maximum number of retry attempts after the first call
        base_delay: Delay before the first retry, in seconds
        max_delay: Upper bound for any single delay
        backoff_factor: Multiplier applied to the delay after every retry
        exceptions: Exceptions to catch and retry on; others propagate at once
        sleep: Function used to wait between attempts

    Returns:
        Function result

    Raises:
        The last exception, unchanged, if all retries fail
    """
    attempt = 0

    while True:
        try:
            return func()
        except exceptions as e:
            if attempt >= max_retries:
                raise

            delay = min(base_delay * (backoff_factor ** attempt), max_delay)
            attempt += 1
            logger.warning(
                "Attempt %d/%d failed (%s), retrying in %.1fs",
                attempt, max_retries + 1, e, delay,
            )
            sleep(delay)


class RetryExecutor:
    """
    Runs operations with retries for a fixed set of transient failures.

    Everything outside ``retryable`` propagates on the first occurrence.
    """

    def __init__(
        self,
        retryable: Tuple[Type[BaseException], ...] = TRANSIENT_ERRORS,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
        sleep: Optional[Callable[[float], None]] = None,
    ):
        self.retryable = retryable
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.sleep = sleep or time.sleep

    def run(self, max_retries: int, operation: Callable[[], T]) -> T:
        """Call ``operation`` once, then up to ``max_retries`` more times."""
        return retry_with_backoff(
            operation,
            max_retries=max_retries,
            base_delay=self.base_delay,
            max_delay=self.max_delay,
            exceptions=self.retryable,
            sleep=self.sleep,
        )
