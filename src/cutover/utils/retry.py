"""Retry strategy with exponential backoff for probes and external tools."""

import time
import random
from typing import Callable, TypeVar

import requests

from cutover.utils.errors import DeploymentError, ErrorCategory
from cutover.utils.logging import get_logger

logger = get_logger(__name__)

T = TypeVar('T')


class RetryStrategy:
    """Implements exponential backoff retry strategy for transient errors.

    Timeouts in this system live inside actions, so a bounded retry loop is
    how a health probe waits for a service to come back after a restart.
    """

    # Error categories that may clear up on their own
    RETRYABLE_CATEGORIES = {
        ErrorCategory.INFRASTRUCTURE,
        ErrorCategory.TIMEOUT,
    }

    # Network-related exceptions that should trigger a retry
    RETRYABLE_EXCEPTIONS = (
        ConnectionError,
        TimeoutError,
        requests.ConnectionError,
        requests.Timeout,
    )

    def __init__(
        self,
        max_retries: int = 5,
        base_delay: float = 1.0,
        max_delay: float = 30.0,
        exponential_base: float = 2.0,
        jitter: bool = True,
        sleep: Callable[[float], None] = time.sleep
    ):
        """Initialize retry strategy.

        Args:
            max_retries: Maximum number of retry attempts
            base_delay: Base delay in seconds for first retry
            max_delay: Maximum delay in seconds between retries
            exponential_base: Base for exponential backoff calculation
            jitter: Whether to add random jitter to delay
            sleep: Function used to wait between attempts
        """
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.max_delay = max_delay
        self.exponential_base = exponential_base
        self.jitter = jitter
        self.sleep = sleep

    def should_retry(self, error: Exception, attempt: int) -> bool:
        """Determine if an error should trigger a retry.

        Args:
            error: The exception that occurred
            attempt: Current attempt number (0-indexed)

        Returns:
            True if the error is retryable and max retries not exceeded
        """
        if attempt >= self.max_retries:
            return False

        if isinstance(error, self.RETRYABLE_EXCEPTIONS):
            return True

        if isinstance(error, DeploymentError):
            return error.category in self.RETRYABLE_CATEGORIES

        return False

    def get_delay(self, attempt: int) -> float:
        """Calculate delay before next retry using exponential backoff.

        Args:
            attempt: Current attempt number (0-indexed)

        Returns:
            Delay in seconds before next retry
        """
        delay = min(
            self.base_delay * (self.exponential_base ** attempt),
            self.max_delay
        )

        # Random value between 0 and 10% of delay
        if self.jitter:
            delay += random.uniform(0, delay * 0.1)

        return delay

    def execute_with_retry(
        self,
        func: Callable[..., T],
        *args,
        **kwargs
    ) -> T:
        """Execute a function with retry logic.

        Args:
            func: Function to execute
            *args: Positional arguments for the function
            **kwargs: Keyword arguments for the function

        Returns:
            Result of the function call

        Raises:
            The last exception if all retries are exhausted
        """
        attempt = 0
        while True:
            try:
                result = func(*args, **kwargs)
                if attempt > 0:
                    logger.info(f"Operation succeeded after {attempt} retries")
                return result
            except Exception as e:
                if not self.should_retry(e, attempt):
                    logger.debug(f"Error is not retryable or max retries exceeded: {e}")
                    raise

                delay = self.get_delay(attempt)
                logger.warning(
                    f"Attempt {attempt + 1}/{self.max_retries + 1} failed: "
                    f"{type(e).__name__}: {e}. Retrying in {delay:.2f}s..."
                )
                self.sleep(delay)
                attempt += 1

    def poll_until(self, predicate: Callable[[], bool], description: str = "condition") -> bool:
        """Poll a predicate until it returns True or attempts run out.

        Retryable exceptions count as a failed poll; anything else propagates.

        Args:
            predicate: Zero-argument callable returning True once satisfied
            description: Label used in log messages

        Returns:
            True if the predicate was satisfied within the attempt budget
        """
        for attempt in range(self.max_retries + 1):
            try:
                if predicate():
                    return True
                reason = "not yet satisfied"
            except Exception as e:
                if not isinstance(e, self.RETRYABLE_EXCEPTIONS) and not (
                    isinstance(e, DeploymentError) and e.category in self.RETRYABLE_CATEGORIES
                ):
                    raise
                reason = f"{type(e).__name__}: {e}"

            if attempt < self.max_retries:
                delay = self.get_delay(attempt)
                logger.debug(
                    f"Polling {description} ({attempt + 1}/{self.max_retries + 1}): "
                    f"{reason}. Next check in {delay:.2f}s"
                )
                self.sleep(delay)

        logger.warning(f"Gave up waiting for {description} after {self.max_retries + 1} attempts")
        return False
