"""Service for executing API calls with automatic retries.

Implements exponential backoff for transient errors such as rate limits (429)
or temporary server issues (5xx). Anything not classified as retryable is
propagated on the first occurrence.
"""

import logging
import random
import time
from typing import Callable, Optional, TypeVar

from askcli.core.exceptions import RetryableError
from askcli.domain.events.api_events import ApiCallFailed, EventHandler, RetryScheduled, log_event

logger = logging.getLogger(__name__)

T = TypeVar("T")

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY_SECONDS = 1.0
DEFAULT_MAX_DELAY_SECONDS = 30.0
MAX_JITTER_SECONDS = 0.1

RetryCallback = Callable[[int, float, Exception], None]


def retry_with_backoff(
    operation: Callable[[], T],
    max_retries: int = DEFAULT_MAX_RETRIES,
    initial_delay: float = DEFAULT_INITIAL_DELAY_SECONDS,
    *,
    max_delay: float = DEFAULT_MAX_DELAY_SECONDS,
    sleep: Callable[[float], None] = time.sleep,
    on_retry: Optional[RetryCallback] = None,
) -> T:
    """Runs `operation`, retrying retryable failures with exponential backoff.

    The delay doubles after every failed attempt (plus up to 100ms of jitter)
    and is capped at `max_delay`. Once `max_retries` retries are used up the
    last retryable error is raised as is.

    Args:
        operation: Zero-argument callable to execute.
        max_retries: Retries after the first attempt (total attempts = max_retries + 1).
        initial_delay: Seconds to wait before the first retry.
        max_delay: Upper bound for a single delay.
        sleep: Function used to wait; injectable for tests.
        on_retry: Called as on_retry(attempt_number, delay, error) before each sleep.

    Returns:
        Whatever `operation` returns.

    Raises:
        ValueError: If `max_retries` or `initial_delay` is negative.
        RetryableError: The last error once retries are exhausted.
        Exception: Any non-retryable error, immediately.
    """
    if max_retries < 0:
        raise ValueError("max_retries must not be negative.")
    if initial_delay < 0:
        raise ValueError("initial_delay must not be negative.")

    delay = initial_delay
    attempt = 0
    while True:
        try:
            return operation()
        except RetryableError as e:
            if attempt >= max_retries:
                logger.error(f"Request failed after {attempt + 1} attempt(s): {e}")
                raise

            logger.warning(
                f"Request failed (attempt {attempt + 1}/{max_retries + 1}): {e}. "
                f"Retrying in {delay:.2f}s..."
            )
            if on_retry is not None:
                on_retry(attempt + 1, delay, e)
            sleep(delay)
            delay = min(delay * 2 + random.uniform(0, MAX_JITTER_SECONDS), max_delay)
            attempt += 1


class ApiRetryService:
    """Carries a retry policy and reports retries as domain events."""

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        initial_delay: float = DEFAULT_INITIAL_DELAY_SECONDS,
        max_delay: float = DEFAULT_MAX_DELAY_SECONDS,
        event_handler: Optional[EventHandler] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if max_retries < 0:
            raise ValueError("max_retries must not be negative.")
        if initial_delay < 0:
            raise ValueError("initial_delay must not be negative.")
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.max_delay = max_delay
        self._dispatch = event_handler or log_event
        self._sleep = sleep

        logger.info(
            f"ApiRetryService initialized: max_retries={max_retries}, "
            f"initial_delay={initial_delay}s, max_delay={max_delay}s"
        )

    def _on_retry(self, attempt_number: int, delay: float, error: Exception) -> None:
        self._dispatch(
            RetryScheduled(attempt_number=attempt_number, delay_seconds=delay, error_type=type(error).__name__)
        )

    def execute_with_retry(self, operation: Callable[[], T]) -> T:
        """Executes `operation` under this service's retry policy.

        Raises:
            RetryableError: The last error once retries are exhausted.
            Exception: Any non-retryable error, immediately.
        """
        attempts = 0

        def counted() -> T:
            nonlocal attempts
            attempts += 1
            return operation()

        try:
            return retry_with_backoff(
                counted,
                self.max_retries,
                self.initial_delay,
                max_delay=self.max_delay,
                sleep=self._sleep,
                on_retry=self._on_retry,
            )
        except Exception as e:
            self._dispatch(ApiCallFailed(error_type=type(e).__name__, error_message=str(e), attempts=attempts))
            raise
