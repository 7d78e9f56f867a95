"""Implementation of an in-process rate limiter.

Controls the frequency of outgoing requests made by threads of one process
using a token bucket. Offers no guarantee across processes; see
file_rate_limiter for that.
"""

import logging
import threading
import time
from typing import Callable, Optional

from askcli.domain.interfaces.rate_limiter import DEFAULT_MAX_WAIT_SECONDS, RateLimiterInterface
from askcli.domain.models.token_bucket import TokenBucketState, validate_bucket_config

logger = logging.getLogger(__name__)

DEFAULT_RATE = 3.0  # tokens per second
DEFAULT_BURST_SIZE = 5


class RateLimiter(RateLimiterInterface):
    """Thread-safe token bucket rate limiter."""

    def __init__(
        self,
        rate: float = DEFAULT_RATE,
        burst_size: Optional[int] = DEFAULT_BURST_SIZE,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initializes the rate limiter with a full bucket.

        Args:
            rate: Tokens added per second.
            burst_size: Bucket capacity. None derives it from the rate.
            clock: Monotonic time source in seconds.
        """
        if burst_size is None:
            burst_size = max(1, int(rate))
        validate_bucket_config(rate, burst_size)

        self._clock = clock
        self._state = TokenBucketState.full(rate, burst_size, clock())
        # Condition guards the bucket; waiters are woken whenever tokens are added.
        self._condition = threading.Condition(threading.Lock())
        logger.info(f"RateLimiter initialized: {rate} tokens/s, burst {burst_size}")

    @property
    def rate(self) -> float:
        return self._state.rate

    @property
    def burst_size(self) -> int:
        return self._state.burst_size

    def _refill(self) -> None:
        """Recomputes tokens. Must be called with the condition held."""
        if self._state.refill(self._clock()) > 0:
            self._condition.notify_all()

    def _check_request(self, tokens: int) -> None:
        if tokens < 1:
            raise ValueError("Must request at least one token.")
        if tokens > self._state.burst_size:
            raise ValueError(f"Cannot acquire {tokens} tokens from a bucket of size {self._state.burst_size}.")

    def try_acquire(self, tokens: int = 1) -> bool:
        self._check_request(tokens)
        with self._condition:
            self._refill()
            return self._state.try_debit(tokens)

    def acquire(self, tokens: int = 1, max_wait: float = DEFAULT_MAX_WAIT_SECONDS) -> bool:
        """Blocks the calling thread until `tokens` are taken.

        Args:
            tokens: Number of tokens to take.
            max_wait: Maximum seconds to wait; 0 waits indefinitely.

        Returns:
            True once the tokens are taken, False if `max_wait` elapsed first.
        """
        self._check_request(tokens)
        deadline = time.monotonic() + max_wait if max_wait > 0 else None

        with self._condition:
            while True:
                self._refill()
                if self._state.try_debit(tokens):
                    return True

                wait_time = self._state.seconds_until(tokens)
                if deadline is not None:
                    remaining = deadline - time.monotonic()
                    if remaining <= 0:
                        logger.debug(f"Timed out after {max_wait}s waiting for {tokens} token(s).")
                        return False
                    wait_time = min(wait_time, remaining)

                logger.debug(f"Rate limit reached. Waiting up to {wait_time:.3f} seconds.")
                self._condition.wait(timeout=max(wait_time, 0.001))

    def available_tokens(self) -> float:
        with self._condition:
            self._refill()
            return self._state.tokens

    def time_until_available(self, tokens: int = 1) -> float:
        with self._condition:
            self._refill()
            return self._state.seconds_until(tokens)

    def reset(self) -> None:
        """Empties the bucket; it refills at the configured rate from now on."""
        with self._condition:
            self._state = TokenBucketState.empty(self._state.rate, self._state.burst_size, self._clock())
            self._condition.notify_all()
        logger.debug("RateLimiter reset to an empty bucket.")
