"""File-backed token bucket rate limiter shared between processes.

Several askcli processes on one machine (for example parallel shell
invocations) coordinate through a single JSON state file. Every operation
runs lock -> read -> refill -> debit -> write -> unlock, so the bucket is
never updated from a stale copy.
"""

import json
import logging
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Iterator, Union

from askcli.core.exceptions import ResourceUnavailableError
from askcli.domain.interfaces.rate_limiter import DEFAULT_MAX_WAIT_SECONDS, RateLimiterInterface
from askcli.domain.models.token_bucket import TokenBucketState, validate_bucket_config
from askcli.infrastructure.resilience.file_lock import (
    DEFAULT_LOCK_TIMEOUT_SECONDS,
    FileLock,
    atomic_write_text,
)

logger = logging.getLogger(__name__)

STATE_FILE_SUFFIX = ".ratelimit"
LOCK_FILE_SUFFIX = ".lock"
DEFAULT_STALE_AGE_SECONDS = 60 * 60  # 1 hour
MAX_POLL_INTERVAL_SECONDS = 0.1
MIN_POLL_INTERVAL_SECONDS = 0.01


class FileRateLimiter(RateLimiterInterface):
    """Token bucket whose state lives in a shared file."""

    def __init__(
        self,
        state_file: Union[str, Path],
        rate: float = 3.0,
        burst_size: int = 5,
        lock_timeout: float = DEFAULT_LOCK_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        """Initializes the limiter handle.

        The state file itself is created lazily by the first operation that
        writes it; until then the bucket counts as full.

        Args:
            state_file: Path to the shared state file.
            rate: Tokens added per second.
            burst_size: Bucket capacity.
            lock_timeout: Seconds to wait for the file lock.
            clock: Wall-clock time source in seconds (shared across processes).
        """
        validate_bucket_config(rate, burst_size)
        self.state_file = Path(state_file)
        self.lock_file = self.state_file.with_name(self.state_file.name + LOCK_FILE_SUFFIX)
        self._rate = rate
        self._burst_size = burst_size
        self.lock_timeout = lock_timeout
        self._clock = clock
        self.state_file.parent.mkdir(parents=True, exist_ok=True)
        logger.info(f"FileRateLimiter initialized: {rate} tokens/s, burst {burst_size}, state={self.state_file}")

    @property
    def rate(self) -> float:
        return self._rate

    @property
    def burst_size(self) -> int:
        return self._burst_size

    @contextmanager
    def _lock(self) -> Iterator[FileLock]:
        """Holds the state file lock. OS errors opening it surface as ResourceUnavailableError."""
        lock = FileLock(self.lock_file, timeout=self.lock_timeout)
        try:
            lock.acquire()
        except OSError as e:
            raise ResourceUnavailableError(f"Cannot lock rate limiter state {self.lock_file}: {e}") from e
        try:
            yield lock
        finally:
            lock.release()

    def _load_state(self, now: float) -> TokenBucketState:
        """Reads the shared state. Must be called with the lock held.

        A missing or unreadable file yields a full bucket initialized at `now`.
        The handle's configured rate and capacity always win over stored ones.
        """
        try:
            raw = self.state_file.read_text(encoding="utf-8")
            state = TokenBucketState.from_dict(json.loads(raw))
        except FileNotFoundError:
            logger.debug(f"No rate limiter state at {self.state_file}; starting with a full bucket.")
            return TokenBucketState.full(self.rate, self.burst_size, now)
        except (OSError, ValueError) as e:
            logger.warning(f"Corrupt rate limiter state file {self.state_file} ({e}); resetting to a full bucket.")
            return TokenBucketState.full(self.rate, self.burst_size, now)

        state.rate = self.rate
        state.burst_size = self.burst_size
        state.tokens = min(state.tokens, float(self.burst_size))
        return state

    def _save_state(self, state: TokenBucketState) -> None:
        try:
            atomic_write_text(self.state_file, json.dumps(state.to_dict()))
        except OSError as e:
            raise ResourceUnavailableError(f"Cannot write rate limiter state {self.state_file}: {e}") from e

    def _check_request(self, tokens: int) -> None:
        if tokens < 1:
            raise ValueError("Must request at least one token.")
        if tokens > self.burst_size:
            raise ValueError(f"Cannot acquire {tokens} tokens from a bucket of size {self.burst_size}.")

    def try_acquire(self, tokens: int = 1) -> bool:
        """Takes `tokens` if available right now.

        Raises:
            ResourceUnavailableError: If the state file cannot be locked in time or written.
        """
        self._check_request(tokens)
        with self._lock():
            now = self._clock()
            state = self._load_state(now)
            state.refill(now)
            acquired = state.try_debit(tokens)
            self._save_state(state)
        if not acquired:
            logger.debug(f"Rate limited: {state.tokens:.2f} token(s) available, {tokens} requested.")
        return acquired

    def acquire(self, tokens: int = 1, max_wait: float = DEFAULT_MAX_WAIT_SECONDS) -> bool:
        """Polls until `tokens` are taken or `max_wait` seconds pass (0 = forever)."""
        self._check_request(tokens)
        start = time.monotonic()
        while True:
            if self.try_acquire(tokens):
                return True

            elapsed = time.monotonic() - start
            if max_wait > 0 and elapsed >= max_wait:
                logger.debug(f"Timed out after {max_wait}s waiting for {tokens} token(s).")
                return False

            wait_time = self.time_until_available(tokens)
            if wait_time > 0:
                wait_time = min(wait_time, MAX_POLL_INTERVAL_SECONDS)
            else:
                wait_time = MIN_POLL_INTERVAL_SECONDS
            if max_wait > 0:
                wait_time = min(wait_time, max_wait - elapsed)
            time.sleep(max(wait_time, 0.0))

    def get_available_tokens(self) -> float:
        """Current refilled token count; does not modify the shared state."""
        with self._lock():
            now = self._clock()
            state = self._load_state(now)
            state.refill(now)
            return state.tokens

    def available_tokens(self) -> float:
        return self.get_available_tokens()

    def time_until_available(self, tokens: int = 1) -> float:
        missing = tokens - self.get_available_tokens()
        if missing <= 0:
            return 0.0
        return missing / self.rate

    def reset(self) -> None:
        """Writes an empty bucket; it refills at the configured rate from now on."""
        with self._lock():
            self._save_state(TokenBucketState.empty(self.rate, self.burst_size, self._clock()))
        logger.info(f"Rate limiter state reset: {self.state_file}")

    @staticmethod
    def cleanup_stale_files(
        directory: Union[str, Path],
        max_age: float = DEFAULT_STALE_AGE_SECONDS,
        now: Callable[[], float] = time.time,
    ) -> int:
        """Deletes state files not modified for more than `max_age` seconds.

        Such files most likely belong to crashed or long-gone processes. Lock
        files are left alone; the OS releases advisory locks of dead processes.

        Returns:
            Number of state files removed.
        """
        directory = Path(directory)
        if not directory.is_dir():
            return 0

        removed = 0
        current = now()
        for path in directory.glob(f"*{STATE_FILE_SUFFIX}"):
            try:
                age = current - path.stat().st_mtime
                if age > max_age:
                    path.unlink()
                    removed += 1
                    logger.info(f"Removed stale rate limiter state {path} (age {age:.0f}s)")
            except OSError as e:
                logger.warning(f"Failed to clean up rate limiter state {path}: {e}")
        return removed
