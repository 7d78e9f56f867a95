"""Interface for client-side rate limiters.

Both the in-process and the file-backed token bucket implement this contract,
so the request pipeline does not care which one a deployment picks.
"""

import abc

# Finite by default; 0 means "wait forever" and has to be asked for.
DEFAULT_MAX_WAIT_SECONDS = 30.0


class RateLimiterInterface(abc.ABC):
    """Abstract Base Class for token-bucket admission control."""

    @property
    @abc.abstractmethod
    def rate(self) -> float:
        """Tokens added per second."""
        pass

    @property
    @abc.abstractmethod
    def burst_size(self) -> int:
        """Bucket capacity."""
        pass

    @abc.abstractmethod
    def try_acquire(self, tokens: int = 1) -> bool:
        """Takes `tokens` if available right now; never blocks."""
        pass

    @abc.abstractmethod
    def acquire(self, tokens: int = 1, max_wait: float = DEFAULT_MAX_WAIT_SECONDS) -> bool:
        """Blocks until `tokens` are taken or `max_wait` seconds pass.

        Args:
            tokens: Number of tokens to take.
            max_wait: Upper bound on the wait in seconds; 0 waits indefinitely.

        Returns:
            True if the tokens were taken, False on timeout.
        """
        pass

    @abc.abstractmethod
    def available_tokens(self) -> float:
        """Current (refilled) token count."""
        pass

    @abc.abstractmethod
    def time_until_available(self, tokens: int = 1) -> float:
        """Seconds until `tokens` will be available, 0 if they already are."""
        pass

    @abc.abstractmethod
    def reset(self) -> None:
        """Empties the bucket."""
        pass
