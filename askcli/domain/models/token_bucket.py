"""Token bucket model shared by the in-process and file-backed rate limiters.

Pure data and arithmetic. Callers supply the current time (seconds) so the
same model works with a monotonic clock in memory and with wall-clock time
when the state is persisted and shared between processes.
"""

from dataclasses import dataclass
from typing import Any, Dict

STATE_FORMAT_VERSION = 1


@dataclass
class TokenBucketState:
    """Snapshot of a token bucket.

    Attributes:
        tokens: Current (fractional) token count, kept within [0, burst_size].
        last_update: Time of the last refill, in seconds.
        rate: Tokens added per second.
        burst_size: Bucket capacity.
        format_version: Schema tag of the persisted layout.
    """
    tokens: float
    last_update: float
    rate: float
    burst_size: int
    format_version: int = STATE_FORMAT_VERSION

    @classmethod
    def full(cls, rate: float, burst_size: int, now: float) -> "TokenBucketState":
        """A freshly initialized bucket at full capacity."""
        return cls(tokens=float(burst_size), last_update=now, rate=rate, burst_size=burst_size)

    @classmethod
    def empty(cls, rate: float, burst_size: int, now: float) -> "TokenBucketState":
        return cls(tokens=0.0, last_update=now, rate=rate, burst_size=burst_size)

    def refill(self, now: float) -> float:
        """Adds the tokens accrued since the last update.

        A clock that went backwards leaves the state untouched, so the skew
        is never credited later on.

        Returns:
            The number of tokens added.
        """
        elapsed = now - self.last_update
        if elapsed <= 0:
            return 0.0
        before = self.tokens
        self.tokens = max(0.0, min(float(self.burst_size), self.tokens + elapsed * self.rate))
        self.last_update = now
        return self.tokens - before

    def try_debit(self, tokens: int = 1) -> bool:
        """Removes `tokens` if that many are available."""
        if self.tokens >= tokens:
            self.tokens -= tokens
            return True
        return False

    def seconds_until(self, tokens: int = 1) -> float:
        """Seconds until `tokens` will be available at the current rate."""
        missing = tokens - self.tokens
        if missing <= 0:
            return 0.0
        return missing / self.rate

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tokens": self.tokens,
            "last_update_ms": int(round(self.last_update * 1000)),
            "rate": self.rate,
            "burst_size": self.burst_size,
            "format_version": self.format_version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TokenBucketState":
        """Rebuilds a state from its persisted form.

        Raises:
            ValueError: If the data is malformed or has another format version.
        """
        if not isinstance(data, dict):
            raise ValueError("Token bucket state must be a JSON object")
        if data.get("format_version") != STATE_FORMAT_VERSION:
            raise ValueError(f"Unsupported token bucket format version: {data.get('format_version')!r}")
        try:
            state = cls(
                tokens=float(data["tokens"]),
                last_update=int(data["last_update_ms"]) / 1000.0,
                rate=float(data["rate"]),
                burst_size=int(data["burst_size"]),
            )
        except (KeyError, TypeError) as e:
            raise ValueError(f"Invalid token bucket state: {e}") from e
        if state.rate <= 0 or state.burst_size < 1 or not 0 <= state.tokens <= state.burst_size:
            raise ValueError("Token bucket state out of range")
        return state


def validate_bucket_config(rate: float, burst_size: int) -> None:
    """Raises ValueError for a rate or capacity no bucket can work with."""
    if rate <= 0:
        raise ValueError("Rate must be positive.")
    if burst_size < 1:
        raise ValueError("Burst size must be at least 1.")
