"""Interface for response caching.

Defines the contract for storing, retrieving, and managing cached responses
keyed by a request fingerprint, with TTL-based expiration.
"""

import abc
from typing import Optional

from ..models.common import CacheKey, CacheStats


class CacheService(abc.ABC):
    """Abstract Base Class for response cache operations.

    Implementations must treat their own failures as misses: nothing but
    programming errors may escape from these methods.
    """

    @abc.abstractmethod
    def generate_key(self, prompt: str, model: str, system_prompt: str) -> CacheKey:
        """Computes the deterministic fingerprint of a request."""
        pass

    @abc.abstractmethod
    def get(self, key: CacheKey) -> Optional[str]:
        """Retrieves a cached response.

        Args:
            key: The cache key to look up.

        Returns:
            The cached response if present and not expired, otherwise None.
        """
        pass

    @abc.abstractmethod
    def put(self, key: CacheKey, response: str) -> None:
        """Stores a response. Failures are logged, never raised."""
        pass

    @abc.abstractmethod
    def clear(self) -> int:
        """Removes every entry and returns how many were removed."""
        pass

    @abc.abstractmethod
    def clean_expired(self) -> int:
        """Removes expired entries and returns how many were removed."""
        pass

    @abc.abstractmethod
    def get_stats(self) -> CacheStats:
        """Returns hit/miss counters and the current size of the store."""
        pass
