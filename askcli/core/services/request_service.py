"""Core service that answers a chat request with resilience.

Every request goes through the same pipeline:

    fingerprint -> cache lookup -> [miss] -> rate limiter -> retried call -> cache store

A cache hit never touches the rate limiter or the network, and failures are
never cached.
"""

import logging
import time
from typing import Callable, Optional

from askcli.core.exceptions import ResourceUnavailableError
from askcli.domain.events.api_events import (
    ApiCallDeferred,
    ApiCallInitiated,
    ApiCallSucceeded,
    CacheHit,
    EventHandler,
    log_event,
)
from askcli.domain.interfaces.cache import CacheService
from askcli.domain.interfaces.rate_limiter import DEFAULT_MAX_WAIT_SECONDS, RateLimiterInterface
from askcli.domain.models.common import CacheStats, ChatRequest, FetchResult
from askcli.infrastructure.resilience.api_retry import ApiRetryService

logger = logging.getLogger(__name__)

NetworkOperation = Callable[[], str]


class RequestService:
    """Serves chat requests from the cache or, on a miss, the network."""

    def __init__(
        self,
        cache: CacheService,
        rate_limiter: RateLimiterInterface,
        retry_service: ApiRetryService,
        acquire_timeout: float = DEFAULT_MAX_WAIT_SECONDS,
        event_handler: Optional[EventHandler] = None,
    ):
        """Initializes the RequestService with its dependencies.

        Args:
            cache: Response cache consulted before any network call.
            rate_limiter: Admission control for outbound calls (either variant).
            retry_service: Retry policy wrapped around the network call.
            acquire_timeout: Seconds to wait for a rate limiter token.
            event_handler: Receives domain events; defaults to debug logging.
        """
        self.cache = cache
        self.rate_limiter = rate_limiter
        self.retry_service = retry_service
        self.acquire_timeout = acquire_timeout
        self._dispatch = event_handler or log_event
        logger.info("RequestService initialized.")

    def fetch(self, request: ChatRequest, network_op: NetworkOperation, use_cache: bool = True) -> FetchResult:
        """Returns the response for `request`, noting whether it came from the cache.

        Args:
            request: The (prompt, model, system prompt) being answered.
            network_op: Zero-argument callable performing one upstream call.
            use_cache: When False the cache is neither read nor written.

        Raises:
            ResourceUnavailableError: No rate limiter token within `acquire_timeout`,
                or the shared limiter state could not be locked.
            RequestError: The upstream call failed (after retries, if retryable).
        """
        key = self.cache.generate_key(request.prompt, request.model, request.system_prompt)

        if use_cache:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug(f"Serving response for {request.model} from cache.")
                self._dispatch(CacheHit(cache_key=key))
                return FetchResult(response=cached, from_cache=True)

        self._wait_for_token(key)

        self._dispatch(ApiCallInitiated(model=request.model, cache_key=key))
        start_time = time.perf_counter()
        response = self.retry_service.execute_with_retry(network_op)
        latency_ms = (time.perf_counter() - start_time) * 1000
        self._dispatch(ApiCallSucceeded(model=request.model, latency_ms=latency_ms, cache_key=key))
        logger.info(f"Received response from {request.model} in {latency_ms:.0f}ms")

        if use_cache:
            self.cache.put(key, response)
        return FetchResult(response=response, from_cache=False)

    def lookup_or_fetch(self, request: ChatRequest, network_op: NetworkOperation, use_cache: bool = True) -> str:
        """Same as fetch() but returns only the response text."""
        return self.fetch(request, network_op, use_cache=use_cache).response

    def _wait_for_token(self, key: str) -> None:
        wait_time = self.rate_limiter.time_until_available(1)
        if wait_time > 0:
            logger.info(f"Rate limit reached, waiting up to {wait_time:.2f}s for a token.")
            self._dispatch(ApiCallDeferred(wait_time_seconds=wait_time, cache_key=key))
        if not self.rate_limiter.acquire(1, self.acquire_timeout):
            raise ResourceUnavailableError(
                f"Rate limit: no request token became available within {self.acquire_timeout:.1f}s. "
                "Try again later."
            )

    # --- Maintenance ---

    def clear_cache(self) -> int:
        return self.cache.clear()

    def clean_expired_cache(self) -> int:
        return self.cache.clean_expired()

    def cache_stats(self) -> CacheStats:
        return self.cache.get_stats()

    def rate_limiter_available(self) -> float:
        return self.rate_limiter.available_tokens()
