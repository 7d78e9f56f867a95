"""Domain Events related to API calls and resilience.

Examples include events for when calls are deferred, retried, fail, succeed
or are answered from the cache.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

logger = logging.getLogger(__name__)


@dataclass
class DomainEvent:
    """Base class for domain events."""


EventHandler = Callable[[DomainEvent], None]


def log_event(event: DomainEvent) -> None:
    """Default event handler: records the event in the debug log."""
    logger.debug(f"EVENT: {event}")


# --- Specific API Events ---

@dataclass
class ApiCallInitiated(DomainEvent):
    """Event triggered when an API call is about to be made."""
    model: str
    cache_key: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallSucceeded(DomainEvent):
    """Event triggered when an API call succeeds."""
    model: str
    latency_ms: float
    cache_key: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallFailed(DomainEvent):
    """Event triggered when an API call fails definitively (after retries)."""
    error_type: str
    error_message: str
    attempts: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallDeferred(DomainEvent):
    """Event triggered when an API call has to wait for the rate limiter."""
    wait_time_seconds: float
    cache_key: Optional[str] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class RetryScheduled(DomainEvent):
    """Event triggered when a retry is scheduled for a failed API call."""
    attempt_number: int
    delay_seconds: float
    error_type: str
    timestamp: float = field(default_factory=time.time)


@dataclass
class CacheHit(DomainEvent):
    """Event triggered when a request is answered from the response cache."""
    cache_key: str
    timestamp: float = field(default_factory=time.time)
