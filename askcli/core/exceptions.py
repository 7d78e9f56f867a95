"""Exception hierarchy for askcli.

Request failures are split into retryable (throttling, upstream faults) and
non-retryable (client errors, validation) so the retry executor can decide
without knowing anything about the upstream SDK.
"""

from typing import Optional


class AskCliError(Exception):
    """Base class for all askcli errors."""


class RequestError(AskCliError):
    """A request to the upstream API failed."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        self.message = message
        if status_code is not None:
            message = f"API Error [{status_code}]: {message}"
        super().__init__(message)


class RetryableError(RequestError):
    """Transient upstream failure; the same request may succeed later."""


class ThrottledError(RetryableError):
    """Upstream signaled a rate limit (HTTP 429)."""


class UpstreamFaultError(RetryableError):
    """Upstream server fault (5xx), connection failure or timeout."""


class NonRetryableError(RequestError):
    """Failure that retrying cannot fix (bad request, auth, not found)."""


class ValidationError(NonRetryableError):
    """Local input validation failed before anything was sent."""


class ConfigurationError(AskCliError):
    """Missing or invalid configuration (API key, settings values)."""


class ResourceUnavailableError(AskCliError):
    """A shared local resource could not be obtained in time.

    Raised on lock-acquisition timeouts for the shared rate-limiter state
    file and when waiting for a rate-limiter token times out. Callers should
    treat it as "rate-limited, try again later".
    """


class CacheIOError(AskCliError):
    """Cache read/write failure. Never escapes the cache."""


TOO_MANY_REQUESTS = 429


def error_from_status(status_code: int, message: str) -> RequestError:
    """Maps an HTTP status code to the matching RequestError subclass."""
    if status_code == TOO_MANY_REQUESTS:
        return ThrottledError(message, status_code=status_code)
    if status_code >= 500:
        return UpstreamFaultError(message, status_code=status_code)
    return NonRetryableError(message, status_code=status_code)
