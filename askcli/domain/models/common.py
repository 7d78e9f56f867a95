"""Defines common Value Objects used across different domain contexts.

These objects represent simple values or concepts like prompts, model names,
cache keys and statistics, ensuring consistency across the layers.
"""

from dataclasses import dataclass
from enum import Enum
from typing import NewType, Optional, TypedDict

# === Core Value Objects ===

# Using NewType for semantic clarity, although they are strings at runtime.
PromptText = NewType("PromptText", str)        # User's text prompt
SystemPrompt = NewType("SystemPrompt", str)    # System instruction sent with every prompt
ModelName = NewType("ModelName", str)          # Upstream model identifier
AIResponse = NewType("AIResponse", str)        # Raw response text from the AI model

# === Caching Context ===
CacheKey = NewType("CacheKey", str)            # Hex digest fingerprint of a request


@dataclass(frozen=True)
class ChatRequest:
    """The request-defining fields that are fingerprinted for caching."""
    prompt: PromptText
    model: ModelName
    system_prompt: SystemPrompt


@dataclass(frozen=True)
class FetchResult:
    """A response and whether it was served from the cache."""
    response: AIResponse
    from_cache: bool


# --- Structured Data ---
class CacheStats(TypedDict):
    """Snapshot of cache usage."""
    hits: int
    misses: int
    count: int
    size_bytes: int


class BackoffPolicy(TypedDict):
    """Value Object representing retry backoff configuration."""
    max_retries: int
    initial_delay: float
    max_delay: float


class LimiterStatus(TypedDict):
    """Snapshot of a rate limiter for display."""
    backend: str
    available_tokens: float
    burst_size: int
    rate: float
    state_file: Optional[str]


class OutputFormat(str, Enum):
    PLAIN = "plain"
    MARKDOWN = "markdown"
    JSON = "json"
