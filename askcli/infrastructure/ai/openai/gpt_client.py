"""Concrete implementation of the AIModel interface using the OpenAI API.

Hides the specifics of the OpenAI client library and translates its failures
into askcli's retryable / non-retryable error taxonomy. Each call is a single
attempt: the SDK's built-in retries are disabled so the retry executor owns
recovery.
"""

import logging
import os
import time
from typing import Optional

from openai import (
    APIConnectionError,
    APIError,
    APIStatusError,
    APITimeoutError,
    InternalServerError,
    OpenAI,
    RateLimitError,
)

from askcli.core.exceptions import (
    ConfigurationError,
    NonRetryableError,
    ThrottledError,
    UpstreamFaultError,
    ValidationError,
    error_from_status,
)
from askcli.domain.interfaces.ai_model import AIModel
from askcli.domain.models.common import AIResponse, ModelName, PromptText, SystemPrompt

logger = logging.getLogger(__name__)

MAX_PROMPT_LENGTH = 1024 * 1024  # 1 MiB
MAX_API_KEY_LENGTH = 256
DEFAULT_TIMEOUT_SECONDS = 60.0


def redact_api_key(api_key: Optional[str]) -> str:
    """Returns the key with everything but the first and last 4 characters masked."""
    if not api_key:
        return "[EMPTY]"
    if len(api_key) <= 8:
        return "*" * len(api_key)
    return api_key[:4] + "*" * (len(api_key) - 8) + api_key[-4:]


def validate_api_key(api_key: str) -> None:
    if not api_key:
        raise ConfigurationError("API key cannot be empty.")
    if len(api_key) > MAX_API_KEY_LENGTH:
        raise ConfigurationError("API key exceeds maximum allowed length.")
    # Printable ASCII only
    if any(not 32 <= ord(c) <= 126 for c in api_key):
        raise ConfigurationError("API key contains invalid characters.")


def validate_prompt(prompt: str, name: str = "Prompt", allow_empty: bool = False) -> None:
    if not allow_empty and not prompt.strip():
        raise ValidationError(f"{name} cannot be empty.")
    if len(prompt) > MAX_PROMPT_LENGTH:
        raise ValidationError(f"{name} exceeds maximum allowed length of {MAX_PROMPT_LENGTH} characters.")


class GptClient(AIModel):
    """OpenAI implementation of the AIModel interface."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
    ):
        """Initializes the OpenAI client.

        Args:
            api_key: OpenAI API key. Reads from OPENAI_API_KEY env var if None.
            base_url: Alternative API endpoint (OpenAI-compatible servers).
            timeout: Per-request timeout in seconds.

        Raises:
            ConfigurationError: If no valid API key is available.
        """
        effective_api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not effective_api_key:
            raise ConfigurationError(
                "OpenAI API key not provided. Set OPENAI_API_KEY or add openai_api_key to the config file."
            )
        validate_api_key(effective_api_key)

        self.client = OpenAI(api_key=effective_api_key, base_url=base_url, timeout=timeout, max_retries=0)
        logger.info(f"GptClient initialized (key={redact_api_key(effective_api_key)}, base_url={base_url or 'default'})")

    def send_prompt(self, prompt: PromptText, model: ModelName, system_prompt: SystemPrompt) -> AIResponse:
        validate_prompt(prompt)
        validate_prompt(system_prompt, name="System prompt", allow_empty=True)

        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})

        logger.debug(f"Sending prompt ({len(prompt)} chars) to OpenAI model: {model}")
        start_time = time.perf_counter()
        try:
            response = self.client.chat.completions.create(model=model, messages=messages)
        except RateLimitError as e:
            logger.warning(f"OpenAI Rate Limit Error encountered: {e}")
            raise ThrottledError(str(e), status_code=e.status_code) from e
        except InternalServerError as e:
            logger.warning(f"OpenAI server error (Status: {e.status_code}): {e}")
            raise UpstreamFaultError(str(e), status_code=e.status_code) from e
        except APITimeoutError as e:
            logger.warning(f"OpenAI request timed out: {e}")
            raise UpstreamFaultError(f"Request timed out: {e}") from e
        except APIConnectionError as e:
            logger.warning(f"Could not connect to OpenAI: {e}")
            raise UpstreamFaultError(f"Connection error: {e}") from e
        except APIStatusError as e:
            logger.error(f"OpenAI API Error (Status: {e.status_code}): {e}")
            raise error_from_status(e.status_code, str(e)) from e
        except APIError as e:
            logger.error(f"OpenAI API Error: {e}")
            raise NonRetryableError(str(e)) from e

        latency_ms = (time.perf_counter() - start_time) * 1000
        logger.debug(f"Received response from OpenAI in {latency_ms:.2f}ms")
        return AIResponse(self._extract_content(response))

    @staticmethod
    def _extract_content(response) -> str:
        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as e:
            logger.debug(f"Raw OpenAI response object: {response}")
            raise NonRetryableError(f"Invalid response structure from OpenAI: {e}") from e
        if not content:
            raise NonRetryableError("No content in API response.")
        return content
