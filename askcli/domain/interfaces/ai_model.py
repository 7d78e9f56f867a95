"""Interface for AI Language Models (LLMs).

Defines the contract for sending a prompt to a chat-completion provider.
"""

import abc

from ..models.common import AIResponse, ModelName, PromptText, SystemPrompt


class AIModel(abc.ABC):
    """Abstract Base Class for AI language model interactions."""

    @abc.abstractmethod
    def send_prompt(self, prompt: PromptText, model: ModelName, system_prompt: SystemPrompt) -> AIResponse:
        """Sends a single prompt and returns the model's reply.

        This performs exactly one attempt; retries and rate limiting belong
        to the caller.

        Raises:
            ThrottledError: Upstream rate limit hit.
            UpstreamFaultError: Upstream 5xx, connection failure or timeout.
            NonRetryableError: Any other failure (bad request, auth, validation).
        """
        pass
