"""Command Handler: Orchestrates CLI command execution.

Receives commands from the main entry point (main.py), delegates the work to
the RequestService, cache and rate limiter, and turns the outcome into
console output plus a process exit code.
"""

import logging
from pathlib import Path
from typing import Callable, Optional

from askcli.core.exceptions import (
    AskCliError,
    ConfigurationError,
    ResourceUnavailableError,
    RetryableError,
    ValidationError,
)
from askcli.core.services.request_service import RequestService
from askcli.domain.interfaces.ai_model import AIModel
from askcli.domain.interfaces.user_interface import UserInterface
from askcli.domain.models.common import (
    ChatRequest,
    LimiterStatus,
    ModelName,
    OutputFormat,
    PromptText,
    SystemPrompt,
)
from askcli.infrastructure.resilience.file_rate_limiter import DEFAULT_STALE_AGE_SECONDS, FileRateLimiter

logger = logging.getLogger(__name__)

# Process exit codes
EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_USAGE = 2
EXIT_TEMPFAIL = 75  # EX_TEMPFAIL from sysexits.h


def exit_code_for(error: Exception) -> int:
    """Maps an error to the exit code reported by the CLI."""
    if isinstance(error, (ConfigurationError, ValidationError)):
        return EXIT_USAGE
    if isinstance(error, (ResourceUnavailableError, RetryableError)):
        return EXIT_TEMPFAIL
    return EXIT_FAILURE


class CommandHandler:
    """Handles incoming commands and delegates to appropriate services."""

    def __init__(
        self,
        request_service: RequestService,
        ui: UserInterface,
        ai_model_factory: Callable[[], AIModel],
        limiter_backend: str = "file",
        state_file: Optional[Path] = None,
    ):
        """Initializes the CommandHandler with required services.

        Args:
            request_service: Cache/limiter/retry pipeline for requests.
            ui: Where results and errors are shown.
            ai_model_factory: Builds the upstream client; only called by `ask`
                so maintenance commands work without an API key.
            limiter_backend: 'process' or 'file', for status reports.
            state_file: Shared limiter state file when the backend is 'file'.
        """
        self.request_service = request_service
        self.ui = ui
        self.ai_model_factory = ai_model_factory
        self.limiter_backend = limiter_backend
        self.state_file = state_file

    def _fail(self, error: Exception) -> int:
        self.ui.display_error(str(error))
        return exit_code_for(error)

    def _network_operation(self, request: ChatRequest) -> Callable[[], str]:
        """Builds the upstream call; the client is created on first use so cache hits need no API key."""
        ai_model: Optional[AIModel] = None

        def call_model() -> str:
            nonlocal ai_model
            if ai_model is None:
                ai_model = self.ai_model_factory()
            return ai_model.send_prompt(request.prompt, request.model, request.system_prompt)

        return call_model

    def handle_ask(
        self,
        prompt: str,
        model: str,
        system_prompt: str,
        use_cache: bool = True,
        output_format: OutputFormat = OutputFormat.PLAIN,
    ) -> int:
        """Handles the 'ask' command: one prompt, one answer."""
        logger.info(f"Handling 'ask' command (model={model}, cache={'on' if use_cache else 'off'})")
        try:
            if not prompt.strip():
                raise ValidationError("Prompt cannot be empty.")
            request = ChatRequest(PromptText(prompt), ModelName(model), SystemPrompt(system_prompt))
            result = self.request_service.fetch(request, self._network_operation(request), use_cache=use_cache)
        except AskCliError as e:
            logger.error(f"Ask command failed ({type(e).__name__}): {e}")
            return self._fail(e)

        self.ui.display_output(result.response, output_format=output_format, model=model, cached=result.from_cache)
        return EXIT_OK

    def handle_clear_cache(self) -> int:
        """Handles the 'clear-cache' command."""
        count = self.request_service.clear_cache()
        self.ui.display_info(f"Cleared {count} cache entries.")
        return EXIT_OK

    def handle_clean_cache(self) -> int:
        """Handles the 'clean-cache' command: drops expired entries only."""
        count = self.request_service.clean_expired_cache()
        self.ui.display_info(f"Removed {count} expired cache entries.")
        return EXIT_OK

    def handle_cache_stats(self, cache_dir: str) -> int:
        self.ui.display_cache_stats(self.request_service.cache_stats(), cache_dir)
        return EXIT_OK

    def handle_limiter_status(self) -> int:
        limiter = self.request_service.rate_limiter
        try:
            status = LimiterStatus(
                backend=self.limiter_backend,
                available_tokens=self.request_service.rate_limiter_available(),
                burst_size=limiter.burst_size,
                rate=limiter.rate,
                state_file=str(self.state_file) if self.state_file else None,
            )
        except ResourceUnavailableError as e:
            return self._fail(e)
        self.ui.display_limiter_status(status)
        return EXIT_OK

    def handle_limiter_reset(self) -> int:
        """Empties the bucket; useful to pause bursts from other processes."""
        try:
            self.request_service.rate_limiter.reset()
        except ResourceUnavailableError as e:
            return self._fail(e)
        self.ui.display_info("Rate limiter reset; tokens will refill at the configured rate.")
        return EXIT_OK

    def handle_limiter_cleanup(self, max_age_hours: float = DEFAULT_STALE_AGE_SECONDS / 3600) -> int:
        """Removes limiter state files left behind by long-gone processes."""
        if self.state_file is None:
            self.ui.display_warning("The in-process rate limiter keeps no state files.")
            return EXIT_OK
        removed = FileRateLimiter.cleanup_stale_files(self.state_file.parent, max_age=max_age_hours * 3600)
        self.ui.display_info(f"Removed {removed} stale rate limiter state file(s) from {self.state_file.parent}.")
        return EXIT_OK
