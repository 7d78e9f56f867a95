"""Main entry point for the askcli application.

Sets up the Typer CLI application, performs dependency injection (Composition Root),
defines CLI commands, and delegates execution to the CommandHandler.
"""

import logging
import sys
from typing import Annotated, Any, Dict, Optional

import typer

# --- Core Layer ---
from askcli.core.command_handler import EXIT_USAGE, CommandHandler
from askcli.core.exceptions import AskCliError, ConfigurationError
from askcli.core.services.request_service import RequestService

# --- Domain Layer ---
from askcli.domain.models.common import OutputFormat

# --- Infrastructure Layer ---
from askcli.infrastructure.ai.openai.gpt_client import GptClient
from askcli.infrastructure.cache.caching_service import ResponseCache
from askcli.infrastructure.cli.display import ConsoleDisplay
from askcli.infrastructure.config.settings import (
    LIMITER_BACKENDS,
    cache_enabled,
    get_base_url,
    get_cache_settings,
    get_default_model,
    get_logging_settings,
    get_openai_api_key,
    get_rate_limit_settings,
    get_request_timeout,
    get_retry_settings,
    get_system_prompt,
    load_configuration,
)
from askcli.infrastructure.monitoring.logger_setup import setup_logging
from askcli.infrastructure.resilience.api_retry import ApiRetryService
from askcli.infrastructure.resilience.file_rate_limiter import DEFAULT_STALE_AGE_SECONDS, FileRateLimiter
from askcli.infrastructure.resilience.rate_limiter import RateLimiter

logger = logging.getLogger(__name__)

STDIN_PROMPT = "-"


# --- Dependency Injection Container (Manual) ---

def create_dependencies(limiter_backend: Optional[str] = None, max_retries: Optional[int] = None) -> Dict[str, Any]:
    """Creates and wires up all dependencies for one CLI invocation.

    This acts as the Composition Root. Configuration must already be loaded.

    Args:
        limiter_backend: 'process' or 'file'; overrides the configured backend.
        max_retries: Overrides the configured retry count.

    Raises:
        ConfigurationError: If a setting is invalid.
    """
    dependencies: Dict[str, Any] = {}

    cache_settings = get_cache_settings()
    limit_settings = get_rate_limit_settings()
    retry_settings = get_retry_settings()

    backend = (limiter_backend or limit_settings["backend"]).lower()
    if backend not in LIMITER_BACKENDS:
        raise ConfigurationError(f"Invalid rate limiter backend {backend!r}; expected one of {LIMITER_BACKENDS}")
    if max_retries is not None:
        if max_retries < 0:
            raise ConfigurationError("--max-retries must not be negative.")
        retry_settings["max_retries"] = max_retries

    dependencies["ui"] = ConsoleDisplay()
    dependencies["cache_service"] = ResponseCache(**cache_settings)

    if backend == "file":
        state_file = limit_settings["state_file"]
        dependencies["rate_limiter"] = FileRateLimiter(
            state_file,
            rate=limit_settings["rate"],
            burst_size=limit_settings["burst_size"],
            lock_timeout=limit_settings["lock_timeout"],
        )
    else:
        state_file = None
        dependencies["rate_limiter"] = RateLimiter(rate=limit_settings["rate"], burst_size=limit_settings["burst_size"])

    dependencies["api_retry_service"] = ApiRetryService(**retry_settings)
    dependencies["request_service"] = RequestService(
        cache=dependencies["cache_service"],
        rate_limiter=dependencies["rate_limiter"],
        retry_service=dependencies["api_retry_service"],
        acquire_timeout=limit_settings["acquire_timeout"],
    )

    def ai_model_factory() -> GptClient:
        return GptClient(api_key=get_openai_api_key(), base_url=get_base_url(), timeout=get_request_timeout())

    dependencies["command_handler"] = CommandHandler(
        request_service=dependencies["request_service"],
        ui=dependencies["ui"],
        ai_model_factory=ai_model_factory,
        limiter_backend=backend,
        state_file=state_file,
    )
    logger.debug("All dependencies initialized successfully.")
    return dependencies


def _build_handler(limiter_backend: Optional[str] = None, max_retries: Optional[int] = None) -> CommandHandler:
    """Runs the composition root, exiting with a usage error if it fails."""
    try:
        return create_dependencies(limiter_backend, max_retries)["command_handler"]
    except (AskCliError, OSError) as e:
        logger.error(f"Fatal Error during application initialization: {e}")
        ConsoleDisplay().display_error(f"Application Initialization Failed: {e}")
        raise typer.Exit(code=EXIT_USAGE)


def _read_prompt(prompt: Optional[str]) -> str:
    if prompt is not None and prompt != STDIN_PROMPT:
        return prompt
    if sys.stdin is None or sys.stdin.isatty():
        ConsoleDisplay().display_error("No prompt given. Pass it as an argument or pipe it on stdin.")
        raise typer.Exit(code=EXIT_USAGE)
    return sys.stdin.read()


# --- Typer App Definition ---
app = typer.Typer(
    name="askcli",
    help="askcli: ask a chat model from the shell, with caching, rate limiting and retries.",
    add_completion=False,
)


# --- CLI Commands ---

@app.command()
def ask(
    prompt: Annotated[
        Optional[str], typer.Argument(help="The prompt. Read from stdin when omitted or '-'.")
    ] = None,
    model: Annotated[Optional[str], typer.Option("--model", "-m", help="Model to use.")] = None,
    system: Annotated[Optional[str], typer.Option("--system", "-s", help="System prompt.")] = None,
    no_cache: Annotated[bool, typer.Option("--no-cache", help="Bypass the response cache.")] = False,
    max_retries: Annotated[
        Optional[int], typer.Option("--max-retries", help="Retries for throttled or failed requests.")
    ] = None,
    output_format: Annotated[
        OutputFormat, typer.Option("--format", "-f", case_sensitive=False, help="Output format.")
    ] = OutputFormat.PLAIN,
    limiter: Annotated[
        Optional[str], typer.Option("--limiter", help="Rate limiter backend: 'process' or 'file'.")
    ] = None,
):
    """Send a prompt and print the answer."""
    text = _read_prompt(prompt)
    handler = _build_handler(limiter, max_retries)
    try:
        use_cache = not no_cache and cache_enabled()
        model_name = model or get_default_model()
        system_prompt = system if system is not None else get_system_prompt()
    except ConfigurationError as e:
        ConsoleDisplay().display_error(str(e))
        raise typer.Exit(code=EXIT_USAGE)
    raise typer.Exit(code=handler.handle_ask(text, model_name, system_prompt, use_cache, output_format))


@app.command(name="clear-cache")
def clear_cache_command():
    """Delete every cached response."""
    raise typer.Exit(code=_build_handler().handle_clear_cache())


@app.command(name="clean-cache")
def clean_cache_command():
    """Delete expired cached responses only."""
    raise typer.Exit(code=_build_handler().handle_clean_cache())


@app.command(name="cache-stats")
def cache_stats_command():
    """Show response cache statistics."""
    handler = _build_handler()
    raise typer.Exit(code=handler.handle_cache_stats(str(get_cache_settings()["cache_dir"])))


@app.command(name="limiter-status")
def limiter_status_command(
    limiter: Annotated[Optional[str], typer.Option("--limiter", help="Rate limiter backend.")] = None,
):
    """Show the rate limiter's available tokens."""
    raise typer.Exit(code=_build_handler(limiter).handle_limiter_status())


@app.command(name="limiter-reset")
def limiter_reset_command():
    """Empty the shared rate limiter bucket."""
    raise typer.Exit(code=_build_handler("file").handle_limiter_reset())


@app.command(name="limiter-cleanup")
def limiter_cleanup_command(
    max_age_hours: Annotated[
        float, typer.Option("--max-age-hours", min=0, help="Remove state files older than this.")
    ] = DEFAULT_STALE_AGE_SECONDS / 3600,
):
    """Remove stale rate limiter state files."""
    raise typer.Exit(code=_build_handler("file").handle_limiter_cleanup(max_age_hours))


@app.callback()
def main_callback(
    verbose: Annotated[bool, typer.Option("--verbose", "-v", help="Enable debug logging.")] = False,
):
    """Loads configuration and sets up logging before any command runs."""
    load_configuration()
    logging_settings = get_logging_settings()
    if verbose:
        logging_settings["log_level"] = "DEBUG"
    setup_logging(**logging_settings)
    logger.debug("Configuration and logging initialized.")


# --- Main Execution Guard ---

def cli_entry_point():
    """Function to be called by the script entry point in pyproject.toml."""
    app()


if __name__ == "__main__":
    cli_entry_point()
