"""Provides functions for loading and accessing configuration settings.

Supports loading from a YAML configuration file (~/.askcli/config.yaml),
.env files and environment variables. Nested YAML mappings are flattened to
dotted keys, so

    cache:
      expiration_hours: 12

is read with get_config('cache.expiration_hours') and can be overridden by
the ASKCLI_CACHE_EXPIRATION_HOURS environment variable.
"""

import logging
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from askcli.core.exceptions import ConfigurationError
from askcli.domain.models.common import BackoffPolicy

logger = logging.getLogger(__name__)

# --- Configuration Constants ---
DEFAULT_CONFIG_DIR = Path.home() / ".askcli"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"
DEFAULT_CACHE_DIR = DEFAULT_CONFIG_DIR / "cache"
DEFAULT_STATE_FILE = DEFAULT_CONFIG_DIR / "ratelimit" / "default.ratelimit"
ENV_FILE_NAME = ".env"
ENV_PREFIX = "ASKCLI_"

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_SYSTEM_PROMPT = "You are a helpful assistant!"
LIMITER_BACKENDS = ("process", "file")

# --- Global Configuration Store ---
_config: Dict[str, Any] = {}
_test_config: Dict[str, Any] = {}  # For testing purposes
_loaded = False


def _flatten(data: Dict[str, Any], prefix: str = "") -> Dict[str, Any]:
    flat: Dict[str, Any] = {}
    for key, value in data.items():
        full_key = f"{prefix}{key}"
        if isinstance(value, dict):
            flat.update(_flatten(value, prefix=f"{full_key}."))
        else:
            flat[full_key] = value
    return flat


def load_configuration(config_file: Path = DEFAULT_CONFIG_FILE, env_file: Optional[Path] = None) -> None:
    """Loads configuration from environment, .env file, and YAML file.

    Priority order (highest to lowest):
    1. Environment Variables
    2. .env file
    3. YAML configuration file
    4. Default values of the typed helpers below

    Args:
        config_file: Path to the YAML configuration file.
        env_file: Path to the .env file (searches upwards from cwd if None).
    """
    global _config, _loaded
    if _loaded:
        logger.debug("Configuration already loaded.")
        return

    _config = {}

    # 1. Load from YAML file (Lowest priority)
    if config_file.exists():
        try:
            with open(config_file, "r", encoding="utf-8") as f:
                yaml_config = yaml.safe_load(f)
            if isinstance(yaml_config, dict):
                _config.update(_flatten(yaml_config))
                logger.info(f"Loaded configuration from YAML: {config_file}")
            elif yaml_config is not None:
                logger.warning(f"YAML config file {config_file} did not contain a dictionary.")
        except (OSError, yaml.YAMLError) as e:
            logger.error(f"Failed to load or parse YAML config {config_file}: {e}")
    else:
        logger.debug(f"YAML config file not found: {config_file}")

    # 2. Load from .env file (Medium priority)
    dotenv_path = env_file or find_dotenv_path()
    if dotenv_path:
        if load_dotenv(dotenv_path=dotenv_path, override=False):  # real env vars take precedence
            logger.info(f"Loaded environment variables from: {dotenv_path}")
        else:
            logger.debug(f"No variables loaded from {dotenv_path}")
    else:
        logger.debug(".env file not found at or above current directory.")

    # 3. Environment Variables (Highest priority) are handled in get_config

    _loaded = True
    logger.debug("Configuration loading process completed.")


def reset_configuration() -> None:
    """Forgets loaded values so the next load_configuration() reads again."""
    global _config, _loaded
    _config = {}
    _loaded = False


def _coerce_env_value(value: str) -> Any:
    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False
    try:
        if "." in value:
            return float(value)
        return int(value)
    except ValueError:
        return value


def get_config(key: str, default: Any = None) -> Any:
    """
    Get a configuration value by key.

    Priority:
    1. Test configuration (if in testing mode)
    2. Environment variable (KEY or ASKCLI_KEY_WITH_UNDERSCORES)
    3. YAML config
    4. Default value

    Args:
        key: The configuration key
        default: Default value if the key is not found

    Returns:
        The configuration value
    """
    if key in _test_config:
        return _test_config[key]

    for env_key in (key.upper(), ENV_PREFIX + key.upper().replace(".", "_")):
        if env_key in os.environ:
            return _coerce_env_value(os.environ[env_key])

    if key in _config:
        return _config[key]

    return default


def set_config(key: str, value: Any) -> None:
    """Sets a configuration value for the current process.

    Args:
        key: Configuration key (e.g., 'logging.level')
        value: Value to set
    """
    _config[key] = value
    logger.debug(f"Config set: {key}={value!r}")


def find_dotenv_path() -> Optional[Path]:
    """Searches for the .env file upwards from the current directory."""
    try:
        cwd = Path.cwd()
    except OSError as e:
        logger.warning(f"Error searching for .env file: {e}")
        return None
    for path in [cwd] + list(cwd.parents):
        env_path = path / ENV_FILE_NAME
        if env_path.is_file():
            return env_path
    return None


# --- Typed value helpers ---

def _get_bool(key: str, default: bool) -> bool:
    value = get_config(key, default)
    if isinstance(value, bool):
        return value
    if isinstance(value, str):
        if value.lower() in ("true", "1", "yes", "on"):
            return True
        if value.lower() in ("false", "0", "no", "off"):
            return False
    if isinstance(value, int):
        return bool(value)
    raise ConfigurationError(f"Invalid boolean value for '{key}': {value!r}")


def _get_number(key: str, default: float, cast=float, minimum: Optional[float] = None, exclusive: bool = False) -> Any:
    value = get_config(key, default)
    if isinstance(value, bool):
        raise ConfigurationError(f"Invalid numeric value for '{key}': {value!r}")
    try:
        number = cast(value)
    except (TypeError, ValueError):
        raise ConfigurationError(f"Invalid numeric value for '{key}': {value!r}") from None
    if minimum is not None and (number <= minimum if exclusive else number < minimum):
        relation = "greater than" if exclusive else "at least"
        raise ConfigurationError(f"'{key}' must be {relation} {minimum}, got {number}")
    return number


def _get_path(key: str, default: Path) -> Path:
    value = get_config(key)
    return Path(str(value)).expanduser() if value else default


# --- Convenience Functions ---

def get_openai_api_key() -> Optional[str]:
    """Convenience function to get the OpenAI API key."""
    # Checks ENV OPENAI_API_KEY first, then yaml openai.api_key
    key = get_config("OPENAI_API_KEY") or get_config("openai.api_key")
    return str(key) if key else None


def get_base_url() -> Optional[str]:
    url = get_config("openai.base_url")
    return str(url) if url else None


def get_request_timeout() -> float:
    return _get_number("openai.timeout", 60.0, minimum=0, exclusive=True)


def get_default_model() -> str:
    return str(get_config("ai.default_model", DEFAULT_MODEL) or DEFAULT_MODEL)


def get_system_prompt() -> str:
    prompt = get_config("ai.system_prompt", DEFAULT_SYSTEM_PROMPT)
    return DEFAULT_SYSTEM_PROMPT if prompt is None else str(prompt)


def cache_enabled() -> bool:
    return _get_bool("cache.enabled", True)


def get_cache_settings() -> Dict[str, Any]:
    """Returns keyword arguments for ResponseCache."""
    return {
        "cache_dir": _get_path("cache.directory", DEFAULT_CACHE_DIR),
        "expiration_hours": _get_number("cache.expiration_hours", 24, minimum=0, exclusive=True),
        "max_entries": _get_number("cache.max_entries", 1000, cast=int, minimum=1),
        "max_size_bytes": _get_number("cache.max_size_mb", 100, minimum=0, exclusive=True) * 1024 * 1024,
    }


def get_rate_limit_settings() -> Dict[str, Any]:
    """Returns the rate limiter configuration.

    Keys: backend ('process' or 'file'), rate, burst_size, state_file,
    lock_timeout and acquire_timeout (0 waits indefinitely).
    """
    backend = str(get_config("rate_limit.backend", "file")).lower()
    if backend not in LIMITER_BACKENDS:
        raise ConfigurationError(f"Invalid rate limiter backend {backend!r}; expected one of {LIMITER_BACKENDS}")
    return {
        "backend": backend,
        "rate": _get_number("rate_limit.rate", 3.0, minimum=0, exclusive=True),
        "burst_size": _get_number("rate_limit.burst_size", 5, cast=int, minimum=1),
        "state_file": _get_path("rate_limit.state_file", DEFAULT_STATE_FILE),
        "lock_timeout": _get_number("rate_limit.lock_timeout", 5.0, minimum=0),
        "acquire_timeout": _get_number("rate_limit.acquire_timeout", 30.0, minimum=0),
    }


def get_retry_settings() -> BackoffPolicy:
    """Returns keyword arguments for ApiRetryService."""
    return {
        "max_retries": _get_number("retry.max_retries", 3, cast=int, minimum=0),
        "initial_delay": _get_number("retry.initial_delay", 1.0, minimum=0),
        "max_delay": _get_number("retry.max_delay", 30.0, minimum=0),
    }


def get_logging_settings() -> Dict[str, Any]:
    """Returns keyword arguments for setup_logging."""
    log_file = get_config("logging.file")
    return {
        "log_level": str(get_config("logging.level", "WARNING")).upper(),
        "log_format": get_config("logging.format"),
        "log_file": Path(str(log_file)).expanduser() if log_file else None,
    }


def set_config_for_testing(config_dict: Dict[str, Any]) -> None:
    """
    Set configuration values for testing purposes.
    These values will override any existing configuration.

    Args:
        config_dict: Dictionary of configuration values to set
    """
    _test_config.update(config_dict)
    logger.debug(f"Set testing configuration: {config_dict}")


def clear_test_config() -> None:
    """Clear all testing configuration values."""
    _test_config.clear()
    logger.debug("Cleared testing configuration")
