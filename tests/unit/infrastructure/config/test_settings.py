from pathlib import Path

import pytest

from askcli.core.exceptions import ConfigurationError
from askcli.infrastructure.config import settings


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        "\n".join(
            [
                "openai:",
                "  api_key: sk-from-yaml",
                "ai:",
                "  default_model: gpt-4-turbo",
                "cache:",
                "  enabled: false",
                "  expiration_hours: 12",
                "rate_limit:",
                "  rate: 1.5",
                "  burst_size: 2",
                "  backend: process",
            ]
        ),
        encoding="utf-8",
    )
    return path


@pytest.fixture
def no_env_file(tmp_path):
    """An explicit, empty .env so the search never reaches the developer's own."""
    path = tmp_path / ".env"
    path.write_text("", encoding="utf-8")
    return path


def test_defaults_without_config(tmp_path, no_env_file, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    settings.load_configuration(tmp_path / "missing.yaml", env_file=no_env_file)

    assert settings.get_openai_api_key() is None
    assert settings.get_default_model() == settings.DEFAULT_MODEL
    assert settings.get_system_prompt() == settings.DEFAULT_SYSTEM_PROMPT
    assert settings.cache_enabled() is True
    assert settings.get_rate_limit_settings()["rate"] == 3.0
    assert settings.get_rate_limit_settings()["burst_size"] == 5
    assert settings.get_rate_limit_settings()["backend"] == "file"
    assert settings.get_retry_settings() == {"max_retries": 3, "initial_delay": 1.0, "max_delay": 30.0}
    assert settings.get_cache_settings()["expiration_hours"] == 24
    assert settings.get_logging_settings()["log_level"] == "WARNING"


def test_yaml_is_flattened(config_file, no_env_file, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    settings.load_configuration(config_file, env_file=no_env_file)

    assert settings.get_config("cache.expiration_hours") == 12
    assert settings.get_openai_api_key() == "sk-from-yaml"
    assert settings.get_default_model() == "gpt-4-turbo"
    assert settings.cache_enabled() is False
    limits = settings.get_rate_limit_settings()
    assert limits["rate"] == 1.5
    assert limits["burst_size"] == 2
    assert limits["backend"] == "process"


def test_environment_overrides_yaml(config_file, no_env_file, monkeypatch):
    monkeypatch.setenv("ASKCLI_CACHE_EXPIRATION_HOURS", "6")
    monkeypatch.setenv("ASKCLI_CACHE_ENABLED", "true")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-from-env")
    settings.load_configuration(config_file, env_file=no_env_file)

    assert settings.get_cache_settings()["expiration_hours"] == 6
    assert settings.cache_enabled() is True
    assert settings.get_openai_api_key() == "sk-from-env"


def test_env_file_is_loaded_without_overriding_environment(tmp_path, monkeypatch):
    env_file = tmp_path / ".env"
    env_file.write_text("ASKCLI_RETRY_MAX_RETRIES=7\nASKCLI_RATE_LIMIT_RATE=9\n", encoding="utf-8")
    monkeypatch.setenv("ASKCLI_RATE_LIMIT_RATE", "2.5")
    # registered so the value load_dotenv writes is removed afterwards
    monkeypatch.setenv("ASKCLI_RETRY_MAX_RETRIES", "")
    monkeypatch.delenv("ASKCLI_RETRY_MAX_RETRIES")

    settings.load_configuration(tmp_path / "missing.yaml", env_file=env_file)

    assert settings.get_retry_settings()["max_retries"] == 7
    assert settings.get_rate_limit_settings()["rate"] == 2.5


def test_test_config_has_highest_priority(monkeypatch):
    monkeypatch.setenv("ASKCLI_AI_DEFAULT_MODEL", "from-env")
    settings.set_config_for_testing({"ai.default_model": "from-test"})
    assert settings.get_default_model() == "from-test"
    settings.clear_test_config()
    assert settings.get_default_model() == "from-env"


def test_set_config():
    settings.set_config("ai.system_prompt", "Answer in French.")
    assert settings.get_system_prompt() == "Answer in French."


def test_paths_are_expanded():
    settings.set_config_for_testing({"cache.directory": "~/somewhere"})
    assert settings.get_cache_settings()["cache_dir"] == Path.home() / "somewhere"


@pytest.mark.parametrize(
    "key, value, getter",
    [
        ("rate_limit.rate", "fast", settings.get_rate_limit_settings),
        ("rate_limit.rate", 0, settings.get_rate_limit_settings),
        ("rate_limit.burst_size", 0, settings.get_rate_limit_settings),
        ("rate_limit.backend", "redis", settings.get_rate_limit_settings),
        ("retry.max_retries", -1, settings.get_retry_settings),
        ("cache.max_entries", "many", settings.get_cache_settings),
        ("cache.enabled", "perhaps", settings.cache_enabled),
    ],
)
def test_invalid_values_raise_configuration_error(key, value, getter):
    settings.set_config_for_testing({key: value})
    with pytest.raises(ConfigurationError):
        getter()


def test_malformed_yaml_is_ignored(tmp_path, no_env_file):
    config_file = tmp_path / "config.yaml"
    config_file.write_text("cache: [unclosed", encoding="utf-8")
    settings.load_configuration(config_file, env_file=no_env_file)
    assert settings.get_config("cache.enabled") is None
