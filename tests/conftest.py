import pytest
from typer.testing import CliRunner
from pathlib import Path

from askcli.infrastructure.ai.openai.gpt_client import GptClient
from askcli.infrastructure.config import settings


class FakeClock:
    """Manually advanced time source for deterministic refill/expiry tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture(scope="session")
def runner():
    """Provides a Typer CliRunner instance."""
    return CliRunner()


@pytest.fixture
def fake_clock():
    return FakeClock()


@pytest.fixture
def mock_openai_client(mocker):
    """Fixture to provide a reusable mock GptClient instance.
    Patches the GptClient class where the composition root builds it.
    """
    mock = mocker.MagicMock(spec=GptClient)
    mock.send_prompt.return_value = "Mocked AI integration response"
    mocker.patch("askcli.main.GptClient", return_value=mock)
    return mock


@pytest.fixture
def isolated_config(tmp_path: Path):
    """Points the cache and limiter state at a temporary directory."""
    paths = {
        "cache.directory": str(tmp_path / "cache"),
        "rate_limit.state_file": str(tmp_path / "ratelimit" / "test.ratelimit"),
    }
    settings.set_config_for_testing(
        {
            **paths,
            "retry.initial_delay": 0.0,
            "rate_limit.acquire_timeout": 1.0,
        }
    )
    return tmp_path


@pytest.fixture(autouse=True)
def clean_settings():
    """Each test starts with no loaded or overridden configuration."""
    settings.clear_test_config()
    settings.reset_configuration()
    yield
    settings.clear_test_config()
    settings.reset_configuration()


@pytest.fixture(autouse=True)
def ensure_api_key_for_tests(monkeypatch):
    """Ensure a dummy API key is set for tests to prevent init errors,
       even though the client itself is mocked.
    """
    monkeypatch.setenv("OPENAI_API_KEY", "DUMMY_TEST_KEY_FOR_INIT")
