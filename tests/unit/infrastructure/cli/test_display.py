import io
import json

import pytest
from rich.console import Console

from askcli.domain.models.common import CacheStats, LimiterStatus, OutputFormat
from askcli.infrastructure.cli.display import ConsoleDisplay


@pytest.fixture
def out():
    return io.StringIO()


@pytest.fixture
def err():
    return io.StringIO()


@pytest.fixture
def console_display(out, err):
    """ConsoleDisplay writing into buffers instead of the terminal."""
    return ConsoleDisplay(
        console=Console(file=out, width=100, color_system=None),
        err_console=Console(file=err, width=100, color_system=None),
    )


def test_display_plain_output(console_display: ConsoleDisplay, out, err):
    console_display.display_output("Hello [bold]World[/bold]")
    assert out.getvalue() == "Hello [bold]World[/bold]\n"
    assert err.getvalue() == ""


def test_display_markdown_output(console_display: ConsoleDisplay, out):
    console_display.display_output("# Title\n\nSome **bold** text", output_format=OutputFormat.MARKDOWN)
    rendered = out.getvalue()
    assert "Title" in rendered
    assert "**" not in rendered


def test_display_json_output(console_display: ConsoleDisplay, out, err):
    console_display.display_output("4", output_format=OutputFormat.JSON, model="gpt-4", cached=True)
    assert json.loads(out.getvalue()) == {"response": "4", "model": "gpt-4", "cached": True}
    assert err.getvalue() == ""


def test_cached_notice_goes_to_stderr(console_display: ConsoleDisplay, out, err):
    console_display.display_output("4", cached=True)
    assert out.getvalue() == "4\n"
    assert "cached response" in err.getvalue()


def test_display_error(console_display: ConsoleDisplay, out, err):
    """Errors are rendered on stderr so stdout stays clean."""
    console_display.display_error("Something went wrong")
    assert "Something went wrong" in err.getvalue()
    assert "Error" in err.getvalue()
    assert out.getvalue() == ""


def test_display_info_and_warning(console_display: ConsoleDisplay, err):
    console_display.display_info("Process completed")
    console_display.display_warning("Careful")
    assert "Process completed" in err.getvalue()
    assert "Careful" in err.getvalue()


def test_display_cache_stats(console_display: ConsoleDisplay, out):
    stats = CacheStats(hits=3, misses=1, count=2, size_bytes=2048)
    console_display.display_cache_stats(stats, "/tmp/cache")
    rendered = out.getvalue()
    assert "/tmp/cache" in rendered
    assert "2.0 KB" in rendered
    assert "Entries" in rendered
    # hit/miss counters only live for one process, so a CLI run never shows them
    assert "Hits" not in rendered


def test_display_limiter_status(console_display: ConsoleDisplay, out):
    status = LimiterStatus(
        backend="file", available_tokens=2.5, burst_size=5, rate=3.0, state_file="/tmp/x.ratelimit"
    )
    console_display.display_limiter_status(status)
    rendered = out.getvalue()
    assert "2.50 / 5" in rendered
    assert "3 tokens/s" in rendered
    assert "/tmp/x.ratelimit" in rendered
