import json
import logging
from typing import Any, Optional

from rich.box import HEAVY, ROUNDED, SIMPLE
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from askcli.domain.interfaces.user_interface import UserInterface
from askcli.domain.models.common import CacheStats, LimiterStatus, OutputFormat

logger = logging.getLogger(__name__)


def _format_bytes(size: int) -> str:
    value = float(size)
    for unit in ("B", "KB", "MB"):
        if value < 1024:
            return f"{value:.0f} {unit}" if unit == "B" else f"{value:.1f} {unit}"
        value /= 1024
    return f"{value:.1f} GB"


class ConsoleDisplay(UserInterface):
    """Concrete implementation of UserInterface using the rich library for console output.

    Answers go to stdout; errors, notices and status panels go to stderr so
    that piping an answer never captures anything else.
    """

    def __init__(self, console: Optional[Console] = None, err_console: Optional[Console] = None):
        self._console = console or Console()
        self._err_console = err_console or Console(stderr=True)

    @property
    def console(self) -> Console:
        return self._console

    @property
    def err_console(self) -> Console:
        return self._err_console

    def display_output(
        self, output: str, output_format: OutputFormat = OutputFormat.PLAIN, model: str = "", cached: bool = False
    ) -> None:
        logger.debug(f"display_output called: format={output_format}, cached={cached}, content_length={len(output)}")

        if output_format == OutputFormat.JSON:
            payload = {"response": output, "model": model, "cached": cached}
            self.console.out(json.dumps(payload, ensure_ascii=False, indent=2), highlight=False)
            return

        if cached:
            self.err_console.print("[dim](cached response)[/dim]")

        if output_format == OutputFormat.MARKDOWN:
            self.console.print(Markdown(output))
        else:
            self.console.out(output, highlight=False)

    def display_error(self, error_message: str, **kwargs: Any) -> None:
        """Displays an error message in a distinct style.

        Args:
            error_message: The error message to display.
        """
        panel = Panel(
            Text(error_message, style="white"),
            title="[bold red]Error[/bold red]",
            border_style="red",
            box=HEAVY,
            padding=(0, 1),
        )
        self.err_console.print(panel)

    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        panel = Panel(
            Text(warning_message, style="white"),
            title="[bold yellow]Warning[/bold yellow]",
            border_style="yellow",
            box=HEAVY,
            padding=(0, 1),
        )
        self.err_console.print(panel)

    def display_info(self, info_message: str, **kwargs: Any) -> None:
        panel = Panel(
            Text(info_message, style="white"),
            title="[bold blue]Info[/bold blue]",
            border_style="blue",
            box=SIMPLE,
            padding=(0, 1),
        )
        self.err_console.print(panel)

    def display_cache_stats(self, stats: CacheStats, cache_dir: str) -> None:
        """Shows the cache statistics as a table."""
        table = Table(title="Response Cache", show_header=False, box=ROUNDED, border_style="cyan", padding=(0, 1))
        table.add_column("Metric", style="bold cyan")
        table.add_column("Value")
        table.add_row("Directory", cache_dir)
        table.add_row("Entries", str(stats["count"]))
        table.add_row("Size", _format_bytes(stats["size_bytes"]))
        self.console.print(table)

    def display_limiter_status(self, status: LimiterStatus) -> None:
        """Shows the rate limiter state as a table."""
        table = Table(title="Rate Limiter", show_header=False, box=ROUNDED, border_style="cyan", padding=(0, 1))
        table.add_column("Metric", style="bold cyan")
        table.add_column("Value")
        table.add_row("Backend", status["backend"])
        table.add_row("Available tokens", f"{status['available_tokens']:.2f} / {status['burst_size']}")
        table.add_row("Refill rate", f"{status['rate']:g} tokens/s")
        if status.get("state_file"):
            table.add_row("State file", str(status["state_file"]))
        self.console.print(table)
