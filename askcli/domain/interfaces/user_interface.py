"""Interface for presenting results to the user.

Defines the contract for displaying answers, errors, warnings and status
reports, allowing different UI implementations (e.g., rich console, tests).
"""

import abc
from typing import Any

from askcli.domain.models.common import CacheStats, LimiterStatus, OutputFormat


class UserInterface(abc.ABC):
    """Abstract Base Class for user-facing output."""

    @abc.abstractmethod
    def display_output(
        self, output: str, output_format: OutputFormat = OutputFormat.PLAIN, model: str = "", cached: bool = False
    ) -> None:
        """Displays a model answer.

        Args:
            output: The response text.
            output_format: plain text, rendered Markdown or a JSON document.
            model: Model that produced the answer (included in JSON output).
            cached: Whether the answer was served from the cache.
        """
        pass

    @abc.abstractmethod
    def display_error(self, error_message: str, **kwargs: Any) -> None:
        pass

    @abc.abstractmethod
    def display_warning(self, warning_message: str, **kwargs: Any) -> None:
        pass

    @abc.abstractmethod
    def display_info(self, info_message: str, **kwargs: Any) -> None:
        pass

    @abc.abstractmethod
    def display_cache_stats(self, stats: CacheStats, cache_dir: str) -> None:
        pass

    @abc.abstractmethod
    def display_limiter_status(self, status: LimiterStatus) -> None:
        pass
