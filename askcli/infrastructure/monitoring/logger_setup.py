"""Centralized logging configuration for the askcli application.

Sets up standard Python logging with appropriate levels, formatters,
and handlers. The console handler writes to stderr because stdout carries
the model's answers (and may be piped).
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Union

DEFAULT_LOG_LEVEL = logging.WARNING
DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE_MAX_BYTES = 5 * 1024 * 1024
LOG_FILE_BACKUP_COUNT = 3


def setup_logging(
    log_level: Union[int, str] = DEFAULT_LOG_LEVEL,
    log_format: Optional[str] = None,
    log_file: Optional[Union[str, Path]] = None,
) -> None:
    """Configures the root logger for the application.

    Args:
        log_level: The minimum logging level (e.g., logging.DEBUG or "INFO").
        log_format: The format string for log messages.
        log_file: Optional path to a rotating log file.
    """
    if isinstance(log_level, str):
        level_name = log_level.upper()
        log_level = logging.getLevelName(level_name)
        if not isinstance(log_level, int):
            log_level = DEFAULT_LOG_LEVEL
            invalid_level = level_name
        else:
            invalid_level = None
    else:
        invalid_level = None

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers attached to the root logger
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(log_format or DEFAULT_LOG_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if invalid_level:
        logging.warning(f"Unknown log level '{invalid_level}', using {logging.getLevelName(log_level)}")

    if log_file:
        try:
            Path(log_file).parent.mkdir(parents=True, exist_ok=True)
            file_handler = RotatingFileHandler(
                log_file, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUP_COUNT, encoding="utf-8"
            )
            file_handler.setLevel(log_level)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)
            logging.info(f"Logging to file: {log_file}")
        except OSError as e:
            logging.error(f"Failed to set up file logging to {log_file}: {e}")

    logging.debug(f"Logging configured. Level={logging.getLevelName(log_level)}")
