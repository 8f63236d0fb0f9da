"""Centralized logging utilities."""

import logging
import sys
from typing import Optional
from pathlib import Path

DEFAULT_FORMAT = '[%(asctime)s] [%(name)s] [%(levelname)s] %(message)s'
ROOT_LOGGER_NAME = 'lyracopy'


def setup_logger(
    name: str = ROOT_LOGGER_NAME,
    level: int = logging.INFO,
    log_file: Optional[Path] = None,
    format_string: Optional[str] = None
) -> logging.Logger:
    """
    Set up a logger with console and optional file output.

    Calling this for the package root (``lyracopy``) configures every module
    logger below it, since module loggers propagate to the root.

    Args:
        name: Logger name
        level: Logging level
        log_file: Optional file to write diagnostic logs to (not the JSONL
            event log, which is owned by the event log writer)
        format_string: Custom format string

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)
    logger.setLevel(level)

    # Remove existing handlers
    logger.handlers.clear()

    formatter = logging.Formatter(format_string or DEFAULT_FORMAT, datefmt='%H:%M:%S')

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if log_file:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding='utf-8')
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    return logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger in the ``lyracopy`` hierarchy.

    Module names (``lyracopy.application.pipeline``) are used as-is; bare
    names such as class names are nested under the package root so they
    share its handlers.

    Args:
        name: Logger name

    Returns:
        Logger instance
    """
    if name != ROOT_LOGGER_NAME and not name.startswith(ROOT_LOGGER_NAME + '.'):
        name = f"{ROOT_LOGGER_NAME}.{name}"
    return logging.getLogger(name)


def parse_level(value: str) -> int:
    """Translate a level name such as ``"debug"`` into a logging constant."""
    level = logging.getLevelName(str(value).upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {value}")
    return level


class LoggerAdapter:
    """Adapter to make standard logger compatible with ILogger protocol."""

    def __init__(self, logger: logging.Logger):
        self._logger = logger

    def debug(self, message: str, **kwargs) -> None:
        """Log debug message."""
        self._logger.debug(message, extra=kwargs)

    def info(self, message: str, **kwargs) -> None:
        """Log info message."""
        self._logger.info(message, extra=kwargs)

    def warning(self, message: str, **kwargs) -> None:
        """Log warning message."""
        self._logger.warning(message, extra=kwargs)

    def error(self, message: str, **kwargs) -> None:
        """Log error message."""
        self._logger.error(message, extra=kwargs)

    def exception(self, message: str, **kwargs) -> None:
        """Log exception with traceback."""
        self._logger.exception(message, extra=kwargs)
