"""Shared utilities package."""

from lyracopy.shared.logging import setup_logger, get_logger, parse_level, LoggerAdapter
from lyracopy.shared.metrics import MetricsCollector
from lyracopy.shared.types import PathLike, LineCallback

__all__ = [
    "setup_logger",
    "get_logger",
    "parse_level",
    "LoggerAdapter",
    "MetricsCollector",
    "PathLike",
    "LineCallback",
]
