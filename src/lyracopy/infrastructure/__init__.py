"""Infrastructure layer package."""

from lyracopy.infrastructure.config import ConfigLoader, LyraCopyConfig
from lyracopy.infrastructure.process import ProcessRunner
from lyracopy.infrastructure.sync import RsyncProgressParser, RsyncWrapper, RemoveWrapper
from lyracopy.infrastructure.storage import JsonlEventLog

__all__ = [
    "ConfigLoader",
    "LyraCopyConfig",
    "ProcessRunner",
    "RsyncProgressParser",
    "RsyncWrapper",
    "RemoveWrapper",
    "JsonlEventLog",
]
