"""Event log and filesystem helpers."""

from lyracopy.infrastructure.storage.event_log import JsonlEventLog
from lyracopy.infrastructure.storage.disk import folder_size, free_space, nearest_existing_ancestor

__all__ = ["JsonlEventLog", "folder_size", "free_space", "nearest_existing_ancestor"]
