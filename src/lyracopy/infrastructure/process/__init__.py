"""External process execution."""

from lyracopy.infrastructure.process.runner import (
    ProcessRunner,
    RSYNC_PARTIAL_VANISHED,
    DEFAULT_ACCEPTED_CODES,
    DEFAULT_KILL_GRACE_SECONDS,
)

__all__ = [
    "ProcessRunner",
    "RSYNC_PARTIAL_VANISHED",
    "DEFAULT_ACCEPTED_CODES",
    "DEFAULT_KILL_GRACE_SECONDS",
]
