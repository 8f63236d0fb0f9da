"""External sync/erase tools."""

from lyracopy.infrastructure.sync.parser import RsyncProgressParser, is_noise, parse_size
from lyracopy.infrastructure.sync.rsync import RsyncWrapper, resolve_rsync_path, build_arguments
from lyracopy.infrastructure.sync.remover import RemoveWrapper

__all__ = [
    "RsyncProgressParser",
    "is_noise",
    "parse_size",
    "RsyncWrapper",
    "resolve_rsync_path",
    "build_arguments",
    "RemoveWrapper",
]
