"""Filesystem measurements used by the space check."""

import os
import shutil
import stat
from pathlib import Path

from lyracopy.shared.logging import get_logger

logger = get_logger(__name__)


def is_hidden(name: str) -> bool:
    return name.startswith(".")


def folder_size(root: Path, skip_hidden: bool = True) -> int:
    """
    Total size in bytes of the regular files under *root*.

    Hidden files and directories (dot-names) are skipped when *skip_hidden*
    is set. Entries that vanish or cannot be stat'ed while walking are
    ignored. A regular file passed as *root* counts as itself.
    """
    root = Path(root)
    try:
        root_stat = root.stat()
    except OSError:
        return 0
    if stat.S_ISREG(root_stat.st_mode):
        return root_stat.st_size

    total = 0
    for dirpath, dirnames, filenames in os.walk(root, onerror=_log_walk_error):
        if skip_hidden:
            dirnames[:] = [d for d in dirnames if not is_hidden(d)]
        for name in filenames:
            if skip_hidden and is_hidden(name):
                continue
            try:
                st = os.lstat(os.path.join(dirpath, name))
            except OSError:
                continue
            if stat.S_ISREG(st.st_mode):
                total += st.st_size
    return total


def nearest_existing_ancestor(path: Path) -> Path:
    """*path* itself if it exists, else the closest parent that does."""
    candidate = Path(path).absolute()
    while not candidate.exists():
        if candidate.parent == candidate:
            break
        candidate = candidate.parent
    return candidate


def free_space(path: Path) -> int:
    """Free bytes on the volume that holds (or will hold) *path*."""
    return shutil.disk_usage(nearest_existing_ancestor(path)).free


def _log_walk_error(error: OSError) -> None:
    logger.debug(f"Skipping unreadable entry during size scan: {error}")
