"""rsync wrapper for transfer and verification passes."""

import shutil
from pathlib import Path
from typing import Callable, List, Optional

from lyracopy.domain.models import ProgressEvent
from lyracopy.domain.protocols import IProcessRunner, IProgressParser
from lyracopy.shared.logging import get_logger
from lyracopy.infrastructure.sync.parser import RsyncProgressParser

logger = get_logger(__name__)

# Searched in order when no rsync binary is configured; a Homebrew rsync
# is preferred over the system one, which lacks --info=progress2 on macOS.
RSYNC_CANDIDATES = ("/usr/local/bin/rsync", "/usr/bin/rsync")

BASE_ARGS = ["-a", "--human-readable", "--protect-args"]
DRY_RUN_ARGS = ["--dry-run", "--itemize-changes", "--out-format=%n"]
# --no-inc-recursive makes rsync scan everything up front so progress2
# reports against the whole tree instead of a moving target.
LIVE_ARGS = ["--info=progress2", "--no-inc-recursive", "--partial", "--append-verify"]

ProgressCallback = Callable[[ProgressEvent], None]


def resolve_rsync_path(configured: Optional[str] = None) -> str:
    """
    Pick the rsync executable.

    Args:
        configured: Explicit path or command name from configuration

    Returns:
        Path of the binary to launch (``rsync`` if nothing better is found,
        leaving the failure to launch time)
    """
    if configured:
        return configured
    for candidate in RSYNC_CANDIDATES:
        if Path(candidate).exists():
            return candidate
    return shutil.which("rsync") or "rsync"


def build_arguments(source: Path, destination: Path, dry_run: bool) -> List[str]:
    """Argument list for one rsync pass (source and destination used as given)."""
    args = list(BASE_ARGS)
    args += DRY_RUN_ARGS if dry_run else LIVE_ARGS
    args += [str(source), str(destination)]
    return args


class RsyncWrapper:
    """Runs rsync through a ProcessRunner and turns its output into ProgressEvents."""

    def __init__(
        self,
        runner: IProcessRunner,
        parser: Optional[IProgressParser] = None,
        rsync_path: Optional[str] = None,
    ):
        self._runner = runner
        self._parser = parser or RsyncProgressParser()
        self.rsync_path = resolve_rsync_path(rsync_path)

    def sync(
        self,
        source: Path,
        destination: Path,
        dry_run: bool,
        on_progress: Optional[ProgressCallback] = None,
    ) -> int:
        """
        Run one rsync pass.

        Args:
            source: Source path
            destination: Destination path
            dry_run: Itemize differences instead of copying
            on_progress: Receives every non-noise event, in output order

        Returns:
            rsync's exit status (0 or an accepted partial-success code)

        Raises:
            ProcessError: If rsync cannot be launched, fails or is cancelled
        """
        args = build_arguments(source, destination, dry_run)
        logger.info(f"rsync {'dry run' if dry_run else 'copy'}: {source} -> {destination}")

        def handle_line(line: str) -> None:
            event = self._parser.parse(line)
            if event is not None and on_progress is not None:
                on_progress(event)

        return self._runner.run(self.rsync_path, args, on_line=handle_line)

    def cancel(self) -> None:
        self._runner.cancel()
