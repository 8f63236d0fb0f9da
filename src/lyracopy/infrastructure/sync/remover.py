"""Recursive removal through ``rm`` for erase jobs."""

import shutil
from pathlib import Path
from typing import Optional

from lyracopy.domain.protocols import IProcessRunner
from lyracopy.shared.logging import get_logger

logger = get_logger(__name__)


class RemoveWrapper:
    """Runs ``rm -rf -- <target>``; any non-zero exit is a failure."""

    ACCEPTED_CODES = frozenset({0})

    def __init__(self, runner: IProcessRunner, rm_path: Optional[str] = None):
        self._runner = runner
        self.rm_path = rm_path or shutil.which("rm") or "rm"

    def remove(self, target: Path) -> int:
        """
        Remove *target* recursively.

        Raises:
            ProcessError: If rm cannot be launched, exits non-zero or is cancelled
        """
        logger.warning(f"Removing {target}")
        return self._runner.run(
            self.rm_path,
            ["-rf", "--", str(target)],
            on_line=lambda line: logger.warning(f"[rm] {line}"),
            accepted_codes=self.ACCEPTED_CODES,
        )

    def cancel(self) -> None:
        self._runner.cancel()
