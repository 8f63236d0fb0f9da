"""Protocol definitions for dependency inversion."""

from typing import Protocol, Iterable, Iterator, List, Optional, Sequence
from pathlib import Path

from .models import LogRecord, ProgressEvent, ProgressSnapshot, StepID, StepStatus


class IProgressParser(Protocol):
    """Turns one line of tool output into a progress event, or None for noise."""

    def parse(self, line: str) -> Optional[ProgressEvent]:
        """Classify a single output line."""
        ...


class IProcessRunner(Protocol):
    """Interface for launching an external tool and streaming its output."""

    def run(
        self,
        executable: str,
        arguments: Sequence[str],
        on_line=None,
        accepted_codes: Optional[Iterable[int]] = None,
    ) -> int:
        """Run to completion, delivering each output line; return the exit status."""
        ...

    def stream(
        self,
        executable: str,
        arguments: Sequence[str],
        accepted_codes: Optional[Iterable[int]] = None,
    ) -> Iterator[str]:
        """Lazily yield output lines; the exit status is checked when exhausted."""
        ...

    def cancel(self) -> None:
        """Terminate the running process (graceful first, forced after a grace period)."""
        ...

    def reset(self) -> None:
        """Clear a pending cancel request before a new run."""
        ...


class IEventLog(Protocol):
    """Interface for the append-only step event log."""

    def append(self, record: LogRecord) -> None:
        """Queue a record for writing; never raises."""
        ...

    def read_all(self) -> List[LogRecord]:
        """Return every well-formed record in file order."""
        ...

    def flush(self, timeout: Optional[float] = None) -> bool:
        """Wait until queued records are on disk."""
        ...


class IProgressSink(Protocol):
    """Write side of the progress state used by steps and the pipeline."""

    def set_step_status(self, step: StepID, status: StepStatus) -> None:
        ...

    def set_error(self, message: Optional[str]) -> None:
        ...

    def begin_measurement(self, total_bytes: int) -> None:
        ...

    def apply(self, event: ProgressEvent, source_root: Optional[Path] = None) -> bool:
        ...

    def show_file(self, path: str) -> None:
        ...

    def complete(self) -> None:
        ...

    def snapshot(self) -> ProgressSnapshot:
        ...


class DestinationOpener(Protocol):
    """Collaborator notified once a transfer completed successfully."""

    def __call__(self, destination: Path) -> None:
        ...


class SnapshotObserver(Protocol):
    """Receives a fresh snapshot after every progress change."""

    def __call__(self, snapshot: ProgressSnapshot) -> None:
        ...


class ILogger(Protocol):
    """Interface for logging."""

    def debug(self, message: str, **kwargs) -> None:
        """Log debug message."""
        ...

    def info(self, message: str, **kwargs) -> None:
        """Log info message."""
        ...

    def warning(self, message: str, **kwargs) -> None:
        """Log warning message."""
        ...

    def error(self, message: str, **kwargs) -> None:
        """Log error message."""
        ...

    def exception(self, message: str, **kwargs) -> None:
        """Log exception with traceback."""
        ...


class IMetricsCollector(Protocol):
    """Interface for collecting metrics."""

    def start_timer(self, name: str) -> None:
        """Start a named timer."""
        ...

    def stop_timer(self, name: str) -> float:
        """Stop a named timer and return elapsed time."""
        ...

    def record_metric(self, name: str, value: float) -> None:
        """Record a metric value."""
        ...

    def increment_counter(self, name: str, amount: int = 1) -> None:
        """Increment a counter."""
        ...

    def get_summary(self) -> dict:
        """Get summary of all metrics."""
        ...
