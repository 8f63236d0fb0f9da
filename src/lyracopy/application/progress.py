"""Owner of the observable progress state of a job."""

import threading
from collections import deque
from pathlib import Path
from typing import Callable, Deque, Dict, List, Optional

from lyracopy.domain.models import (
    ControlState,
    CopyLogEntry,
    ProgressEvent,
    ProgressSnapshot,
    StepID,
    StepStatus,
)
from lyracopy.domain.protocols import SnapshotObserver
from lyracopy.shared.logging import get_logger

logger = get_logger(__name__)

DEFAULT_HISTORY_LIMIT = 100


class ProgressTracker:
    """
    Mutable progress state behind a lock.

    Runs write through a :class:`RunProgress` bound to the epoch returned by
    :meth:`reset`; steps feed it the ProgressEvents parsed from tool output.
    Everybody else reads immutable :class:`ProgressSnapshot` copies, either
    by polling :meth:`snapshot` or by subscribing. Observers are called on
    the writer's thread, outside the lock.
    """

    def __init__(self, history_limit: int = DEFAULT_HISTORY_LIMIT):
        if history_limit <= 0:
            raise ValueError("history_limit must be positive")
        self._lock = threading.RLock()
        self._observers: List[SnapshotObserver] = []
        self._history: Deque[CopyLogEntry] = deque(maxlen=history_limit)
        self._control_state = ControlState.IDLE
        self._epoch = 0
        self._reset_fields(job_id=None)

    def _reset_fields(self, job_id: Optional[str]) -> None:
        self._job_id = job_id
        self._bytes_done = 0
        self._total_bytes: Optional[int] = None
        self._speed_bps = 0
        self._current_file: Optional[str] = None
        self._error_message: Optional[str] = None
        self._statuses: Dict[StepID, StepStatus] = {step: StepStatus.WAITING for step in StepID}
        self._history.clear()

    @property
    def history_limit(self) -> int:
        return self._history.maxlen

    def reset(self, job_id: Optional[str]) -> int:
        """
        Clear everything for a new run of *job_id*; all steps go back to waiting.

        Returns:
            The new run epoch; writers bound to an older epoch are ignored
        """
        with self._lock:
            self._epoch += 1
            self._reset_fields(job_id)
            epoch = self._epoch
        self._notify()
        return epoch

    def writer(self, epoch: int) -> "RunProgress":
        """Writer for the run started by the reset that returned *epoch*."""
        return RunProgress(self, epoch)

    def _is_stale(self, epoch: Optional[int]) -> bool:
        return epoch is not None and epoch != self._epoch

    def set_control_state(self, state: ControlState) -> None:
        with self._lock:
            self._control_state = state
        self._notify()

    def set_step_status(self, step: StepID, status: StepStatus, epoch: Optional[int] = None) -> None:
        with self._lock:
            if self._is_stale(epoch):
                return
            self._statuses[step] = status
        self._notify()

    def set_error(self, message: Optional[str], epoch: Optional[int] = None) -> None:
        with self._lock:
            if self._is_stale(epoch):
                return
            self._error_message = message
        self._notify()

    def begin_measurement(self, total_bytes: int, epoch: Optional[int] = None) -> None:
        """Set the size of the work (None when zero) and restart the byte count."""
        with self._lock:
            if self._is_stale(epoch):
                return
            self._total_bytes = total_bytes if total_bytes > 0 else None
            self._bytes_done = 0
        self._notify()

    def apply(
        self,
        event: ProgressEvent,
        source_root: Optional[Path] = None,
        epoch: Optional[int] = None,
    ) -> bool:
        """
        Fold one event from the copy pass into the state.

        Byte counts only move forward: unknown, non-positive or smaller
        values are ignored. A file event becomes the current file and is
        added to the history unless its name equals the newest entry.

        Returns:
            True if a history entry was added
        """
        added = False
        with self._lock:
            if self._is_stale(epoch):
                return False
            if event.bytes_done is not None and event.bytes_done > 0 and event.bytes_done > self._bytes_done:
                self._bytes_done = event.bytes_done
            if event.speed_bps is not None:
                self._speed_bps = event.speed_bps
            if event.current_file is not None:
                self._current_file = event.current_file
                name = Path(event.current_file).name or event.current_file
                if not self._history or self._history[-1].file_name != name:
                    source_path = str(source_root / event.current_file) if source_root else event.current_file
                    # deque(maxlen) evicts the oldest entry
                    self._history.append(
                        CopyLogEntry(file_name=name, file_size=self._bytes_done, source_path=source_path)
                    )
                    added = True
        self._notify()
        return added

    def show_file(self, path: str, epoch: Optional[int] = None) -> None:
        """Update the current file without touching history or byte counts."""
        with self._lock:
            if self._is_stale(epoch):
                return
            self._current_file = path
        self._notify()

    def complete(self, epoch: Optional[int] = None) -> None:
        """Mark the byte count as finished when the total is known."""
        with self._lock:
            if self._is_stale(epoch):
                return
            if self._total_bytes:
                self._bytes_done = self._total_bytes
        self._notify()

    def snapshot(self) -> ProgressSnapshot:
        with self._lock:
            return ProgressSnapshot(
                job_id=self._job_id,
                control_state=self._control_state,
                bytes_done=self._bytes_done,
                total_bytes=self._total_bytes,
                speed_bps=self._speed_bps,
                current_file=self._current_file,
                history=tuple(self._history),
                step_statuses=dict(self._statuses),
                error_message=self._error_message,
            )

    def subscribe(self, observer: SnapshotObserver) -> Callable[[], None]:
        """Register *observer*; returns a function that unregisters it."""
        with self._lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def _notify(self) -> None:
        with self._lock:
            observers = list(self._observers)
        if not observers:
            return
        snapshot = self.snapshot()
        for observer in observers:
            try:
                observer(snapshot)
            except Exception:
                logger.exception(f"Progress observer {observer!r} failed")


class RunProgress:
    """
    Progress writer bound to one run.

    Once the tracker has been reset for a newer run, every write through
    this object is dropped, so a superseded run that is still draining its
    last step cannot leak into the new run's snapshot.
    """

    def __init__(self, tracker: ProgressTracker, epoch: int):
        self._tracker = tracker
        self._epoch = epoch

    @property
    def epoch(self) -> int:
        return self._epoch

    def set_step_status(self, step: StepID, status: StepStatus) -> None:
        self._tracker.set_step_status(step, status, epoch=self._epoch)

    def set_error(self, message: Optional[str]) -> None:
        self._tracker.set_error(message, epoch=self._epoch)

    def begin_measurement(self, total_bytes: int) -> None:
        self._tracker.begin_measurement(total_bytes, epoch=self._epoch)

    def apply(self, event: ProgressEvent, source_root: Optional[Path] = None) -> bool:
        return self._tracker.apply(event, source_root=source_root, epoch=self._epoch)

    def show_file(self, path: str) -> None:
        self._tracker.show_file(path, epoch=self._epoch)

    def complete(self) -> None:
        self._tracker.complete(epoch=self._epoch)

    def snapshot(self) -> ProgressSnapshot:
        return self._tracker.snapshot()
