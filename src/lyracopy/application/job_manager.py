"""Job control: start, pause, stop, erase and resume of pipeline runs."""

import queue
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Iterable, Optional

from lyracopy.application.pipeline import StepPipeline
from lyracopy.application.progress import ProgressTracker, RunProgress
from lyracopy.application.steps import StepContext, build_steps
from lyracopy.domain.exceptions import EventLogError
from lyracopy.domain.models import (
    ControlState,
    Job,
    LogRecord,
    OperatingMode,
    ProgressSnapshot,
    STARTABLE_STATES,
    StepID,
    StepStatus,
)
from lyracopy.domain.protocols import (
    DestinationOpener,
    IEventLog,
    ILogger,
    IMetricsCollector,
    SnapshotObserver,
)
from lyracopy.infrastructure.process.runner import ProcessRunner
from lyracopy.infrastructure.sync.remover import RemoveWrapper
from lyracopy.infrastructure.sync.rsync import RsyncWrapper
from lyracopy.shared.logging import LoggerAdapter, get_logger
from lyracopy.shared.metrics import MetricsCollector

_SHUTDOWN = object()


def find_resume_point(records: Iterable[LogRecord], job_id: str) -> Optional[StepID]:
    """
    Last step of *job_id* whose end record reports success.

    Records of other jobs and unknown step identifiers are ignored.
    """
    point: Optional[StepID] = None
    for record in records:
        if record.job_id != job_id or not record.is_successful_end:
            continue
        step = record.step
        if step is not None:
            point = step
    return point


@dataclass(frozen=True)
class _RunCommand:
    job: Job
    generation: int
    epoch: int
    resume: bool


class JobManager:
    """
    Owns one job's control state and executes its runs.

    Runs execute one at a time on a private worker thread fed through a
    command queue. Every control-state transition happens under one lock;
    each accepted start bumps a generation counter so that a run which was
    paused or stopped cannot continue once a newer run has been requested.
    """

    def __init__(
        self,
        job: Job,
        event_log: IEventLog,
        runner: ProcessRunner,
        rsync: RsyncWrapper,
        remover: RemoveWrapper,
        progress: Optional[ProgressTracker] = None,
        on_complete: Optional[DestinationOpener] = None,
        resume_from_log: bool = False,
        dry_run_preview: bool = False,
        logger: Optional[ILogger] = None,
        metrics: Optional[IMetricsCollector] = None,
    ):
        self._transfer_job = job
        self._job = job
        self._event_log = event_log
        self._runner = runner
        self._rsync = rsync
        self._remover = remover
        self._progress = progress or ProgressTracker()
        self._on_complete = on_complete
        self._resume_from_log = resume_from_log
        self._dry_run_preview = dry_run_preview
        self._logger = logger or LoggerAdapter(get_logger("JobManager"))
        self._metrics = metrics or MetricsCollector()

        # RLock: observers run on the caller's thread and may call back in
        self._lock = threading.RLock()
        self._control_state = ControlState.IDLE
        self._generation = 0
        self._pending_runs = 0
        self._closed = False
        self._idle = threading.Event()
        self._idle.set()

        self._commands: queue.Queue = queue.Queue()
        self._worker = threading.Thread(target=self._worker_loop, name="job-manager", daemon=True)
        self._worker.start()

    # ------------------------------------------------------------------
    # Read-only state
    # ------------------------------------------------------------------

    @property
    def control_state(self) -> ControlState:
        with self._lock:
            return self._control_state

    @property
    def job(self) -> Job:
        with self._lock:
            return self._job

    @property
    def metrics(self) -> IMetricsCollector:
        return self._metrics

    def snapshot(self) -> ProgressSnapshot:
        return self._progress.snapshot()

    def subscribe(self, observer: SnapshotObserver) -> Callable[[], None]:
        """Register a snapshot observer; returns the unsubscribe function."""
        return self._progress.subscribe(observer)

    # ------------------------------------------------------------------
    # Control
    # ------------------------------------------------------------------

    def start(self, source: Optional[Path] = None, destination: Optional[Path] = None) -> bool:
        """
        Start a transfer run.

        Args:
            source: New source path; used only together with *destination*
            destination: New destination path

        Returns:
            True if the run was accepted, False if a run is already active
        """
        with self._lock:
            if not self._can_start():
                return False
            if source is not None and destination is not None:
                self._transfer_job = self._transfer_job.with_paths(source, destination)
                self._logger.info(f"New transfer job {self._transfer_job.job_id}: {source} -> {destination}")
            return self._accept(self._transfer_job, resume=self._resume_from_log)

    def start_erase(self, target: Path) -> bool:
        """
        Start an erase run for *target* under a fresh job id.

        Returns:
            True if the run was accepted, False if a run is already active
        """
        with self._lock:
            if not self._can_start():
                return False
            job = Job.erase(target, log_file=self._transfer_job.log_file)
            self._logger.warning(f"New erase job {job.job_id}: {target}")
            return self._accept(job, resume=False)

    def pause(self) -> None:
        """Let the in-flight step finish and keep the next one from starting."""
        with self._lock:
            self._set_control_state(ControlState.PAUSED)
        self._logger.info(f"Job {self.job.job_id} paused")

    def stop(self) -> None:
        """Stop the run and cancel the in-flight subprocess, if any."""
        with self._lock:
            self._set_control_state(ControlState.STOPPED)
        self._runner.cancel()
        self._logger.info(f"Job {self.job.job_id} stopped")

    def wait(self, timeout: Optional[float] = None) -> bool:
        """
        Block until no run is queued or executing.

        Returns:
            False if *timeout* expired first
        """
        return self._idle.wait(timeout)

    def resume_point(self) -> Optional[StepID]:
        """Last successfully finished step of the current job according to the event log."""
        job_id = self.job.job_id
        try:
            records = self._event_log.read_all()
        except EventLogError as e:
            self._logger.warning(f"Cannot compute resume point for {job_id}: {e}")
            return None
        return find_resume_point(records, job_id)

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """Stop any active run and end the worker thread."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            if self._control_state == ControlState.RUNNING:
                self._set_control_state(ControlState.STOPPED)
                self._runner.cancel()
        self._commands.put(_SHUTDOWN)
        self._worker.join(timeout)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _can_start(self) -> bool:
        if self._closed:
            self._logger.warning("Start ignored: job manager is shut down")
            return False
        if self._control_state not in STARTABLE_STATES:
            self._logger.info(f"Start ignored: job is {self._control_state.value}")
            return False
        return True

    def _accept(self, job: Job, resume: bool) -> bool:
        self._job = job
        self._generation += 1
        self._pending_runs += 1
        self._idle.clear()
        # the previous run may still be draining; its writer is now stale
        epoch = self._progress.reset(job.job_id)
        self._set_control_state(ControlState.RUNNING)
        self._commands.put(
            _RunCommand(job=job, generation=self._generation, epoch=epoch, resume=resume)
        )
        return True

    def _set_control_state(self, state: ControlState) -> None:
        self._control_state = state
        self._progress.set_control_state(state)

    def _is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation and self._control_state == ControlState.RUNNING

    def _worker_loop(self) -> None:
        while True:
            command = self._commands.get()
            if command is _SHUTDOWN:
                break
            try:
                self._execute(command)
            except Exception:
                self._logger.exception(f"Run of job {command.job.job_id} crashed")
                with self._lock:
                    if command.generation == self._generation:
                        self._set_control_state(ControlState.STOPPED)
            finally:
                with self._lock:
                    self._pending_runs -= 1
                    if self._pending_runs == 0:
                        self._idle.set()

    def _execute(self, command: _RunCommand) -> None:
        job = command.job
        if not self._is_current(command.generation):
            self._logger.debug(f"Skipping superseded run of job {job.job_id}")
            return

        self._runner.reset()
        progress = self._progress.writer(command.epoch)
        self._metrics.increment_counter("runs_started")
        self._logger.info(f"Starting {job.mode.value} job {job.job_id}")

        steps = build_steps(job.mode, dry_run_preview=self._dry_run_preview)
        start_index = self._resume_index(job, steps, progress) if command.resume else 0

        context = StepContext(
            job=job,
            progress=progress,
            rsync=self._rsync,
            remover=self._remover,
            metrics=self._metrics,
        )
        pipeline = StepPipeline(steps, self._event_log, progress, self._logger, self._metrics)
        result = pipeline.run(
            context,
            should_continue=lambda: self._is_current(command.generation),
            start_index=start_index,
        )

        completed = False
        with self._lock:
            is_current = command.generation == self._generation
            if result.failed:
                self._metrics.increment_counter("runs_failed")
                if is_current:
                    self._set_control_state(ControlState.STOPPED)
            elif result.completed and is_current and self._control_state == ControlState.RUNNING:
                self._set_control_state(ControlState.IDLE)
                progress.complete()
                self._metrics.increment_counter("runs_completed")
                completed = True

        if completed:
            self._logger.info(f"Job {job.job_id} completed")
            if job.mode == OperatingMode.TRANSFER and self._on_complete is not None:
                self._notify_completion(job)
        self._metrics.log_summary(self._logger)

    def _resume_index(self, job: Job, steps, progress: RunProgress) -> int:
        try:
            records = self._event_log.read_all()
        except EventLogError as e:
            self._logger.warning(f"Event log unreadable, restarting job {job.job_id}: {e}")
            return 0

        point = find_resume_point(records, job.job_id)
        step_ids = [step.step_id for step in steps]
        if point is None or point not in step_ids:
            return 0
        index = step_ids.index(point) + 1
        if index >= len(step_ids):
            self._logger.info(f"Job {job.job_id} already finished, starting over")
            return 0

        for step_id in step_ids[:index]:
            progress.set_step_status(step_id, StepStatus.OK)
        self._logger.info(f"Resuming job {job.job_id} after {point.label}")
        return index

    def _notify_completion(self, job: Job) -> None:
        try:
            self._on_complete(job.destination)
        except Exception:
            self._logger.exception(f"Destination opener failed for {job.destination}")
