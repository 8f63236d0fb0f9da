"""Step pipeline: runs steps in order and records their lifecycle."""

from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from lyracopy.application.steps import BaseStep, StepContext
from lyracopy.domain.exceptions import DomainException, ProcessExitError
from lyracopy.domain.models import LogRecord, StepID, StepStatus
from lyracopy.domain.protocols import IEventLog, ILogger, IMetricsCollector, IProgressSink

# Exit code recorded for failures that did not come from a tool's exit status
GENERIC_FAILURE_CODE = 1


@dataclass(frozen=True)
class PipelineResult:
    """Outcome of one pass over the steps."""

    completed: bool
    last_step: Optional[StepID] = None
    failed_step: Optional[StepID] = None
    error_message: Optional[str] = None
    exit_code: int = 0

    @property
    def failed(self) -> bool:
        return self.failed_step is not None


class StepPipeline:
    """
    Executes steps fail-fast and writes a start/end record pair for each.

    The pipeline checks ``should_continue`` before every step, so a pause or
    stop lets the in-flight step finish (or fail, when its subprocess is
    cancelled) and prevents the next one from starting.
    """

    def __init__(
        self,
        steps: Sequence[BaseStep],
        event_log: IEventLog,
        progress: IProgressSink,
        logger: ILogger,
        metrics: IMetricsCollector,
    ):
        self._steps = list(steps)
        self._event_log = event_log
        self._progress = progress
        self._logger = logger
        self._metrics = metrics

    @property
    def steps(self) -> Sequence[BaseStep]:
        return tuple(self._steps)

    def run(
        self,
        context: StepContext,
        should_continue: Callable[[], bool],
        start_index: int = 0,
    ) -> PipelineResult:
        """
        Run the steps from *start_index* onwards.

        Args:
            context: Shared state for the steps
            should_continue: Polled before each step; False ends the pass early
            start_index: Index of the first step to execute

        Returns:
            PipelineResult; ``completed`` is True only if every step ran and succeeded
        """
        job_id = context.job.job_id
        last_step: Optional[StepID] = None

        for step in self._steps[start_index:]:
            if not should_continue():
                self._logger.info(f"Job {job_id} halted before {step.step_id.label}")
                return PipelineResult(completed=False, last_step=last_step)

            step_id = step.step_id
            self._progress.set_step_status(step_id, StepStatus.RUNNING)
            self._event_log.append(LogRecord.start(job_id, step_id))
            self._logger.info(f"[{job_id}] {step_id.label} started")
            self._metrics.start_timer(step_id.label)

            try:
                step.execute(context)
            except Exception as e:
                elapsed = self._metrics.stop_timer(step_id.label)
                return self._record_failure(context, step, e, elapsed)

            elapsed = self._metrics.stop_timer(step_id.label)
            bytes_done, speed = self._progress_fields(step)
            self._event_log.append(
                LogRecord.end(job_id, step_id, StepStatus.OK, 0, bytes_done=bytes_done, speed=speed)
            )
            self._progress.set_step_status(step_id, StepStatus.OK)
            self._logger.info(f"[{job_id}] {step_id.label} ok ({elapsed:.2f}s)")
            last_step = step_id

        return PipelineResult(completed=True, last_step=last_step)

    def _record_failure(
        self,
        context: StepContext,
        step: BaseStep,
        error: Exception,
        elapsed: float,
    ) -> PipelineResult:
        job_id = context.job.job_id
        step_id = step.step_id
        message = str(error) or error.__class__.__name__
        exit_code = error.exit_code if isinstance(error, ProcessExitError) else GENERIC_FAILURE_CODE

        if isinstance(error, DomainException):
            self._logger.error(f"[{job_id}] {step_id.label} failed after {elapsed:.2f}s: {message}")
        else:
            self._logger.exception(f"[{job_id}] {step_id.label} crashed: {message}")

        bytes_done, speed = self._progress_fields(step)
        self._event_log.append(
            LogRecord.end(
                job_id,
                step_id,
                StepStatus.ERROR,
                exit_code,
                message=message,
                bytes_done=bytes_done,
                speed=speed,
            )
        )
        self._progress.set_step_status(step_id, StepStatus.ERROR)
        self._progress.set_error(message)
        return PipelineResult(
            completed=False,
            failed_step=step_id,
            error_message=message,
            exit_code=exit_code,
        )

    def _progress_fields(self, step: BaseStep):
        if not step.reports_progress:
            return None, None
        snapshot = self._progress.snapshot()
        return snapshot.bytes_done, snapshot.speed_bps
