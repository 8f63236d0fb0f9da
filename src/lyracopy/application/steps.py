"""Pipeline steps for transfer and erase jobs."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from lyracopy.domain.exceptions import (
    DestinationPrepareError,
    EraseTargetNotFoundError,
    IdenticalPathsError,
    InsufficientSpaceError,
    NestedDestinationError,
    PathValidationError,
    SourceNotFoundError,
)
from lyracopy.domain.models import Job, OperatingMode, ProgressEvent, StepID
from lyracopy.domain.protocols import IMetricsCollector, IProgressSink
from lyracopy.infrastructure.storage.disk import folder_size, free_space
from lyracopy.infrastructure.sync.remover import RemoveWrapper
from lyracopy.infrastructure.sync.rsync import RsyncWrapper
from lyracopy.shared.logging import get_logger

logger = get_logger(__name__)


@dataclass
class StepContext:
    """Everything a step may touch during one run."""

    job: Job
    progress: IProgressSink
    rsync: RsyncWrapper
    remover: RemoveWrapper
    metrics: IMetricsCollector

    def transfer_paths(self) -> Tuple[Path, Path]:
        """
        Source and destination of a transfer job.

        Raises:
            PathValidationError: If either path is unset
        """
        if self.job.source is None or self.job.destination is None:
            raise PathValidationError("Source and destination must both be set")
        return self.job.source, self.job.destination


class BaseStep(ABC):
    """
    One unit of a job's pipeline.

    A step either returns normally (ok) or raises; the pipeline turns the
    exception into an error record and aborts the run. Steps that report
    progress get the tracker's byte count and speed on their end record.
    """

    step_id: StepID
    reports_progress: bool = False

    def __init__(self):
        self._logger = get_logger(self.__class__.__name__)

    @abstractmethod
    def execute(self, context: StepContext) -> None:
        """
        Run the step.

        Args:
            context: Job, tools and progress tracker for this run

        Raises:
            DomainException: If the step fails
        """
        pass

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.step_id.value})"


class ValidatePathsStep(BaseStep):
    step_id = StepID.VALIDATE_PATHS

    def execute(self, context: StepContext) -> None:
        source, destination = context.transfer_paths()
        if not source.exists():
            raise SourceNotFoundError(f"Source does not exist: {source}")

        # resolve() without strict works for a destination that is not there yet
        resolved_source = source.resolve()
        resolved_dest = destination.resolve()
        if resolved_source == resolved_dest:
            raise IdenticalPathsError(f"Source and destination are the same path: {resolved_source}")
        if resolved_source in resolved_dest.parents:
            raise NestedDestinationError(
                f"Destination {resolved_dest} is inside source {resolved_source}"
            )
        self._logger.info(f"Paths OK: {resolved_source} -> {resolved_dest}")


class CheckSpaceStep(BaseStep):
    step_id = StepID.CHECK_SPACE

    def execute(self, context: StepContext) -> None:
        source, destination = context.transfer_paths()
        required = folder_size(source)
        available = free_space(destination)
        self._logger.info(f"Source needs {required} bytes, {available} bytes free at destination")
        if required > available:
            raise InsufficientSpaceError(required, available)
        context.metrics.record_metric("source_bytes", required)
        context.progress.begin_measurement(required)


class PrepareDestinationStep(BaseStep):
    step_id = StepID.PREPARE_DEST

    def execute(self, context: StepContext) -> None:
        _, destination = context.transfer_paths()
        try:
            destination.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise DestinationPrepareError(f"Cannot create destination {destination}: {e}") from e
        self._logger.debug(f"Prepared destination directory: {destination}")


class SkippedPlanStep(BaseStep):
    """Placeholder for the planning slot; always succeeds."""

    step_id = StepID.PLAN_DRYRUN

    def execute(self, context: StepContext) -> None:
        self._logger.debug("Dry-run planning disabled")


class DryRunPreviewStep(BaseStep):
    """Dry-run rsync pass that shows each file it would copy as the current file."""

    step_id = StepID.PLAN_DRYRUN

    def execute(self, context: StepContext) -> None:
        source, destination = context.transfer_paths()
        planned = 0

        def on_event(event: ProgressEvent) -> None:
            nonlocal planned
            if event.is_file:
                planned += 1
                context.progress.show_file(event.current_file)

        context.rsync.sync(source, destination, dry_run=True, on_progress=on_event)
        self._logger.info(f"Dry run lists {planned} item(s) to copy")


class CopyRunStep(BaseStep):
    step_id = StepID.COPY_RUN
    reports_progress = True

    def execute(self, context: StepContext) -> None:
        source, destination = context.transfer_paths()

        def on_event(event: ProgressEvent) -> None:
            if context.progress.apply(event, source_root=source):
                context.metrics.increment_counter("files_seen")

        exit_code = context.rsync.sync(source, destination, dry_run=False, on_progress=on_event)
        context.metrics.record_metric("copied_bytes", context.progress.snapshot().bytes_done)
        self._logger.info(f"Copy finished with exit code {exit_code}")


class PostVerifyStep(BaseStep):
    """Dry-run pass after the copy; leftover differences are logged, not fatal."""

    step_id = StepID.POST_VERIFY

    def execute(self, context: StepContext) -> None:
        source, destination = context.transfer_paths()
        differences: List[str] = []

        def on_event(event: ProgressEvent) -> None:
            if event.is_file:
                differences.append(event.current_file)

        context.rsync.sync(source, destination, dry_run=True, on_progress=on_event)
        if differences:
            self._logger.warning(
                f"Verification pass still itemizes {len(differences)} entr"
                f"{'y' if len(differences) == 1 else 'ies'}, first: {differences[0]}"
            )
        else:
            self._logger.info("Verification pass found no differences")


class FinalizeStep(BaseStep):
    step_id = StepID.FINALIZE

    def execute(self, context: StepContext) -> None:
        self._logger.info(f"Job {context.job.job_id} finalized")


class ConfirmEraseStep(BaseStep):
    """Checks the erase target still exists; the user confirmed it before start."""

    step_id = StepID.CONFIRM

    def execute(self, context: StepContext) -> None:
        target = context.job.source
        if target is None:
            raise PathValidationError("No erase target set")
        if not target.exists() and not target.is_symlink():
            raise EraseTargetNotFoundError(f"Erase target does not exist: {target}")
        self._logger.warning(f"Erase confirmed for {target}")


class DeleteRunStep(BaseStep):
    step_id = StepID.DELETE_RUN

    def execute(self, context: StepContext) -> None:
        context.remover.remove(context.job.source)


def build_steps(mode: OperatingMode, dry_run_preview: bool = False) -> List[BaseStep]:
    """
    Instantiate the ordered steps for *mode*.

    Args:
        mode: Transfer or erase
        dry_run_preview: Run a real dry-run pass in the planning slot

    Returns:
        Fresh step instances in execution order
    """
    if mode == OperatingMode.ERASE:
        return [ConfirmEraseStep(), DeleteRunStep()]

    plan: Optional[BaseStep] = DryRunPreviewStep() if dry_run_preview else SkippedPlanStep()
    return [
        ValidatePathsStep(),
        CheckSpaceStep(),
        PrepareDestinationStep(),
        plan,
        CopyRunStep(),
        PostVerifyStep(),
        FinalizeStep(),
    ]
