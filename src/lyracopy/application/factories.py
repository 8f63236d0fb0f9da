"""Factory for wiring a JobManager from configuration."""

from typing import Optional

from lyracopy.application.job_manager import JobManager
from lyracopy.application.progress import ProgressTracker
from lyracopy.domain.models import Job
from lyracopy.domain.protocols import DestinationOpener, IEventLog
from lyracopy.infrastructure.config.loader import LyraCopyConfig
from lyracopy.infrastructure.process.runner import ProcessRunner
from lyracopy.infrastructure.storage.event_log import JsonlEventLog
from lyracopy.infrastructure.sync.parser import RsyncProgressParser
from lyracopy.infrastructure.sync.remover import RemoveWrapper
from lyracopy.infrastructure.sync.rsync import RsyncWrapper
from lyracopy.shared.logging import LoggerAdapter, get_logger
from lyracopy.shared.metrics import MetricsCollector

logger = get_logger(__name__)


class JobManagerFactory:
    """
    Builds a JobManager and its collaborators from a LyraCopyConfig.

    One ProcessRunner is shared by the rsync and rm wrappers, so a stop
    request reaches whichever tool is running.
    """

    def __init__(self, config: LyraCopyConfig):
        self._config = config

    def create_event_log(self) -> JsonlEventLog:
        return JsonlEventLog(self._config.log_file)

    def create_runner(self) -> ProcessRunner:
        return ProcessRunner(
            kill_grace_seconds=self._config.kill_grace_seconds,
            accepted_codes=self._config.accepted_exit_codes,
        )

    def create_job(self) -> Job:
        return Job.transfer(
            self._config.source,
            self._config.destination,
            self._config.log_file,
            job_id=self._config.job_id,
        )

    def create(
        self,
        on_complete: Optional[DestinationOpener] = None,
        event_log: Optional[IEventLog] = None,
    ) -> JobManager:
        """
        Create a fully wired JobManager.

        Args:
            on_complete: Called with the destination after a successful transfer
            event_log: Event log to use instead of the configured JSONL file

        Returns:
            JobManager ready to start
        """
        runner = self.create_runner()
        rsync = RsyncWrapper(runner, RsyncProgressParser(), self._config.rsync_path)
        remover = RemoveWrapper(runner, self._config.rm_path)
        job = self.create_job()
        logger.debug(f"Using rsync={rsync.rsync_path} rm={remover.rm_path} for job {job.job_id}")

        return JobManager(
            job=job,
            event_log=event_log or self.create_event_log(),
            runner=runner,
            rsync=rsync,
            remover=remover,
            progress=ProgressTracker(self._config.history_limit),
            on_complete=on_complete,
            resume_from_log=self._config.resume_from_log,
            dry_run_preview=self._config.dry_run_preview,
            logger=LoggerAdapter(get_logger("JobManager")),
            metrics=MetricsCollector(),
        )
