"""Command-line interface for transfer and erase jobs."""

import sys
import argparse
import logging
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from lyracopy import __version__
from lyracopy.application.factories import JobManagerFactory
from lyracopy.application.job_manager import JobManager, find_resume_point
from lyracopy.domain.exceptions import ConfigurationError, DomainException, EventLogError
from lyracopy.domain.models import ControlState, ProgressSnapshot, StepStatus
from lyracopy.infrastructure.config import ConfigLoader, LyraCopyConfig
from lyracopy.infrastructure.storage import JsonlEventLog
from lyracopy.shared.logging import setup_logger, get_logger, parse_level

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_USAGE = 2
EXIT_INTERRUPTED = 130

# Poll interval while waiting for a run; keeps Ctrl-C responsive
WAIT_POLL_SECONDS = 0.5

logger = get_logger(__name__)


class ProgressPrinter:
    """Snapshot observer that prints a line per step change and per whole percent."""

    def __init__(self, stream=None):
        self._stream = stream or sys.stdout
        self._last_percent: Optional[int] = None
        self._last_running = None

    def __call__(self, snapshot: ProgressSnapshot) -> None:
        running = [step for step, status in snapshot.step_statuses.items() if status == StepStatus.RUNNING]
        if running and running[0] != self._last_running:
            self._last_running = running[0]
            self._write(f"-> {running[0].label}")

        fraction = snapshot.fraction
        if fraction is None:
            return
        percent = int(fraction * 100)
        if percent != self._last_percent:
            self._last_percent = percent
            current = snapshot.current_file or ""
            self._write(f"   {percent:3d}%  {snapshot.bytes_done}/{snapshot.total_bytes} bytes  {current}")

    def _write(self, text: str) -> None:
        print(text, file=self._stream, flush=True)


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--config', type=Path, help='Config YAML file (default: ./lyracopy.yaml)')
    common.add_argument('--log', type=Path, help='JSONL event log (default: ./lyra_copy.jsonl)')
    common.add_argument('--verbose', '-v', action='store_true', help='Verbose')

    parser = argparse.ArgumentParser(prog='lyracopy', description="Resumable rsync transfers with a step event log")
    parser.add_argument('--version', action='version', version=f'%(prog)s {__version__}')
    subparsers = parser.add_subparsers(dest='command', required=True)

    transfer = subparsers.add_parser('transfer', parents=[common], help='Copy SRC into DST')
    transfer.add_argument('source', nargs='?', type=Path, help='Source directory or file')
    transfer.add_argument('destination', nargs='?', type=Path, help='Destination directory')
    transfer.add_argument('--job-id', help='Job id to record (default: new UUID)')
    transfer.add_argument('--resume', action='store_true', help='Continue after the last successful step of --job-id')
    transfer.add_argument('--dry-run-preview', action='store_true', help='Run an rsync dry run before copying')

    erase = subparsers.add_parser('erase', parents=[common], help='Recursively delete TARGET')
    erase.add_argument('target', type=Path, help='File or directory to delete')
    erase.add_argument('--yes', action='store_true', help='Confirm the deletion')

    resume = subparsers.add_parser('resume-point', parents=[common], help='Print the last successful step of a job')
    resume.add_argument('--job-id', required=True, help='Job id to look up')

    history = subparsers.add_parser('history', parents=[common], help='Print event log records')
    history.add_argument('--job-id', help='Only records of this job')

    return parser


def load_config(args: argparse.Namespace) -> LyraCopyConfig:
    """Load configuration with command-line values taking precedence."""
    overrides = {
        'log_file': args.log,
        'log_level': 'DEBUG' if args.verbose else None,
    }
    if args.command == 'transfer':
        if (args.source is None) != (args.destination is None):
            raise ConfigurationError("transfer needs both SRC and DST, or neither")
        overrides.update({
            'source': args.source,
            'destination': args.destination,
            'job_id': args.job_id,
            'resume_policy': 'resume' if args.resume else None,
            'dry_run_preview': True if args.dry_run_preview else None,
        })
    return ConfigLoader(config_path=args.config).load(overrides=overrides)


def run_job(manager: JobManager, start, kill_grace_seconds: float) -> int:
    """
    Start a run through *start* and block until it ends.

    Returns:
        Process exit code for the run
    """
    if not start():
        logger.error("Job could not be started")
        return EXIT_FAILED

    try:
        while not manager.wait(WAIT_POLL_SECONDS):
            pass
    except KeyboardInterrupt:
        logger.warning("Interrupted, stopping job")
        manager.stop()
        manager.wait(kill_grace_seconds + 5.0)
        return EXIT_INTERRUPTED

    snapshot = manager.snapshot()
    job = manager.job
    failed = [step for step in job.steps if snapshot.status_of(step) != StepStatus.OK]
    if snapshot.control_state == ControlState.IDLE and not failed:
        logger.info(f"Job {job.job_id} finished successfully")
        return EXIT_OK

    logger.error(f"Job {job.job_id} did not finish: {snapshot.error_message or snapshot.control_state.value}")
    return EXIT_FAILED


def _run_with_manager(config: LyraCopyConfig, args: argparse.Namespace) -> int:
    factory = JobManagerFactory(config)
    event_log = factory.create_event_log()
    manager = factory.create(event_log=event_log)
    manager.subscribe(ProgressPrinter())
    try:
        if args.command == 'erase':
            start = lambda: manager.start_erase(args.target)
        else:
            logger.info(f"Job {manager.job.job_id}: {config.source} -> {config.destination}")
            start = manager.start
        code = run_job(manager, start, config.kill_grace_seconds)
        print(f"job_id={manager.job.job_id}")
        return code
    finally:
        manager.shutdown(timeout=config.kill_grace_seconds + 5.0)
        event_log.close()


def _print_resume_point(config: LyraCopyConfig, job_id: str) -> int:
    event_log = JsonlEventLog(config.log_file)
    try:
        point = find_resume_point(event_log.read_all(), job_id)
    finally:
        event_log.close()
    print(point.value if point else "none")
    return EXIT_OK


def _print_history(config: LyraCopyConfig, job_id: Optional[str]) -> int:
    event_log = JsonlEventLog(config.log_file)
    try:
        records = event_log.records_for_job(job_id) if job_id else event_log.read_all()
    finally:
        event_log.close()
    for record in records:
        print(record.to_json())
    return EXIT_OK


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    load_dotenv()
    args = build_parser().parse_args(argv)

    setup_logger(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = load_config(args)
        setup_logger(level=parse_level(config.log_level))

        if args.command == 'erase' and not args.yes:
            logger.error(f"Refusing to erase {args.target} without --yes")
            return EXIT_USAGE
        if args.command in ('transfer', 'erase'):
            return _run_with_manager(config, args)
        if args.command == 'resume-point':
            return _print_resume_point(config, args.job_id)
        return _print_history(config, args.job_id)

    except ConfigurationError as e:
        logger.error(f"Configuration error: {e}")
        return EXIT_USAGE
    except EventLogError as e:
        logger.error(f"Event log error: {e}")
        return EXIT_FAILED
    except DomainException as e:
        logger.error(f"Error: {e}")
        return EXIT_FAILED
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return EXIT_INTERRUPTED


if __name__ == '__main__':
    sys.exit(main())
