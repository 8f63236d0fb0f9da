"""Domain models for transfer and erase jobs."""

import json
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Optional, Dict, Any, Tuple


class OperatingMode(str, Enum):
    """What a job does with its paths."""

    TRANSFER = "transfer"
    ERASE = "erase"


class StepID(str, Enum):
    """
    Pipeline steps. Values are the identifiers written to the event log;
    the prefixes keep them sortable in the order they run.
    """

    VALIDATE_PATHS = "S01_validate_paths"
    CHECK_SPACE = "S02_check_space"
    PREPARE_DEST = "S03_prepare_dest"
    PLAN_DRYRUN = "S04_plan_dryrun"
    COPY_RUN = "S05_copy_run"
    POST_VERIFY = "S06_post_verify"
    FINALIZE = "S07_finalize"
    CONFIRM = "E01_confirm"
    DELETE_RUN = "E02_delete_run"

    @property
    def label(self) -> str:
        """Identifier without the ordering prefix, e.g. ``copy_run``."""
        return self.value.split("_", 1)[1]


TRANSFER_STEPS: Tuple[StepID, ...] = (
    StepID.VALIDATE_PATHS,
    StepID.CHECK_SPACE,
    StepID.PREPARE_DEST,
    StepID.PLAN_DRYRUN,
    StepID.COPY_RUN,
    StepID.POST_VERIFY,
    StepID.FINALIZE,
)

ERASE_STEPS: Tuple[StepID, ...] = (
    StepID.CONFIRM,
    StepID.DELETE_RUN,
)


def steps_for_mode(mode: OperatingMode) -> Tuple[StepID, ...]:
    """Return the ordered step sequence for *mode*."""
    if mode == OperatingMode.ERASE:
        return ERASE_STEPS
    return TRANSFER_STEPS


class StepStatus(str, Enum):
    """Run status of a single step."""

    WAITING = "waiting"
    RUNNING = "running"
    OK = "ok"
    ERROR = "error"


class ControlState(str, Enum):
    """Control state of a JobManager."""

    IDLE = "idle"
    RUNNING = "running"
    PAUSED = "paused"
    STOPPED = "stopped"


# Control states from which a new run may be started
STARTABLE_STATES = frozenset({ControlState.IDLE, ControlState.PAUSED, ControlState.STOPPED})

EVENT_START = "start"
EVENT_END = "end"


def utc_timestamp(moment: Optional[datetime] = None) -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    moment = moment or datetime.now(timezone.utc)
    return moment.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def new_job_id() -> str:
    """Issue a fresh job identifier."""
    return str(uuid.uuid4())


@dataclass(frozen=True)
class Job:
    """
    One requested transfer or erase run.

    Immutable for the duration of a run; the JobManager swaps in a new
    instance when a run with different paths is requested.
    """

    job_id: str
    mode: OperatingMode
    source: Optional[Path]
    destination: Optional[Path]
    log_file: Path

    def __post_init__(self):
        if not self.job_id:
            raise ValueError("job_id must not be empty")
        if self.mode == OperatingMode.TRANSFER and self.source is not None and self.destination is None:
            raise ValueError("Transfer jobs need a destination when a source is set")

    @classmethod
    def transfer(
        cls,
        source: Optional[Path],
        destination: Optional[Path],
        log_file: Path,
        job_id: Optional[str] = None,
    ) -> "Job":
        """Create a transfer job, issuing a new id unless one is given."""
        return cls(
            job_id=job_id or new_job_id(),
            mode=OperatingMode.TRANSFER,
            source=Path(source) if source is not None else None,
            destination=Path(destination) if destination is not None else None,
            log_file=Path(log_file),
        )

    @classmethod
    def erase(cls, target: Path, log_file: Path) -> "Job":
        """Create an erase job for *target* with a new id."""
        return cls(
            job_id=new_job_id(),
            mode=OperatingMode.ERASE,
            source=Path(target),
            destination=None,
            log_file=Path(log_file),
        )

    def with_paths(self, source: Path, destination: Path) -> "Job":
        """Return a new transfer job for different paths (and a new id)."""
        return replace(
            self,
            job_id=new_job_id(),
            mode=OperatingMode.TRANSFER,
            source=Path(source),
            destination=Path(destination),
        )

    @property
    def steps(self) -> Tuple[StepID, ...]:
        return steps_for_mode(self.mode)


@dataclass(frozen=True)
class LogRecord:
    """
    One step lifecycle transition as persisted in the event log.

    Field names are the JSON keys of a log line.
    """

    job_id: str
    step_id: str
    event: str
    ts: str = field(default_factory=utc_timestamp)
    status: Optional[str] = None
    exit_code: Optional[int] = None
    bytes_done: Optional[int] = None
    speed: Optional[int] = None
    message: Optional[str] = None

    _REQUIRED = ("ts", "job_id", "step_id", "event")
    _OPTIONAL_INTS = ("exit_code", "bytes_done", "speed")

    @classmethod
    def start(cls, job_id: str, step: StepID) -> "LogRecord":
        return cls(job_id=job_id, step_id=step.value, event=EVENT_START)

    @classmethod
    def end(
        cls,
        job_id: str,
        step: StepID,
        status: StepStatus,
        exit_code: int,
        message: Optional[str] = None,
        bytes_done: Optional[int] = None,
        speed: Optional[int] = None,
    ) -> "LogRecord":
        if status not in (StepStatus.OK, StepStatus.ERROR):
            raise ValueError(f"End records carry ok or error, not {status.value}")
        return cls(
            job_id=job_id,
            step_id=step.value,
            event=EVENT_END,
            status=status.value,
            exit_code=exit_code,
            message=message,
            bytes_done=bytes_done,
            speed=speed,
        )

    @property
    def step(self) -> Optional[StepID]:
        """The StepID this record refers to, or None for unknown identifiers."""
        try:
            return StepID(self.step_id)
        except ValueError:
            return None

    @property
    def is_successful_end(self) -> bool:
        return self.event == EVENT_END and self.status == StepStatus.OK.value

    def to_dict(self) -> Dict[str, Any]:
        """Serializable mapping; unset optional fields are left out."""
        data = {
            "ts": self.ts,
            "job_id": self.job_id,
            "step_id": self.step_id,
            "event": self.event,
        }
        for key in ("status", "exit_code", "bytes_done", "speed", "message"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        return data

    def to_json(self) -> str:
        """Single JSON line without the trailing newline."""
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LogRecord":
        """
        Build a record from a decoded log line.

        Raises:
            ValueError: If required keys are missing or have the wrong type
        """
        if not isinstance(data, dict):
            raise ValueError("Log line must be a JSON object")
        missing = [key for key in cls._REQUIRED if not isinstance(data.get(key), str)]
        if missing:
            raise ValueError(f"Log line missing fields: {', '.join(missing)}")
        for key in cls._OPTIONAL_INTS:
            value = data.get(key)
            if value is not None and (not isinstance(value, int) or isinstance(value, bool)):
                raise ValueError(f"Log field {key} must be an integer")
        return cls(
            ts=data["ts"],
            job_id=data["job_id"],
            step_id=data["step_id"],
            event=data["event"],
            status=data.get("status"),
            exit_code=data.get("exit_code"),
            bytes_done=data.get("bytes_done"),
            speed=data.get("speed"),
            message=data.get("message"),
        )


@dataclass(frozen=True)
class ProgressEvent:
    """Structured information extracted from one line of tool output."""

    bytes_done: Optional[int] = None
    speed_bps: Optional[int] = None
    current_file: Optional[str] = None

    @property
    def is_file(self) -> bool:
        return self.current_file is not None


@dataclass(frozen=True)
class CopyLogEntry:
    """A file seen during the copy, as shown in the transfer history."""

    file_name: str
    file_size: int
    source_path: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


def _waiting_statuses() -> Dict[StepID, StepStatus]:
    return {step: StepStatus.WAITING for step in StepID}


@dataclass(frozen=True)
class ProgressSnapshot:
    """Point-in-time, read-only view of a job's progress."""

    job_id: Optional[str] = None
    control_state: ControlState = ControlState.IDLE
    bytes_done: int = 0
    total_bytes: Optional[int] = None
    speed_bps: int = 0
    current_file: Optional[str] = None
    history: Tuple[CopyLogEntry, ...] = ()
    step_statuses: Dict[StepID, StepStatus] = field(default_factory=_waiting_statuses)
    error_message: Optional[str] = None

    @property
    def fraction(self) -> Optional[float]:
        """Share of total bytes done (0.0 - 1.0), or None while the total is unknown."""
        if not self.total_bytes:
            return None
        return min(1.0, self.bytes_done / self.total_bytes)

    def status_of(self, step: StepID) -> StepStatus:
        return self.step_statuses.get(step, StepStatus.WAITING)
