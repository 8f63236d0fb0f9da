"""Domain layer package."""

from .models import (
    OperatingMode,
    StepID,
    StepStatus,
    ControlState,
    Job,
    LogRecord,
    ProgressEvent,
    CopyLogEntry,
    ProgressSnapshot,
    TRANSFER_STEPS,
    ERASE_STEPS,
    steps_for_mode,
)
from .exceptions import (
    DomainException,
    ConfigurationError,
    PathValidationError,
    SourceNotFoundError,
    IdenticalPathsError,
    NestedDestinationError,
    EraseTargetNotFoundError,
    ResourceError,
    InsufficientSpaceError,
    DestinationPrepareError,
    ProcessError,
    ProcessLaunchError,
    ProcessExitError,
    ProcessCancelledError,
    EventLogError,
    EventLogReadError,
)
from .protocols import (
    IProgressParser,
    IProcessRunner,
    IEventLog,
    DestinationOpener,
    SnapshotObserver,
    ILogger,
    IMetricsCollector,
)

__all__ = [
    # Models
    "OperatingMode",
    "StepID",
    "StepStatus",
    "ControlState",
    "Job",
    "LogRecord",
    "ProgressEvent",
    "CopyLogEntry",
    "ProgressSnapshot",
    "TRANSFER_STEPS",
    "ERASE_STEPS",
    "steps_for_mode",
    # Exceptions
    "DomainException",
    "ConfigurationError",
    "PathValidationError",
    "SourceNotFoundError",
    "IdenticalPathsError",
    "NestedDestinationError",
    "EraseTargetNotFoundError",
    "ResourceError",
    "InsufficientSpaceError",
    "DestinationPrepareError",
    "ProcessError",
    "ProcessLaunchError",
    "ProcessExitError",
    "ProcessCancelledError",
    "EventLogError",
    "EventLogReadError",
    # Protocols
    "IProgressParser",
    "IProcessRunner",
    "IEventLog",
    "DestinationOpener",
    "SnapshotObserver",
    "ILogger",
    "IMetricsCollector",
]
