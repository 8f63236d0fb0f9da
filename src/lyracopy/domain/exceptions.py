"""Domain exceptions for the transfer/erase job pipeline."""

from typing import Optional


class DomainException(Exception):
    """Base exception for all domain errors."""
    pass


class ConfigurationError(DomainException):
    """Raised when configuration is invalid."""
    pass


class PathValidationError(DomainException):
    """Raised when job paths fail validation before any subprocess runs."""
    pass


class SourceNotFoundError(PathValidationError):
    """Raised when the transfer source does not exist."""
    pass


class IdenticalPathsError(PathValidationError):
    """Raised when source and destination resolve to the same path."""
    pass


class NestedDestinationError(PathValidationError):
    """Raised when the destination lies inside the source tree."""
    pass


class EraseTargetNotFoundError(PathValidationError):
    """Raised when the erase target does not exist."""
    pass


class ResourceError(DomainException):
    """Raised when the filesystem cannot accommodate the job."""
    pass


class InsufficientSpaceError(ResourceError):
    """Raised when the destination volume has less free space than the source needs."""

    def __init__(self, required: int, available: int):
        self.required = required
        self.available = available
        super().__init__(
            f"Insufficient free space: need {required} bytes, {available} bytes available"
        )


class DestinationPrepareError(ResourceError):
    """Raised when the destination directory cannot be created."""
    pass


class ProcessError(DomainException):
    """Base class for external tool failures."""
    pass


class ProcessLaunchError(ProcessError):
    """Raised when the external tool cannot be started."""
    pass


class ProcessExitError(ProcessError):
    """Raised when the external tool exits with a status outside the accepted set."""

    def __init__(self, executable: str, exit_code: int, message: Optional[str] = None):
        self.executable = executable
        self.exit_code = exit_code
        super().__init__(message or f"{executable} exited with code {exit_code}")


class ProcessCancelledError(ProcessExitError):
    """Raised when the external tool was terminated by a cancel request."""

    def __init__(self, executable: str, exit_code: int):
        super().__init__(
            executable,
            exit_code,
            f"{executable} was cancelled (exit code {exit_code})",
        )


class EventLogError(DomainException):
    """Base class for event log failures."""
    pass


class EventLogReadError(EventLogError):
    """Raised when the event log file cannot be read."""
    pass
