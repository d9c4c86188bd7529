"""Domain exceptions."""

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Error categories a sync run can report.

    Hey future me - ADMISSION_DEFERRED is NOT an error! It only exists so logs
    and status payloads can name the "constraints unmet, waiting" situation.
    It never reaches the worker and never counts towards retries.
    """

    SECTION_FETCH_FAILED = "section_fetch_failed"
    RESOLUTION_FAILED = "resolution_failed"
    MAINTENANCE_FAILED = "maintenance_failed"
    ADMISSION_DEFERRED = "admission_deferred"


class DomainException(Exception):
    """Base exception for all domain exceptions."""

    # Hey future me, we store message as an attribute so code can inspect it without parsing str(exception).
    # DON'T raise this directly - use a specific subclass so callers can catch precisely.
    def __init__(self, message: str, *args: Any) -> None:
        super().__init__(message, *args)
        self.message = message


class ValidationException(DomainException):
    """Raised when input data violates an entity invariant.

    Example: a non-positive sync frequency or an empty content id.
    """

    pass


class InvalidStateException(DomainException):
    """Raised when a job is in an invalid state for the requested operation."""

    pass


class ConfigurationError(DomainException):
    """Application misconfiguration.

    Raised when required configuration is missing or invalid.
    """

    pass


class SectionFetchFailed(DomainException):
    """A catalog section (charts, playlists, new releases) could not be fetched.

    Recovered locally by the worker - siblings keep running.
    """

    kind = ErrorKind.SECTION_FETCH_FAILED

    def __init__(self, section: Any, reason: str | None = None) -> None:
        section_name = getattr(section, "value", section)
        message = f"Failed to sync section '{section_name}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.section = section


class ResolutionFailed(DomainException):
    """A playable URL could not be re-resolved for one content id.

    Recovered locally by the worker - remaining ids are still refreshed.
    """

    kind = ErrorKind.RESOLUTION_FAILED

    def __init__(self, content_id: str, reason: str | None = None) -> None:
        message = f"Failed to resolve stream for '{content_id}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.content_id = content_id


class MaintenanceFailed(DomainException):
    """Every attempted sub-step of a sync run failed (or the run timed out)."""

    kind = ErrorKind.MAINTENANCE_FAILED


__all__ = [
    "ConfigurationError",
    "DomainException",
    "ErrorKind",
    "InvalidStateException",
    "MaintenanceFailed",
    "ResolutionFailed",
    "SectionFetchFailed",
    "ValidationException",
]
