"""Standardized error types for the Horde job client and orchestrator.

Every failure the client can report is a :class:`HordeError` subclass with a
machine-readable code. Rate limiting never leaves the client; the remaining
errors are collapsed into :class:`GenerationFailedError` by the orchestrator.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


# -----------------------------------------------------------------------------
# Error Code Constants
# -----------------------------------------------------------------------------

class ErrorCode:
    """Constants for error codes carried by :class:`HordeError`."""

    RATE_LIMITED = "rate_limited"
    SERVICE_REJECTED = "service_rejected"
    JOB_FAULTED = "job_faulted"
    JOB_IMPOSSIBLE = "job_impossible"
    JOB_CANCELLED = "job_cancelled"
    GENERATION_FAILED = "generation_failed"


# -----------------------------------------------------------------------------
# Base Error Class
# -----------------------------------------------------------------------------

@dataclass
class HordeError(Exception):
    """Base exception class for remote job errors.

    Attributes:
        error_code: Machine-readable error identifier.
        message: Human-readable error description.
        details: Additional structured error information.
    """

    error_code: str
    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        Exception.__init__(self, self.message)

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "error": self.error_code,
            "message": self.message,
        }
        if self.details:
            result["details"] = dict(self.details)
        return result

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


# -----------------------------------------------------------------------------
# Transport Errors
# -----------------------------------------------------------------------------

@dataclass
class RateLimitedError(HordeError):
    """Raised for a "too many requests" response; retried inside the client."""

    error_code: str = field(default=ErrorCode.RATE_LIMITED)
    message: str = field(default="Too many requests")
    details: dict[str, Any] = field(default_factory=dict)

    retry_after: float = field(default=0.0)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        result["retry_after"] = self.retry_after
        return result


@dataclass
class ServiceRejectedError(HordeError):
    """Raised when the service answers with a non-success status."""

    error_code: str = field(default=ErrorCode.SERVICE_REJECTED)
    message: str = field(default="Request rejected by the service")
    details: dict[str, Any] = field(default_factory=dict)

    status_code: int | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.status_code is not None:
            result["status_code"] = self.status_code
        return result


# -----------------------------------------------------------------------------
# Job Errors
# -----------------------------------------------------------------------------

@dataclass
class JobFaultedError(HordeError):
    """Raised when the remote job reports a fault."""

    error_code: str = field(default=ErrorCode.JOB_FAULTED)
    message: str = field(default="Generation job faulted")
    details: dict[str, Any] = field(default_factory=dict)

    job_id: str | None = field(default=None)


@dataclass
class JobImpossibleError(HordeError):
    """Raised when no worker can serve the job."""

    error_code: str = field(default=ErrorCode.JOB_IMPOSSIBLE)
    message: str = field(default="Generation job cannot be completed by any worker")
    details: dict[str, Any] = field(default_factory=dict)

    job_id: str | None = field(default=None)


@dataclass
class JobCancelledError(HordeError):
    """Raised by the poll loop when its cancellation token fires."""

    error_code: str = field(default=ErrorCode.JOB_CANCELLED)
    message: str = field(default="Generation job was cancelled")
    details: dict[str, Any] = field(default_factory=dict)

    job_id: str | None = field(default=None)


@dataclass
class GenerationFailedError(HordeError):
    """Single outcome the orchestrator reports for any failed generation cycle."""

    error_code: str = field(default=ErrorCode.GENERATION_FAILED)
    message: str = field(default="Generation failed")
    details: dict[str, Any] = field(default_factory=dict)


__all__ = [
    "ErrorCode",
    "HordeError",
    "RateLimitedError",
    "ServiceRejectedError",
    "JobFaultedError",
    "JobImpossibleError",
    "JobCancelledError",
    "GenerationFailedError",
]
