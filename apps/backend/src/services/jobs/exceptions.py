"""Error taxonomy for job submission and result tracking.

Every error is terminal to the current attempt and is recorded on the
session state for display; none is retried internally. Each exception
carries a stable `error_code` used in API responses and log fields.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(slots=True)
class JobRelayError(Exception):
    """Base class for job orchestration domain errors."""

    message: str
    error_code: str

    def __str__(self) -> str:  # pragma: no cover - trivial
        return f"{self.error_code}: {self.message}"


class UrlValidationError(JobRelayError):
    def __init__(self, message: str = "URL cannot be empty.") -> None:
        super().__init__(message=message, error_code="invalid_url")


class SubmissionError(JobRelayError):
    def __init__(
        self, message: str = "Failed to submit the task. Please try again."
    ) -> None:
        super().__init__(message=message, error_code="submission_failed")


class SubscriptionConnectionError(JobRelayError):
    def __init__(
        self,
        message: str = "Connection error listening for results. Please try again.",
    ) -> None:
        super().__init__(message=message, error_code="connection_error")


class JobFailure(JobRelayError):
    def __init__(self, message: str = "Unknown error") -> None:
        super().__init__(message=message, error_code="job_failed")


class JobStoreError(JobRelayError):
    def __init__(self, message: str = "Job store operation failed") -> None:
        super().__init__(message=message, error_code="store_error")


class InvalidTransitionError(JobRelayError):
    def __init__(self, message: str) -> None:
        super().__init__(message=message, error_code="invalid_transition")
