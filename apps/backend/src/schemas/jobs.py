"""Schemas for jobs, change events and client session state."""

from __future__ import annotations

from datetime import UTC, datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict, Field, model_validator


class JobStatus(StrEnum):
    PENDING = "pending"
    PROCESSING = "processing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class Job(BaseModel):
    """Snapshot of a job record owned by the job store.

    Only the store mutates jobs; orchestrator code treats instances as
    read-only snapshots.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(..., min_length=1)
    url: str
    status: JobStatus = JobStatus.PENDING
    result: str | None = None
    error_message: str | None = None
    created_at: datetime = Field(default_factory=lambda: datetime.now(UTC))


class ChangeEvent(BaseModel):
    """A change notification for a single job delivered by the live feed."""

    model_config = ConfigDict(frozen=True)

    job_id: str
    status: JobStatus
    result: str | None = None
    error_message: str | None = None

    @property
    def has_result(self) -> bool:
        return bool(self.result)

    @property
    def is_terminal(self) -> bool:
        """A result or a failed status ends the listening lifecycle."""
        return self.has_result or self.status == JobStatus.FAILED

    @classmethod
    def from_job(cls, job: Job) -> ChangeEvent:
        return cls(
            job_id=job.id,
            status=job.status,
            result=job.result,
            error_message=job.error_message,
        )


class JobStatusUpdate(BaseModel):
    """Worker-reported status change for a job."""

    status: JobStatus
    result: str | None = Field(None, max_length=10_000)
    error_message: str | None = Field(None, max_length=2_000)

    @model_validator(mode="after")
    def _result_only_when_succeeded(self) -> JobStatusUpdate:
        if self.result and self.status == JobStatus.FAILED:
            raise ValueError("A failed job cannot carry a result")
        return self


class SubmitUrlRequest(BaseModel):
    url: str = Field(..., max_length=2048, description="URL of the work item")


class CreateSessionRequest(BaseModel):
    url: str | None = Field(
        None,
        max_length=2048,
        description="Optional URL submitted as soon as the session is created",
    )


class SessionStateRead(BaseModel):
    """Serialized projection of a session's current UI state."""

    phase: str
    current_job_id: str | None = None
    display_url: str | None = None
    job_status: JobStatus | None = None
    display_result: str | None = None
    display_error: str | None = None
    error_code: str | None = None


class SessionRead(BaseModel):
    session_id: str
    state: SessionStateRead
