"""In-process job store implementing the job store client contract.

Backs the HTTP API in development and tests. Change events are published
synchronously to the job's subscribers in the order updates are applied, so
per-job ordering holds; a failing subscriber callback is logged and does not
prevent delivery to the others.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass

from core.exceptions import JobNotFoundError
from schemas.jobs import ChangeEvent, Job, JobStatus, JobStatusUpdate
from services.jobs.exceptions import JobStoreError
from services.jobs.interfaces import ErrorCallback, EventCallback


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class SubscriptionHandle:
    id: str
    job_id: str

    @property
    def topic(self) -> str:
        return f"job-result-{self.job_id}"


@dataclass(slots=True)
class _Subscriber:
    handle: SubscriptionHandle
    on_event: EventCallback
    on_error: ErrorCallback


class InMemoryJobStore:
    def __init__(self) -> None:
        self._jobs: dict[str, Job] = {}
        self._subscribers: dict[str, _Subscriber] = {}
        self._lock = asyncio.Lock()

    def __len__(self) -> int:
        return len(self._jobs)

    async def insert(self, url: str) -> Job:
        job = Job(id=str(uuid.uuid4()), url=url, status=JobStatus.PENDING)
        async with self._lock:
            self._jobs[job.id] = job
        logger.info("Job %s inserted", job.id)
        return job

    async def get(self, job_id: str) -> Job:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found")
        return job

    async def update(self, job_id: str, update: JobStatusUpdate) -> Job:
        """Apply a status change and publish it to the job's subscribers."""
        async with self._lock:
            job = await self.get(job_id)
            job = job.model_copy(
                update={
                    "status": update.status,
                    "result": update.result,
                    "error_message": update.error_message,
                }
            )
            self._jobs[job_id] = job
            event = ChangeEvent.from_job(job)
            targets = self._subscribers_for(job_id)

        logger.info(
            "Job %s updated to %s; notifying %d subscriber(s)",
            job_id,
            job.status,
            len(targets),
        )
        for subscriber in targets:
            try:
                subscriber.on_event(event)
            except Exception:
                logger.exception(
                    "Subscriber %s failed handling event for job %s",
                    subscriber.handle.id,
                    job_id,
                )
        return job

    async def subscribe(
        self, job_id: str, on_event: EventCallback, on_error: ErrorCallback
    ) -> SubscriptionHandle:
        if job_id not in self._jobs:
            raise JobStoreError(f"Cannot subscribe to unknown job {job_id}")
        handle = SubscriptionHandle(id=str(uuid.uuid4()), job_id=job_id)
        self._subscribers[handle.id] = _Subscriber(handle, on_event, on_error)
        logger.debug("Channel %s subscribed", handle.topic)
        return handle

    async def unsubscribe(self, handle: SubscriptionHandle) -> None:
        if self._subscribers.pop(handle.id, None) is None:
            raise JobStoreError(f"Unknown subscription handle {handle.id}")
        logger.debug("Channel %s removed", handle.topic)

    def disconnect(self, job_id: str, reason: str = "channel closed") -> int:
        """Report a transport failure to every subscriber of `job_id`.

        Subscribers stay registered; releasing them is the caller's job.
        Returns the number of subscribers notified.
        """
        targets = self._subscribers_for(job_id)
        for subscriber in targets:
            try:
                subscriber.on_error(ConnectionError(reason))
            except Exception:
                logger.exception(
                    "Subscriber %s failed handling disconnect for job %s",
                    subscriber.handle.id,
                    job_id,
                )
        return len(targets)

    def subscriber_count(self, job_id: str | None = None) -> int:
        if job_id is None:
            return len(self._subscribers)
        return len(self._subscribers_for(job_id))

    def _subscribers_for(self, job_id: str) -> list[_Subscriber]:
        return [s for s in self._subscribers.values() if s.handle.job_id == job_id]
