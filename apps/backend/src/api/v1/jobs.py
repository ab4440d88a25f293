"""Worker-facing job endpoints on the in-process job store."""

from __future__ import annotations

import logging

from fastapi import APIRouter

from dependencies.jobs import JobStore
from schemas.api import ApiResponse
from schemas.jobs import Job, JobStatusUpdate


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("/{job_id}", response_model=ApiResponse[Job])
async def get_job(job_id: str, store: JobStore) -> ApiResponse[Job]:
    job = await store.get(job_id)
    return ApiResponse(data=job, message="Job retrieved")


@router.patch("/{job_id}", response_model=ApiResponse[Job])
async def update_job(
    job_id: str, payload: JobStatusUpdate, store: JobStore
) -> ApiResponse[Job]:
    """Record a processing worker's status change.

    Every subscriber listening on the job receives the resulting change event.
    """
    job = await store.update(job_id, payload)
    logger.info("Job %s moved to %s by worker update", job_id, job.status)
    return ApiResponse(data=job, message="Job updated")
