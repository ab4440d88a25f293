"""Task submission: validate a URL and create exactly one job for it."""

from __future__ import annotations

import logging
from collections.abc import Iterable

from core.allowlist import normalize_domains
from core.observability import get_tracer
from schemas.jobs import Job
from services.jobs.exceptions import SubmissionError
from services.jobs.interfaces import JobStoreClientProtocol
from services.jobs.validation import validate_job_url


logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)


class TaskSubmitter:
    """Creates jobs in the job store.

    Holds no per-submission state, so it may be called again immediately
    after a success or a failure. Serializing submissions is the caller's
    responsibility.
    """

    def __init__(
        self, client: JobStoreClientProtocol, allowed_domains: Iterable[str]
    ) -> None:
        self.client = client
        self.allowed_domains = normalize_domains(allowed_domains)

    def validate(self, url: object) -> str:
        """Return the stripped URL or raise `UrlValidationError`."""
        return validate_job_url(url, self.allowed_domains)

    async def submit(self, url: str) -> Job:
        """Insert a pending job for `url`.

        Raises:
            UrlValidationError: if the URL is rejected (nothing is inserted).
            SubmissionError: if the insert fails or yields no job id.
        """
        candidate = self.validate(url)

        with tracer.start_as_current_span("jobs.submit") as span:
            try:
                job = await self.client.insert(candidate)
            except Exception as exc:
                logger.error("Error during task submission: %s", exc)
                span.record_exception(exc)
                raise SubmissionError(
                    str(exc) or "Failed to submit the task. Please try again."
                ) from exc

            if job is None or not getattr(job, "id", None):
                logger.error("No job or job id returned after insert: %r", job)
                raise SubmissionError(
                    "Task submission failed: No task details received."
                )

            span.set_attribute("job.id", job.id)
            logger.info("Task submission successful, job %s created", job.id)
            return job
