"""User-facing result state for one client session.

`ResultStateMachine` is the single source of truth for what a client should
show. It drives `TaskSubmitter` and `SubscriptionManager`, and every change to
its `UIState` goes through `_transition`, which enforces the phase table:

    idle/succeeded/failed --submit--> submitting
    submitting/waiting    --submit--> submitting   (supersedes the old attempt)
    submitting --job created-->       waiting
    submitting --submission error-->  failed
    waiting    --progress-->          waiting
    waiting    --result-->            succeeded
    waiting    --failed/connection--> failed
    any        --reset-->             idle

A generation counter is bumped on every submit and reset; an insert that
completes after a newer submit or a reset is stale and is discarded.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from dataclasses import asdict, dataclass, replace
from enum import StrEnum
from typing import Any

from schemas.jobs import ChangeEvent, JobStatus
from services.jobs.exceptions import (
    InvalidTransitionError,
    JobFailure,
    SubmissionError,
    SubscriptionConnectionError,
)
from services.jobs.interfaces import JobStoreClientProtocol
from services.jobs.submitter import TaskSubmitter
from services.jobs.subscription import SubscriptionManager


logger = logging.getLogger(__name__)


class Phase(StrEnum):
    IDLE = "idle"
    SUBMITTING = "submitting"
    WAITING = "waiting"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_PHASES = frozenset({Phase.SUCCEEDED, Phase.FAILED})

ALLOWED_TRANSITIONS: dict[Phase, frozenset[Phase]] = {
    Phase.IDLE: frozenset({Phase.IDLE, Phase.SUBMITTING}),
    Phase.SUBMITTING: frozenset(
        {Phase.IDLE, Phase.SUBMITTING, Phase.WAITING, Phase.FAILED}
    ),
    Phase.WAITING: frozenset(
        {Phase.IDLE, Phase.SUBMITTING, Phase.WAITING, Phase.SUCCEEDED, Phase.FAILED}
    ),
    Phase.SUCCEEDED: frozenset({Phase.IDLE, Phase.SUBMITTING}),
    Phase.FAILED: frozenset({Phase.IDLE, Phase.SUBMITTING}),
}


@dataclass(frozen=True, slots=True)
class UIState:
    phase: Phase = Phase.IDLE
    current_job_id: str | None = None
    display_url: str | None = None
    job_status: JobStatus | None = None
    display_result: str | None = None
    display_error: str | None = None
    error_code: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class ResultStateMachine:
    def __init__(
        self, client: JobStoreClientProtocol, allowed_domains: Iterable[str]
    ) -> None:
        self.submitter = TaskSubmitter(client, allowed_domains)
        self.subscriptions = SubscriptionManager(client, listener=self)
        self._state = UIState()
        self._generation = 0
        self._watchers: set[asyncio.Queue[UIState]] = set()

    @property
    def state(self) -> UIState:
        return self._state

    def validate(self, url: object) -> str:
        return self.submitter.validate(url)

    async def submit(self, url: str) -> UIState:
        """Submit `url` and start listening for the job's outcome.

        Validation happens before anything else, so an invalid URL raises
        `UrlValidationError` and leaves the state untouched. Submission
        errors are recorded as a failed state rather than raised.
        """
        candidate = self.validate(url)

        self._generation += 1
        generation = self._generation
        self._transition(
            Phase.SUBMITTING,
            current_job_id=None,
            display_url=candidate,
            job_status=None,
            display_result=None,
            display_error=None,
            error_code=None,
        )
        # Any listener from a previous attempt goes before the new job exists.
        await self.subscriptions.teardown()
        if generation != self._generation:
            return self._state

        try:
            job = await self.submitter.submit(candidate)
        except SubmissionError as exc:
            if generation == self._generation:
                self._transition(
                    Phase.FAILED,
                    display_url=None,
                    display_error=exc.message,
                    error_code=exc.error_code,
                )
            return self._state

        if generation != self._generation:
            logger.info("Discarding job %s from a superseded submission", job.id)
            return self._state

        self._transition(Phase.WAITING, current_job_id=job.id, job_status=job.status)
        await self.subscriptions.subscribe(job.id)
        return self._state

    async def reset(self) -> UIState:
        """Return to idle, clearing every field, and drop the listener."""
        self._generation += 1
        self._transition(
            Phase.IDLE,
            current_job_id=None,
            display_url=None,
            job_status=None,
            display_result=None,
            display_error=None,
            error_code=None,
        )
        await self.subscriptions.teardown()
        return self._state

    async def close(self) -> None:
        await self.reset()
        await self.subscriptions.wait_for_detach()

    @contextmanager
    def watch(self) -> Iterator[asyncio.Queue[UIState]]:
        """Queue receiving the current state, then every subsequent state."""
        queue: asyncio.Queue[UIState] = asyncio.Queue()
        queue.put_nowait(self._state)
        self._watchers.add(queue)
        try:
            yield queue
        finally:
            self._watchers.discard(queue)

    # SubscriptionListener

    def on_job_progress(self, event: ChangeEvent) -> None:
        if not self._accepts(event.job_id):
            return
        self._transition(Phase.WAITING, job_status=event.status)

    def on_job_terminal(self, event: ChangeEvent) -> None:
        if not self._accepts(event.job_id):
            return
        if event.has_result:
            self._transition(
                Phase.SUCCEEDED,
                job_status=event.status,
                display_result=event.result,
                display_error=None,
                error_code=None,
            )
            return

        failure = JobFailure(event.error_message or "Unknown error")
        logger.error("Job %s failed: %s", event.job_id, failure.message)
        self._transition(
            Phase.FAILED,
            job_status=event.status,
            display_result=None,
            display_error=f"Processing failed: {failure.message}",
            error_code=failure.error_code,
        )

    def on_connection_error(
        self, job_id: str, error: SubscriptionConnectionError
    ) -> None:
        if not self._accepts(job_id):
            return
        self._transition(
            Phase.FAILED, display_error=error.message, error_code=error.error_code
        )

    def _accepts(self, job_id: str) -> bool:
        state = self._state
        if state.phase is not Phase.WAITING or state.current_job_id != job_id:
            logger.debug(
                "Ignoring notification for job %s (phase=%s, current=%s)",
                job_id,
                state.phase,
                state.current_job_id,
            )
            return False
        return True

    def _transition(self, phase: Phase, **changes: Any) -> None:
        current = self._state
        if phase not in ALLOWED_TRANSITIONS[current.phase]:
            raise InvalidTransitionError(
                f"Cannot move from {current.phase} to {phase}"
            )
        self._state = replace(current, phase=phase, **changes)
        logger.debug("Session state %s -> %s", current.phase, phase)
        for queue in self._watchers:
            queue.put_nowait(self._state)
