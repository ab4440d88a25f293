"""Single-slot live subscription management for job change feeds.

A `SubscriptionManager` owns at most one `Subscription` at a time. Each
subscription walks `detached -> attaching -> attached -> detaching ->
detached`; the slot is only ever cleared by the release of the subscription
that currently occupies it, so a late detach of an old job can never clobber
the listener of a newer one.

Attach and explicit teardown are serialized by an `asyncio.Lock`. A terminal
event or a transport failure starts the release immediately (outside the
lock) so that no further events are accepted for that job; anyone else who
needs the slot awaits that same release.
"""

from __future__ import annotations

import asyncio
import functools
import logging
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

from schemas.jobs import ChangeEvent
from services.jobs.exceptions import SubscriptionConnectionError
from services.jobs.interfaces import JobStoreClientProtocol


logger = logging.getLogger(__name__)


class SubscriptionState(StrEnum):
    DETACHED = "detached"
    ATTACHING = "attaching"
    ATTACHED = "attached"
    DETACHING = "detaching"


class SubscriptionListener(Protocol):
    """Receiver of the notifications a subscription produces."""

    def on_job_progress(self, event: ChangeEvent) -> None: ...

    def on_job_terminal(self, event: ChangeEvent) -> None: ...

    def on_connection_error(
        self, job_id: str, error: SubscriptionConnectionError
    ) -> None: ...


@dataclass(eq=False)
class Subscription:
    target_job_id: str
    state: SubscriptionState = SubscriptionState.ATTACHING
    handle: Any = None
    # Set once a terminal or connection-error notification has gone out.
    finished: bool = False
    buffered: list[ChangeEvent] = field(default_factory=list)
    # Transport failure reported while attaching; raised once attach completes.
    pending_error: Exception | None = None
    release_task: asyncio.Task[None] | None = None

    @property
    def is_live(self) -> bool:
        return self.state in (SubscriptionState.ATTACHING, SubscriptionState.ATTACHED)


class SubscriptionManager:
    def __init__(
        self, client: JobStoreClientProtocol, listener: SubscriptionListener
    ) -> None:
        self.client = client
        self.listener = listener
        self._slot: Subscription | None = None
        self._lock = asyncio.Lock()
        self._releases: set[asyncio.Task[None]] = set()

    @property
    def state(self) -> SubscriptionState:
        return self._slot.state if self._slot else SubscriptionState.DETACHED

    @property
    def target_job_id(self) -> str | None:
        return self._slot.target_job_id if self._slot else None

    async def subscribe(self, job_id: str) -> None:
        """Attach the single live listener to `job_id`.

        No-op if already attached (or attaching) to the same job. A listener
        for a different job is torn down, and its release awaited, before the
        new one is requested. Attach failures are reported to the listener as
        a connection error and leave the slot detached.
        """
        async with self._lock:
            current = self._slot
            if current is not None and current.is_live:
                if current.target_job_id == job_id:
                    logger.debug("Already subscribed to job %s", job_id)
                    return
                logger.info(
                    "Replacing subscription for job %s with job %s",
                    current.target_job_id,
                    job_id,
                )
            if current is not None:
                await self._detach(current)

            subscription = Subscription(target_job_id=job_id)
            self._slot = subscription
            logger.info("Setting up listener for job %s", job_id)
            try:
                subscription.handle = await self.client.subscribe(
                    job_id,
                    functools.partial(self._deliver, subscription),
                    functools.partial(self._transport_failed, subscription),
                )
            except asyncio.CancelledError:
                subscription.state = SubscriptionState.DETACHED
                if self._slot is subscription:
                    self._slot = None
                raise
            except Exception as exc:
                logger.error("Subscription attach failed for job %s: %s", job_id, exc)
                subscription.state = SubscriptionState.DETACHED
                subscription.finished = True
                if self._slot is subscription:
                    self._slot = None
                self.listener.on_connection_error(
                    job_id, SubscriptionConnectionError()
                )
                return

            subscription.state = SubscriptionState.ATTACHED
            logger.info("Successfully subscribed for job %s", job_id)

            # Events that raced the attach are replayed in delivery order.
            pending, subscription.buffered = subscription.buffered, []
            for event in pending:
                self.on_event(event)
            if subscription.pending_error is not None and not subscription.finished:
                self._fail(subscription, subscription.pending_error)

    def on_event(self, event: ChangeEvent) -> None:
        """Route a change event to the attached subscription.

        Dropped unless the slot is attached to `event.job_id`. A result or a
        failed status is terminal: exactly one terminal notification is sent
        and the subscription is released; duplicates that follow find the slot
        no longer attached and are dropped.
        """
        subscription = self._slot
        if subscription is None or event.job_id != subscription.target_job_id:
            logger.debug("Dropping event for untracked job %s", event.job_id)
            return
        if subscription.state is SubscriptionState.ATTACHING:
            subscription.buffered.append(event)
            return
        if subscription.state is not SubscriptionState.ATTACHED:
            logger.debug(
                "Dropping event for job %s in state %s",
                event.job_id,
                subscription.state,
            )
            return

        if not event.is_terminal:
            logger.info("Job %s status: %s. Waiting...", event.job_id, event.status)
            self.listener.on_job_progress(event)
            return

        subscription.finished = True
        self._begin_release(subscription)
        logger.info("Terminal event received for job %s", event.job_id)
        self.listener.on_job_terminal(event)

    async def teardown(self) -> None:
        """Release the current listener, if any.

        Idempotent: a detached slot is a no-op, and concurrent callers wait on
        the same release. Release failures are logged, never raised.
        """
        async with self._lock:
            current = self._slot
            if current is None:
                return
            await self._detach(current)

    async def wait_for_detach(self) -> None:
        """Wait for every release started so far to complete."""
        if self._releases:
            await asyncio.gather(*self._releases, return_exceptions=True)

    def _deliver(self, subscription: Subscription, event: ChangeEvent) -> None:
        if subscription is not self._slot:
            logger.debug("Dropping event from stale handle for job %s", event.job_id)
            return
        self.on_event(event)

    def _transport_failed(self, subscription: Subscription, error: Exception) -> None:
        # A terminal event already recorded for this job takes precedence.
        if subscription is not self._slot or subscription.finished:
            logger.info(
                "Ignoring transport error for job %s: %s",
                subscription.target_job_id,
                error,
            )
            return
        if subscription.state is SubscriptionState.ATTACHING:
            logger.warning(
                "Transport error for job %s while attaching: %s",
                subscription.target_job_id,
                error,
            )
            subscription.pending_error = subscription.pending_error or error
            return
        if subscription.state is not SubscriptionState.ATTACHED:
            logger.debug(
                "Ignoring transport error for job %s in state %s",
                subscription.target_job_id,
                subscription.state,
            )
            return
        self._fail(subscription, error)

    def _fail(self, subscription: Subscription, error: Exception) -> None:
        logger.error(
            "Subscription error for job %s: %s", subscription.target_job_id, error
        )
        subscription.finished = True
        self._begin_release(subscription)
        self.listener.on_connection_error(
            subscription.target_job_id, SubscriptionConnectionError()
        )

    def _begin_release(self, subscription: Subscription) -> asyncio.Task[None] | None:
        if subscription.state is SubscriptionState.DETACHED:
            return None
        if subscription.release_task is not None:
            return subscription.release_task

        subscription.state = SubscriptionState.DETACHING
        task = asyncio.get_running_loop().create_task(self._release(subscription))
        subscription.release_task = task
        self._releases.add(task)
        task.add_done_callback(self._releases.discard)
        return task

    async def _detach(self, subscription: Subscription) -> None:
        task = self._begin_release(subscription)
        if task is not None:
            # Shielded so a cancelled caller does not abandon a half-released handle.
            await asyncio.shield(task)

    async def _release(self, subscription: Subscription) -> None:
        job_id = subscription.target_job_id
        try:
            if subscription.handle is not None:
                await self.client.unsubscribe(subscription.handle)
            logger.info("Subscription released for job %s", job_id)
        except Exception as exc:
            logger.warning("Error removing subscription for job %s: %s", job_id, exc)
        finally:
            subscription.state = SubscriptionState.DETACHED
            subscription.handle = None
            if self._slot is subscription:
                self._slot = None
