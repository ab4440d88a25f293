"""Registry of per-client orchestrator instances."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from collections import Counter
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager

from core.allowlist import normalize_domains
from core.exceptions import SessionNotFoundError
from services.jobs.interfaces import JobStoreClientProtocol
from services.jobs.state_machine import ResultStateMachine


logger = logging.getLogger(__name__)


class SessionRegistry:
    """Owns one `ResultStateMachine` per client session id.

    All sessions share the process-wide job store client; each has its own
    subscription slot and UI state. Every lookup refreshes the session's
    last-seen time, and `close_idle()` drops sessions that have gone quiet
    without an open event stream.
    """

    def __init__(
        self,
        client: JobStoreClientProtocol,
        allowed_domains: Iterable[str],
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.client = client
        self.allowed_domains = normalize_domains(allowed_domains)
        self._clock = clock
        self._sessions: dict[str, ResultStateMachine] = {}
        self._last_seen: dict[str, float] = {}
        self._streams: Counter[str] = Counter()

    def __len__(self) -> int:
        return len(self._sessions)

    def create(self) -> tuple[str, ResultStateMachine]:
        session_id = str(uuid.uuid4())
        machine = ResultStateMachine(self.client, self.allowed_domains)
        self._sessions[session_id] = machine
        self._last_seen[session_id] = self._clock()
        logger.info("Session %s created", session_id)
        return session_id, machine

    def get(self, session_id: str) -> ResultStateMachine:
        try:
            machine = self._sessions[session_id]
        except KeyError:
            raise SessionNotFoundError(f"Session {session_id} not found") from None
        self._last_seen[session_id] = self._clock()
        return machine

    @contextmanager
    def streaming(self, session_id: str) -> Iterator[None]:
        """Keep `session_id` out of idle sweeps while an event stream is open."""
        self._streams[session_id] += 1
        try:
            yield
        finally:
            self._streams[session_id] -= 1
            if self._streams[session_id] <= 0:
                del self._streams[session_id]
            if session_id in self._sessions:
                self._last_seen[session_id] = self._clock()

    async def close(self, session_id: str) -> None:
        machine = self._sessions.pop(session_id, None)
        self._last_seen.pop(session_id, None)
        if machine is None:
            raise SessionNotFoundError(f"Session {session_id} not found")
        await machine.close()
        logger.info("Session %s closed", session_id)

    async def close_idle(self, max_idle_seconds: float) -> list[str]:
        """Close sessions unseen for longer than `max_idle_seconds`.

        Returns the ids that were closed.
        """
        cutoff = self._clock() - max_idle_seconds
        expired = [
            session_id
            for session_id, seen in self._last_seen.items()
            if seen < cutoff and session_id not in self._streams
        ]
        await self._close_many(expired)
        if expired:
            logger.info("Closed %d idle session(s)", len(expired))
        return expired

    async def close_all(self) -> None:
        await self._close_many(list(self._sessions))

    async def _close_many(self, session_ids: list[str]) -> None:
        machines = {}
        for session_id in session_ids:
            machine = self._sessions.pop(session_id, None)
            self._last_seen.pop(session_id, None)
            if machine is not None:
                machines[session_id] = machine
        results = await asyncio.gather(
            *(machine.close() for machine in machines.values()),
            return_exceptions=True,
        )
        for session_id, result in zip(machines, results, strict=True):
            if isinstance(result, Exception):
                logger.warning("Error closing session %s: %s", session_id, result)
