"""Shared test fixtures for pytest.

ENVIRONMENT is pinned to "test" before the app is imported so settings load
their defaults without needing an env file.
"""

import asyncio
import os
from collections.abc import AsyncGenerator, Generator

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient


os.environ.setdefault("ENVIRONMENT", "test")

from dependencies.jobs import get_job_store, get_session_registry
from main import app
from schemas.jobs import ChangeEvent, Job, JobStatus
from services.jobs.exceptions import SubscriptionConnectionError
from services.jobs.interfaces import ErrorCallback, EventCallback
from services.jobs.memory_store import InMemoryJobStore
from services.jobs.sessions import SessionRegistry


ALLOWED_DOMAINS = frozenset({"media.licdn.com"})


class FakeJobStoreClient:
    """Scriptable job store client that records every call it receives.

    Gates (`asyncio.Event`) hold an operation open so tests can interleave
    other calls while it is in flight.
    """

    def __init__(self) -> None:
        self.calls: list[tuple[str, str]] = []
        self.subscribers: dict[str, tuple[str, EventCallback, ErrorCallback]] = {}
        self.insert_error: Exception | None = None
        self.return_no_job = False
        self.subscribe_error: Exception | None = None
        self.unsubscribe_error: Exception | None = None
        self.insert_gate: asyncio.Event | None = None
        self.subscribe_gate: asyncio.Event | None = None
        self.unsubscribe_gate: asyncio.Event | None = None
        self._next_id = 0

    async def insert(self, url: str) -> Job | None:
        self.calls.append(("insert", url))
        if self.insert_gate is not None:
            await self.insert_gate.wait()
        if self.insert_error is not None:
            raise self.insert_error
        if self.return_no_job:
            return None
        self._next_id += 1
        return Job(id=f"job-{self._next_id}", url=url)

    async def subscribe(
        self, job_id: str, on_event: EventCallback, on_error: ErrorCallback
    ) -> str:
        self.calls.append(("subscribe", job_id))
        if self.subscribe_error is not None:
            raise self.subscribe_error
        handle = f"handle-{len(self.calls)}"
        # Registered before the gate so events can race the attach.
        self.subscribers[handle] = (job_id, on_event, on_error)
        if self.subscribe_gate is not None:
            await self.subscribe_gate.wait()
        return handle

    async def unsubscribe(self, handle: str) -> None:
        self.calls.append(("unsubscribe", handle))
        if self.unsubscribe_gate is not None:
            await self.unsubscribe_gate.wait()
        if self.unsubscribe_error is not None:
            raise self.unsubscribe_error
        self.subscribers.pop(handle, None)

    def call_names(self) -> list[str]:
        return [name for name, _ in self.calls]

    def handles_for(self, job_id: str) -> list[str]:
        return [h for h, (jid, _, _) in self.subscribers.items() if jid == job_id]

    def callbacks(self, job_id: str) -> tuple[EventCallback, ErrorCallback]:
        """Callbacks of the first listener registered for `job_id`."""
        handle = self.handles_for(job_id)[0]
        _, on_event, on_error = self.subscribers[handle]
        return on_event, on_error

    def emit(
        self,
        job_id: str,
        status: JobStatus,
        result: str | None = None,
        error_message: str | None = None,
    ) -> int:
        event = ChangeEvent(
            job_id=job_id, status=status, result=result, error_message=error_message
        )
        targets = [cb for jid, cb, _ in list(self.subscribers.values()) if jid == job_id]
        for on_event in targets:
            on_event(event)
        return len(targets)

    def fail(self, job_id: str, error: Exception | None = None) -> int:
        targets = [cb for jid, _, cb in list(self.subscribers.values()) if jid == job_id]
        for on_error in targets:
            on_error(error or ConnectionError("channel closed"))
        return len(targets)


class RecordingListener:
    """Subscription listener that records every notification."""

    def __init__(self) -> None:
        self.progress: list[ChangeEvent] = []
        self.terminal: list[ChangeEvent] = []
        self.connection_errors: list[tuple[str, SubscriptionConnectionError]] = []

    def on_job_progress(self, event: ChangeEvent) -> None:
        self.progress.append(event)

    def on_job_terminal(self, event: ChangeEvent) -> None:
        self.terminal.append(event)

    def on_connection_error(
        self, job_id: str, error: SubscriptionConnectionError
    ) -> None:
        self.connection_errors.append((job_id, error))


@pytest.fixture
def fake_client() -> FakeJobStoreClient:
    return FakeJobStoreClient()


@pytest.fixture
def listener() -> RecordingListener:
    return RecordingListener()


@pytest.fixture
def job_store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def session_registry(job_store: InMemoryJobStore) -> SessionRegistry:
    return SessionRegistry(job_store, ALLOWED_DOMAINS)


@pytest.fixture
def client(
    job_store: InMemoryJobStore, session_registry: SessionRegistry
) -> Generator[TestClient, None, None]:
    """
    Create a test client for the FastAPI application with isolated state.
    """
    app.dependency_overrides[get_job_store] = lambda: job_store
    app.dependency_overrides[get_session_registry] = lambda: session_registry
    with TestClient(app) as client:
        yield client
    app.dependency_overrides.pop(get_job_store, None)
    app.dependency_overrides.pop(get_session_registry, None)


@pytest_asyncio.fixture
async def async_client(
    job_store: InMemoryJobStore, session_registry: SessionRegistry
) -> AsyncGenerator[AsyncClient, None]:
    """Async client sharing the test's event loop with the job store."""
    app.dependency_overrides[get_job_store] = lambda: job_store
    app.dependency_overrides[get_session_registry] = lambda: session_registry
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    await session_registry.close_all()
    app.dependency_overrides.pop(get_job_store, None)
    app.dependency_overrides.pop(get_session_registry, None)
