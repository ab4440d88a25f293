"""Job store client contract consumed by the orchestrator.

The orchestrator never talks to a concrete backend; it is handed an object
satisfying `JobStoreClientProtocol` so tests and alternative stores can be
injected.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol

from schemas.jobs import ChangeEvent, Job


EventCallback = Callable[[ChangeEvent], None]
ErrorCallback = Callable[[Exception], None]


class JobStoreClientProtocol(Protocol):
    """Create jobs and attach/detach live change feeds filtered by job id."""

    async def insert(self, url: str) -> Job | None:
        """Create a job with status pending and return its snapshot."""
        ...

    async def subscribe(
        self, job_id: str, on_event: EventCallback, on_error: ErrorCallback
    ) -> Any:
        """Attach a live feed for `job_id` and return an opaque handle.

        `on_event` receives change events for the job at least once, in
        per-job order. `on_error` is called if the transport fails while the
        feed is attached.
        """
        ...

    async def unsubscribe(self, handle: Any) -> None:
        """Release a handle returned by `subscribe`. May raise."""
        ...
