"""Process-wide job store and session registry dependencies.

Both objects live for the lifetime of the process. Routes receive them via
`Depends` so tests can swap them with `app.dependency_overrides`.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated

from fastapi import Depends

from core.config import get_settings
from services.jobs.memory_store import InMemoryJobStore
from services.jobs.sessions import SessionRegistry


@lru_cache
def get_job_store() -> InMemoryJobStore:
    return InMemoryJobStore()


@lru_cache
def get_session_registry() -> SessionRegistry:
    settings = get_settings()
    return SessionRegistry(get_job_store(), settings.allowed_domains)


JobStore = Annotated[InMemoryJobStore, Depends(get_job_store)]
Sessions = Annotated[SessionRegistry, Depends(get_session_registry)]
