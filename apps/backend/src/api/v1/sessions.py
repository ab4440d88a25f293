"""Client session endpoints: submit a URL and follow its job to completion."""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import AsyncGenerator
from typing import Annotated

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import StreamingResponse

from core.config import Settings, get_settings
from dependencies.jobs import Sessions
from schemas.api import ApiResponse
from schemas.jobs import (
    CreateSessionRequest,
    SessionRead,
    SessionStateRead,
    SubmitUrlRequest,
)
from services.jobs.state_machine import ResultStateMachine, UIState
from services.jobs.validation import validate_job_url


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/sessions", tags=["sessions"])


def _state_read(state: UIState) -> SessionStateRead:
    return SessionStateRead.model_validate(state.as_dict())


def _session_response(
    session_id: str, state: UIState, message: str
) -> ApiResponse[SessionRead]:
    return ApiResponse(
        data=SessionRead(session_id=session_id, state=_state_read(state)),
        message=message,
    )


@router.post(
    "",
    response_model=ApiResponse[SessionRead],
    status_code=status.HTTP_201_CREATED,
)
async def create_session(
    sessions: Sessions, payload: CreateSessionRequest | None = None
) -> ApiResponse[SessionRead]:
    """Create a session, optionally submitting a URL right away.

    The URL is validated before the session is created, so an invalid deep
    link never leaves an orphaned session behind.
    """
    url = payload.url if payload else None
    if url is not None:
        validate_job_url(url, sessions.allowed_domains)

    session_id, machine = sessions.create()
    if url is not None:
        logger.info("Session %s created with an initial URL", session_id)
        await machine.submit(url)
    return _session_response(session_id, machine.state, "Session created")


@router.get("/{session_id}", response_model=ApiResponse[SessionRead])
async def get_session(session_id: str, sessions: Sessions) -> ApiResponse[SessionRead]:
    machine = sessions.get(session_id)
    return _session_response(session_id, machine.state, "Session state")


@router.post("/{session_id}/submit", response_model=ApiResponse[SessionRead])
async def submit_url(
    session_id: str, payload: SubmitUrlRequest, sessions: Sessions
) -> ApiResponse[SessionRead]:
    """Submit a URL; invalid URLs are rejected with 422 and change nothing."""
    machine = sessions.get(session_id)
    state = await machine.submit(payload.url)
    return _session_response(session_id, state, "Submission accepted")


@router.post("/{session_id}/reset", response_model=ApiResponse[SessionRead])
async def reset_session(
    session_id: str, sessions: Sessions
) -> ApiResponse[SessionRead]:
    machine = sessions.get(session_id)
    state = await machine.reset()
    return _session_response(session_id, state, "Session reset")


@router.delete("/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_session(session_id: str, sessions: Sessions) -> Response:
    await sessions.close(session_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/{session_id}/events",
    summary="Stream session state changes via Server-Sent Events",
)
async def stream_session_events(
    session_id: str,
    sessions: Sessions,
    settings: Annotated[Settings, Depends(get_settings)],
) -> StreamingResponse:
    """Stream state snapshots as `data:` lines.

    The first event is the current state. The stream ends after a succeeded
    or failed state has been sent; idle periods emit `: keep-alive` comments.
    """
    machine = sessions.get(session_id)

    async def _held_stream() -> AsyncGenerator[str, None]:
        with sessions.streaming(session_id):
            async for chunk in build_state_stream(
                machine, settings.SSE_HEARTBEAT_SECONDS
            ):
                yield chunk

    return StreamingResponse(
        _held_stream(),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


async def build_state_stream(
    machine: ResultStateMachine, heartbeat_seconds: float
) -> AsyncGenerator[str, None]:
    with machine.watch() as updates:
        while True:
            try:
                state = await asyncio.wait_for(updates.get(), timeout=heartbeat_seconds)
            except TimeoutError:
                yield ": keep-alive\n\n"
                continue
            payload = _state_read(state).model_dump(mode="json")
            yield f"data: {json.dumps(payload)}\n\n"
            if state.is_terminal:
                return
