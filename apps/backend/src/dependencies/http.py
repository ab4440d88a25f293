"""Outbound HTTP client dependency for the image proxy."""

from __future__ import annotations

from collections.abc import AsyncIterator
from typing import Annotated

import httpx
from fastapi import Depends

from core.config import Settings, get_settings


async def get_proxy_http_client(
    settings: Annotated[Settings, Depends(get_settings)],
) -> AsyncIterator[httpx.AsyncClient]:
    """Yield an AsyncClient scoped to a single proxy request."""
    async with httpx.AsyncClient(
        timeout=settings.PROXY_TIMEOUT_SECONDS,
        follow_redirects=False,
        headers={"User-Agent": settings.PROXY_USER_AGENT},
        limits=httpx.Limits(max_connections=10, max_keepalive_connections=5),
    ) as client:
        yield client


ProxyHttpClient = Annotated[httpx.AsyncClient, Depends(get_proxy_http_client)]
