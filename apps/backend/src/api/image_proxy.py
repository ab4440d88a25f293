"""Image proxy endpoint.

Errors use a bare `{"error": ...}` body rather than the API envelope, since
the endpoint is consumed by image tags and thin clients.
"""

from __future__ import annotations

import logging
from typing import Annotated

from fastapi import APIRouter, Depends, Query, status
from fastapi.responses import JSONResponse, Response

from core.config import Settings, get_settings
from dependencies.http import ProxyHttpClient
from services.images.proxy import ImageProxyService, ProxyError


logger = logging.getLogger(__name__)

router = APIRouter(tags=["proxy"])


@router.get(
    "/proxy",
    response_class=Response,
    summary="Fetch an allow-listed image for display",
    responses={
        200: {"content": {"image/*": {}}, "description": "Upstream image bytes"},
        400: {"description": "Missing or malformed url"},
        403: {"description": "Host not in the allow-list"},
        413: {"description": "Upstream image over the size limit"},
        500: {"description": "Unexpected proxy failure"},
    },
)
async def proxy_image(
    http_client: ProxyHttpClient,
    settings: Annotated[Settings, Depends(get_settings)],
    url: Annotated[str | None, Query(description="Encoded image URL")] = None,
) -> Response:
    service = ImageProxyService(
        http_client, settings.allowed_domains, max_bytes=settings.PROXY_MAX_BYTES
    )
    try:
        image = await service.fetch(url)
    except ProxyError as exc:
        return JSONResponse({"error": exc.message}, status_code=exc.status_code)
    except Exception:
        logger.exception("Image proxy error")
        return JSONResponse(
            {"error": "Internal Server Error proxying image"},
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )

    return Response(content=image.content, headers=image.headers)
