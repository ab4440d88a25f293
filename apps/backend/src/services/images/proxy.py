"""Display-only image fetch through an allow-listed proxy.

The proxy validates the requested URL against the shared hostname allow-list
before any network access, then forwards the upstream bytes and content type
unchanged. Failures are raised as `ProxyError` carrying the HTTP status the
route should answer with.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass

import httpx
from fastapi import status

from core.allowlist import is_host_allowed, normalize_domains, split_http_url
from core.observability import get_tracer


logger = logging.getLogger(__name__)
tracer = get_tracer(__name__)

DEFAULT_CONTENT_TYPE = "application/octet-stream"
CACHE_CONTROL = "public, max-age=604800, immutable"
DEFAULT_MAX_BYTES = 5 * 1024 * 1024
MAX_REDIRECTS = 5


class ProxyError(Exception):
    """Raised when a proxied image cannot be served."""

    def __init__(self, message: str, status_code: int) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code


@dataclass(frozen=True, slots=True)
class ProxiedImage:
    content: bytes
    content_type: str

    @property
    def headers(self) -> dict[str, str]:
        return {
            "Content-Type": self.content_type,
            "Cache-Control": CACHE_CONTROL,
            "Access-Control-Allow-Origin": "*",
        }


class ImageProxyService:
    """Fetch allow-listed images with a caller-supplied httpx client."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        allowed_domains: Iterable[str],
        max_bytes: int = DEFAULT_MAX_BYTES,
    ):
        self.client = client
        self.allowed_domains = normalize_domains(allowed_domains)
        self.max_bytes = max_bytes

    def validate_url(self, url: str | None) -> str:
        """Return the URL to fetch or raise a 400/403 `ProxyError`."""
        if not url or not isinstance(url, str) or not url.strip():
            raise ProxyError(
                "Missing or invalid URL parameter", status.HTTP_400_BAD_REQUEST
            )
        parts = split_http_url(url.strip())
        if parts is None:
            raise ProxyError("Invalid URL format provided.", status.HTTP_400_BAD_REQUEST)
        if not is_host_allowed(parts.hostname, self.allowed_domains):
            logger.warning(
                "Blocked proxy request for disallowed domain: %s", parts.hostname
            )
            raise ProxyError(
                "Proxying from this domain is not allowed.", status.HTTP_403_FORBIDDEN
            )
        return url.strip()

    async def fetch(self, url: str | None) -> ProxiedImage:
        """Validate `url` and fetch it upstream.

        Redirects are followed by hand so every hop is checked against the
        allow-list before it is requested.

        Raises:
            ProxyError: 400 for a missing or malformed URL, 403 for a host off
                the allow-list (including a redirect target), 413 for a body
                over `max_bytes`, 502 for a redirect loop, or the upstream
                status when the fetch does not succeed.
            httpx.HTTPError: transport failures, left to the caller.
        """
        target = self.validate_url(url)

        with tracer.start_as_current_span("image_proxy.fetch") as span:
            response = await self._get_following_redirects(target)
            span.set_attribute("http.upstream_status", response.status_code)

            if not response.is_success:
                logger.error(
                    "Failed to fetch image from %s: %s %s %s",
                    response.url.host,
                    response.status_code,
                    response.reason_phrase,
                    response.text[:500],
                )
                raise ProxyError(
                    f"Failed to fetch image: Status {response.status_code}",
                    response.status_code,
                )

            if len(response.content) > self.max_bytes:
                logger.warning(
                    "Upstream image too large: %d bytes from %s",
                    len(response.content),
                    response.url.host,
                )
                raise ProxyError(
                    f"Image too large: {len(response.content)} bytes",
                    status.HTTP_413_REQUEST_ENTITY_TOO_LARGE,
                )

            content_type = response.headers.get("content-type") or DEFAULT_CONTENT_TYPE
            return ProxiedImage(content=response.content, content_type=content_type)

    async def _get_following_redirects(self, target: str) -> httpx.Response:
        for _ in range(MAX_REDIRECTS + 1):
            response = await self.client.get(target, follow_redirects=False)
            location = response.headers.get("location")
            if not response.is_redirect or not location:
                return response
            target = self.validate_url(str(response.url.join(location)))
            logger.info("Following image redirect to %s", httpx.URL(target).host)
        raise ProxyError(
            "Failed to fetch image: too many redirects", status.HTTP_502_BAD_GATEWAY
        )
