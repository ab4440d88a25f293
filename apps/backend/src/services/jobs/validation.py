"""Submission URL validation against the allow-list."""

from __future__ import annotations

from core.allowlist import is_host_allowed, split_http_url
from services.jobs.exceptions import UrlValidationError


def validate_job_url(url: object, allowed_domains: frozenset[str]) -> str:
    """Validate a submitted URL and return it stripped of surrounding space.

    Pure and synchronous; never touches the job store.

    Raises:
        UrlValidationError: empty input, unparseable or non-http(s) URL, or a
            host outside `allowed_domains`.
    """
    if not isinstance(url, str) or not url.strip():
        raise UrlValidationError("URL cannot be empty.")

    candidate = url.strip()
    parts = split_http_url(candidate)
    if parts is None or not is_host_allowed(parts.hostname, allowed_domains):
        example = sorted(allowed_domains)[0] if allowed_domains else "example"
        raise UrlValidationError(
            "Please enter a valid media URL from an allowed domain "
            f"(e.g., https://{example}/...)."
        )
    return candidate
