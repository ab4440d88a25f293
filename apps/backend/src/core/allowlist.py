"""Hostname allow-list shared by job submission and the image proxy."""

from __future__ import annotations

from collections.abc import Iterable
from urllib.parse import SplitResult, urlsplit


ALLOWED_SCHEMES = frozenset({"http", "https"})


def normalize_domains(domains: Iterable[str]) -> frozenset[str]:
    """Lower-case and strip an iterable of hostnames."""
    return frozenset(d.strip().lower() for d in domains if d and d.strip())


def split_http_url(url: str) -> SplitResult | None:
    """Parse ``url`` and return it only if it is an absolute http(s) URL.

    Returns None for anything unparseable, relative, or using another scheme.
    """
    try:
        parts = urlsplit(url)
        hostname = parts.hostname
    except ValueError:
        return None
    if parts.scheme.lower() not in ALLOWED_SCHEMES or not hostname:
        return None
    return parts


def is_host_allowed(hostname: str | None, allowed: frozenset[str]) -> bool:
    """Exact, case-insensitive hostname match against the allow-list."""
    if not hostname:
        return False
    return hostname.lower().rstrip(".") in allowed
