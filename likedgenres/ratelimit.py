"""
Cache-aware HTTP GET and rate-limit helpers shared by the Spotify and
Last.fm clients.

cached_get_json() consults the response cache first; a hit never touches
the network, which is why only 2xx JSON bodies are ever written back (a
cached 429 would otherwise be replayed forever).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

import requests

from .cache import ResponseCache, make_cache_key
from .config import REQUEST_TIMEOUT
from .errors import RateLimited, UpstreamUnavailable
from .log import verbose_log

DEFAULT_RETRY_AFTER = 1


@dataclass
class ApiResponse:
    """Status, decoded JSON body (None if not JSON) and headers of one call."""

    status: int
    data: Any = None
    headers: dict = field(default_factory=dict)
    from_cache: bool = False

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    @property
    def rate_limited(self) -> bool:
        return self.status == 429

    def retry_after(self, default: int = DEFAULT_RETRY_AFTER) -> int:
        return parse_retry_after(_header(self.headers, "Retry-After"), default=default)

    def raise_for_rate_limit(self) -> None:
        if self.rate_limited:
            raise RateLimited(self.retry_after())


def _header(headers: Mapping[str, str], name: str) -> Optional[str]:
    # requests' CaseInsensitiveDict is flattened to a plain dict before caching
    lowered = name.lower()
    for key, value in (headers or {}).items():
        if key.lower() == lowered:
            return value
    return None


def parse_retry_after(value, default: int = DEFAULT_RETRY_AFTER) -> int:
    """Parse a Retry-After header given in seconds; fall back to `default`."""
    if value is None:
        return default
    try:
        seconds = int(float(str(value).strip()))
    except (TypeError, ValueError):
        return default
    return max(0, seconds)


def clamp_retry_after(seconds: float, lower: float, upper: float) -> float:
    return min(upper, max(lower, seconds))


def _decode_json(resp: requests.Response) -> Any:
    try:
        return resp.json()
    except ValueError:
        return None


def cached_get_json(
    session: requests.Session,
    cache: Optional[ResponseCache],
    url: str,
    headers: Optional[Mapping[str, str]] = None,
    cache_key: Optional[str] = None,
    timeout: float = REQUEST_TIMEOUT,
) -> ApiResponse:
    """GET `url`, serving from `cache` when possible.

    Args:
        session: requests session (or anything with a compatible .get())
        cache: response cache, or None to always hit the network
        url: fully built request URL, query string included
        headers: request headers; part of the default cache key
        cache_key: override the derived key (used for namespaced lookups)
        timeout: per-request timeout in seconds

    Returns:
        ApiResponse; non-2xx statuses are returned, not raised.

    Raises:
        UpstreamUnavailable: on connection errors and timeouts.
    """
    key = cache_key or make_cache_key(url, "GET", headers)

    if cache is not None:
        entry = cache.get(key)
        if entry is not None:
            verbose_log(f"Cache hit for: {url}")
            return ApiResponse(status=200, data=entry.response, headers=entry.headers, from_cache=True)

    verbose_log(f"Cache miss, fetching: {url}")
    try:
        resp = session.get(url, headers=dict(headers) if headers else None, timeout=timeout)
    except requests.exceptions.RequestException as e:
        raise UpstreamUnavailable(f"Request to {url} failed: {e}") from e

    result = ApiResponse(status=resp.status_code, data=_decode_json(resp), headers=dict(resp.headers or {}))

    if cache is not None and result.ok and result.data is not None:
        cache.set(key, result.data, result.headers)
        verbose_log(f"Cached response for: {url}")

    return result
