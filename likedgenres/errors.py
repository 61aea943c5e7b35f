"""
Exception types raised by the fetch/enrichment pipeline.

RateLimited and UpstreamUnavailable are recoverable at chunk/item level
for the genre sources but fatal for the liked-songs pagination loop.
CacheIOError never escapes the cache.
"""

from typing import Optional


class LikedGenresError(RuntimeError):
    """Base class for all likedgenres errors."""


class ConfigError(LikedGenresError):
    """Required configuration is missing or invalid."""


class RateLimited(LikedGenresError):
    """The upstream answered 429; retry after `retry_after` seconds."""

    def __init__(self, retry_after: float, message: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(message or f"Rate limited, retry after {retry_after}s")


class UpstreamUnavailable(LikedGenresError):
    """Non-2xx (other than 429) response or transport failure."""

    def __init__(self, message: str, status: Optional[int] = None):
        self.status = status
        if status is not None:
            message = f"{message} (HTTP {status})"
        super().__init__(message)


class MalformedResponse(LikedGenresError):
    """The upstream answered 2xx but the body was not the expected shape."""


class CacheIOError(LikedGenresError):
    """Reading or writing a cache entry failed."""


class PlaylistExportError(LikedGenresError):
    """Creating a playlist or adding tracks to it failed."""
