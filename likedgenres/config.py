"""
Configuration for likedgenres.

All environment variables and policy constants are defined here. A .env
file in the working directory (or any parent) is loaded on import so the
variables are available before Settings.from_env() reads them.

Environment Variables (set in .env file or environment):
    Required for interactive auth:
        SPOTIFY_CLIENT_ID           - Spotify app client ID (PKCE, no secret)

    Optional:
        SPOTIFY_REDIRECT_URI        - Redirect URI (default: http://127.0.0.1:8888/callback)
        SPOTIFY_ACCESS_TOKEN        - Pre-issued bearer token (skips the auth handshake)
        LASTFM_API_KEY              - Enables Last.fm tag enrichment when set
        LASTFM_ENABLED              - Set to "false" to skip Last.fm even with a key (default: true)
        LIKEDGENRES_CACHE_DIR       - Response cache directory (default: data/.api_cache)
        CACHE_TTL_HOURS             - Cache entry lifetime (default: 24)
        SPOTIFY_PAGE_SIZE           - Liked songs page size (default: 50)
        SPOTIFY_ARTIST_BATCH_SIZE   - Artist ids per batch request (default: 50)
        SPOTIFY_API_DELAY           - Pause between Spotify pages/chunks in seconds (default: 0.1)
        LASTFM_CONCURRENCY          - Parallel Last.fm lookups (default: 8)
        LASTFM_TAG_LIMIT            - Max tags kept per track (default: 5)
        LASTFM_REQUEST_DELAY        - Pause after each Last.fm lookup in seconds (default: 0.05)
        API_RATE_LIMIT_MAX_RETRIES  - Max consecutive 429 retries per request (default: 20)
"""

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import find_dotenv, load_dotenv

from .errors import ConfigError

# Load .env file early so environment variables are available
load_dotenv(find_dotenv(usecwd=True))

# ============================================================================
# POLICY DEFAULTS
# ============================================================================

SPOTIFY_API_BASE = "https://api.spotify.com/v1"
LASTFM_API_BASE = "https://ws.audioscrobbler.com/2.0/"

DEFAULT_REDIRECT_URI = "http://127.0.0.1:8888/callback"
DEFAULT_SCOPE = "user-library-read playlist-modify-public playlist-modify-private"
DEFAULT_CACHE_DIR = Path("data") / ".api_cache"

CACHE_TTL_HOURS = 24
PAGE_SIZE = 50  # Spotify max for /me/tracks
ARTIST_BATCH_SIZE = 50  # Spotify max ids per /artists call
PLAYLIST_ADD_CHUNK = 100  # Spotify max uris per add-items call
LASTFM_CONCURRENCY = 8
LASTFM_TAG_LIMIT = 5
API_RATE_LIMIT_DELAY = 0.1
LASTFM_REQUEST_DELAY = 0.05
API_RATE_LIMIT_MAX_RETRIES = 20
# Last.fm's Retry-After is best-effort; waits are clamped to this window
LASTFM_RETRY_MIN_SECONDS = 1
LASTFM_RETRY_MAX_SECONDS = 10
REQUEST_TIMEOUT = 30


# ============================================================================
# ENV HELPERS
# ============================================================================

def get_env_or_none(name: str) -> Optional[str]:
    """Return the stripped value of `name`, or None if unset/blank."""
    value = os.environ.get(name)
    if value is None:
        return None
    value = value.strip()
    return value or None


def require_env(name: str) -> str:
    value = get_env_or_none(name)
    if value is None:
        raise ConfigError(f"Missing {name}. Set it in environment variables or .env file.")
    return value


def parse_str_env(name: str, default: str) -> str:
    value = get_env_or_none(name)
    return default if value is None else value


def parse_bool_env(name: str, default: bool) -> bool:
    value = get_env_or_none(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


def parse_int_env(name: str, default: int) -> int:
    value = get_env_or_none(name)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {value!r}")


def parse_float_env(name: str, default: float) -> float:
    value = get_env_or_none(name)
    if value is None:
        return default
    try:
        return float(value)
    except ValueError:
        raise ConfigError(f"{name} must be a number, got {value!r}")


# ============================================================================
# SETTINGS
# ============================================================================

@dataclass
class Settings:
    """Runtime settings for one pipeline instance."""

    client_id: Optional[str] = None
    redirect_uri: str = DEFAULT_REDIRECT_URI
    scope: str = DEFAULT_SCOPE
    access_token: Optional[str] = None
    lastfm_api_key: Optional[str] = None
    enable_lastfm: bool = True
    cache_dir: Path = field(default_factory=lambda: DEFAULT_CACHE_DIR)
    cache_ttl_hours: float = CACHE_TTL_HOURS
    page_size: int = PAGE_SIZE
    artist_batch_size: int = ARTIST_BATCH_SIZE
    playlist_add_chunk: int = PLAYLIST_ADD_CHUNK
    request_delay: float = API_RATE_LIMIT_DELAY
    lastfm_concurrency: int = LASTFM_CONCURRENCY
    lastfm_tag_limit: int = LASTFM_TAG_LIMIT
    lastfm_request_delay: float = LASTFM_REQUEST_DELAY
    max_rate_limit_retries: int = API_RATE_LIMIT_MAX_RETRIES
    request_timeout: float = REQUEST_TIMEOUT

    def __post_init__(self):
        self.cache_dir = Path(self.cache_dir)
        if self.page_size < 1 or self.page_size > PAGE_SIZE:
            raise ConfigError(f"page_size must be between 1 and {PAGE_SIZE}")
        if self.artist_batch_size < 1 or self.artist_batch_size > ARTIST_BATCH_SIZE:
            raise ConfigError(f"artist_batch_size must be between 1 and {ARTIST_BATCH_SIZE}")
        if self.lastfm_concurrency < 1:
            raise ConfigError("lastfm_concurrency must be at least 1")

    @property
    def cache_ttl_seconds(self) -> float:
        return self.cache_ttl_hours * 3600

    @property
    def lastfm_enabled(self) -> bool:
        return self.enable_lastfm and bool(self.lastfm_api_key)

    @classmethod
    def from_env(cls) -> "Settings":
        return cls(
            client_id=get_env_or_none("SPOTIFY_CLIENT_ID"),
            redirect_uri=parse_str_env("SPOTIFY_REDIRECT_URI", DEFAULT_REDIRECT_URI),
            access_token=get_env_or_none("SPOTIFY_ACCESS_TOKEN"),
            lastfm_api_key=get_env_or_none("LASTFM_API_KEY"),
            enable_lastfm=parse_bool_env("LASTFM_ENABLED", True),
            cache_dir=Path(parse_str_env("LIKEDGENRES_CACHE_DIR", str(DEFAULT_CACHE_DIR))),
            cache_ttl_hours=parse_float_env("CACHE_TTL_HOURS", CACHE_TTL_HOURS),
            page_size=parse_int_env("SPOTIFY_PAGE_SIZE", PAGE_SIZE),
            artist_batch_size=parse_int_env("SPOTIFY_ARTIST_BATCH_SIZE", ARTIST_BATCH_SIZE),
            request_delay=parse_float_env("SPOTIFY_API_DELAY", API_RATE_LIMIT_DELAY),
            lastfm_concurrency=parse_int_env("LASTFM_CONCURRENCY", LASTFM_CONCURRENCY),
            lastfm_tag_limit=parse_int_env("LASTFM_TAG_LIMIT", LASTFM_TAG_LIMIT),
            lastfm_request_delay=parse_float_env("LASTFM_REQUEST_DELAY", LASTFM_REQUEST_DELAY),
            max_rate_limit_retries=parse_int_env("API_RATE_LIMIT_MAX_RETRIES", API_RATE_LIMIT_MAX_RETRIES),
        )
