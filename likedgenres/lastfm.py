"""
Last.fm top-tags lookup used as a secondary genre source.

Last.fm tags are community-driven "tags" (often genre-ish), not a
canonical taxonomy, so they are junk-filtered before use. A lookup tries
the exact track title, then a cleaned title, then the artist's own tags,
and keeps the first non-empty answer.
"""

from __future__ import annotations

import re
import threading
import time
from typing import Callable, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlencode

import requests

from .cache import ResponseCache
from .concurrency import map_with_concurrency
from .config import LASTFM_API_BASE, LASTFM_RETRY_MAX_SECONDS, LASTFM_RETRY_MIN_SECONDS, Settings
from .errors import UpstreamUnavailable
from .genres import is_spam_label
from .log import log, verbose_log
from .models import LikedEntry
from .ratelimit import cached_get_json, clamp_retry_after

CACHE_NAMESPACE = "lastfm:"
TAG_KEY_SEPARATOR = "|||"

# Very common non-genre tags that add noise
JUNK_TAGS = {
    "seen live",
    "favorites",
    "favourites",
    "favorite",
    "favourite",
    "spotify",
}
# Years/decades often appear as tags (e.g. "2010s", "1998"); not useful as genres
_YEAR = re.compile(r"^\d{4}$")
_DECADE = re.compile(r"^\d{2,4}s$")

_VERSION_TAIL = re.compile(r"(remaster|live|radio edit|edit|version|mono|stereo|deluxe|explicit)", re.I)
_BRACKETED_MARKER = re.compile(
    r"\s*[(\[][^)\]]*(feat\.?|ft\.?|featuring|remaster|live|radio edit|edit|version|mono|stereo|deluxe)[^)\]]*[)\]]\s*",
    re.I,
)
_INLINE_FEAT = re.compile(r"\s+(feat\.?|ft\.?|featuring)\s+.+$", re.I)


def normalize_tag(tag: str) -> str:
    return tag.strip().lower()


def is_junk_tag(tag: str) -> bool:
    """Last.fm-specific junk: social tags, years, decades and numeric spam."""
    t = (tag or "").strip().lower()
    if not t:
        return True
    if t in JUNK_TAGS:
        return True
    if _YEAR.match(t) or _DECADE.match(t):
        return True
    return is_spam_label(t)


def clean_track_title(title: str) -> str:
    """Strip version markers and feature credits from a track title.

    "Song - Remastered 2011"     -> "Song"
    "Song (feat. Someone)"       -> "Song"
    "Song ft. Someone Else"      -> "Song"
    "Song - Part Two"            -> "Song - Part Two"
    """
    t = (title or "").strip()
    if not t:
        return t

    parts = t.split(" - ")
    if len(parts) > 1:
        head = parts[0].strip()
        tail = " - ".join(parts[1:]).lower()
        if _VERSION_TAIL.search(tail):
            t = head

    t = _BRACKETED_MARKER.sub(" ", t)
    t = _INLINE_FEAT.sub(" ", t)

    return re.sub(r"\s{2,}", " ", t).strip()


def make_tag_key(artist: str, track: str) -> str:
    """Composite key for the per-track tag map."""
    return f"{(artist or '').strip().lower()}{TAG_KEY_SEPARATOR}{(track or '').strip().lower()}"


def _tags_from_payload(data) -> List[str]:
    if not isinstance(data, dict) or data.get("error"):
        return []
    toptags = data.get("toptags")
    tags = toptags.get("tag") if isinstance(toptags, dict) else None
    if not tags:
        return []
    # A single tag comes back as an object, not a one-element list
    if isinstance(tags, dict):
        tags = [tags]
    if not isinstance(tags, list):
        return []
    names = [t.get("name") if isinstance(t, dict) and isinstance(t.get("name"), str) else "" for t in tags]
    return [n for n in (normalize_tag(name) for name in names) if n and not is_junk_tag(n)]


class LastfmTagger:
    """Fetches and caches Last.fm top tags for tracks and artists."""

    def __init__(
        self,
        api_key: Optional[str],
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        cache: Optional[ResponseCache] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.api_key = api_key
        self.settings = settings or Settings()
        self.session = session or requests.Session()
        self.cache = cache
        self._sleep = sleep

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    def _fetch_json(self, params: dict):
        """GET one Last.fm method call; None on transport failure or non-JSON."""
        query = dict(params, api_key=self.api_key or "", format="json", autocorrect="1")
        url = f"{LASTFM_API_BASE}?{urlencode(query)}"
        attempts = 0
        while True:
            try:
                resp = cached_get_json(
                    self.session, self.cache, url,
                    cache_key=f"{CACHE_NAMESPACE}{url}",
                    timeout=self.settings.request_timeout,
                )
            except UpstreamUnavailable as e:
                log(f"⚠️  Last.fm request failed: {e}")
                return None

            if not resp.rate_limited:
                return resp.data

            attempts += 1
            if attempts > self.settings.max_rate_limit_retries:
                log(f"⚠️  Last.fm still rate limited after {attempts - 1} retries; giving up on {params.get('method')}")
                return None
            # Retry-After is not always present on Last.fm
            wait = clamp_retry_after(resp.retry_after(), LASTFM_RETRY_MIN_SECONDS, LASTFM_RETRY_MAX_SECONDS)
            verbose_log(f"Last.fm rate limited, waiting {wait}s")
            self._sleep(wait)

    def track_top_tags(self, artist: str, track: str) -> List[str]:
        data = self._fetch_json({"method": "track.gettoptags", "artist": artist, "track": track})
        return _tags_from_payload(data)

    def artist_top_tags(self, artist: str) -> List[str]:
        data = self._fetch_json({"method": "artist.gettoptags", "artist": artist})
        return _tags_from_payload(data)

    def get_track_tags(self, artist: str, track: str, limit: Optional[int] = None) -> List[str]:
        """Top tags for a track, falling back to a cleaned title and then the artist.

        Args:
            artist: artist name as credited on Spotify
            track: track title as on Spotify
            limit: maximum tags returned (default from settings)

        Returns:
            Up to `limit` lower-cased, junk-free, de-duplicated tags; empty
            when Last.fm is disabled, inputs are blank or nothing is found.
        """
        limit = self.settings.lastfm_tag_limit if limit is None else limit
        if not self.enabled:
            return []
        if not (artist or "").strip() or not (track or "").strip():
            return []

        strategies: List[Tuple[str, Callable[[], List[str]]]] = [
            ("track", lambda: self.track_top_tags(artist, track)),
        ]
        cleaned = clean_track_title(track)
        if cleaned and cleaned.lower() != track.strip().lower():
            strategies.append(("cleaned track", lambda: self.track_top_tags(artist, cleaned)))
        # If track tags are empty, fall back to artist tags (often more available)
        strategies.append(("artist", lambda: self.artist_top_tags(artist)))

        gathered: List[str] = []
        for name, lookup in strategies:
            gathered = lookup()
            if gathered:
                verbose_log(f"Last.fm tags for {artist} - {track} via {name}: {gathered}")
                break

        unique: List[str] = []
        for tag in gathered:
            if tag not in unique:
                unique.append(tag)
            if len(unique) >= limit:
                break
        return unique

    def enrich(
        self,
        entries: Sequence[LikedEntry],
        on_progress: Optional[Callable[[int, int], None]] = None,
    ) -> Dict[str, List[str]]:
        """Look up tags for every distinct (first artist, title) pair in `entries`.

        Runs up to `settings.lastfm_concurrency` lookups at once. A failed
        lookup yields an empty list; it never aborts the run.

        Returns:
            Mapping of make_tag_key(artist, title) to tags.
        """
        pairs: Dict[str, Tuple[str, str]] = {}
        for entry in entries:
            artist = entry.track.primary_artist
            if artist is None or not artist.name:
                continue
            key = make_tag_key(artist.name, entry.track.name)
            if key not in pairs:
                pairs[key] = (artist.name, entry.track.name)

        keys = list(pairs)
        total = len(keys)
        if not total or not self.enabled:
            return {}

        lock = threading.Lock()
        completed = 0

        def lookup(key: str, index: int) -> List[str]:
            nonlocal completed
            artist, track = pairs[key]
            try:
                tags = self.get_track_tags(artist, track)
            except Exception as e:
                log(f"⚠️  Last.fm lookup failed for {artist} - {track}: {e}")
                tags = []
            # Throttle even on cache hits to stay under Last.fm's budget
            if self.settings.lastfm_request_delay > 0:
                self._sleep(self.settings.lastfm_request_delay)
            with lock:
                completed += 1
                if on_progress:
                    on_progress(completed, total)
            return tags

        results = map_with_concurrency(keys, self.settings.lastfm_concurrency, lookup)
        return dict(zip(keys, results))
