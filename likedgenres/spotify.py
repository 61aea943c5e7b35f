"""
Spotify Web API access for the liked-songs pipeline.

Reads (liked songs, artists, profile) go through cached_get_json() so
they share the response cache and the 429 handling. Playlist writes are
plain one-shot calls made through spotipy.
"""

from __future__ import annotations

import time
from typing import Callable, Dict, Iterable, List, Optional
from urllib.parse import urlencode

import requests
import spotipy

from .cache import ResponseCache
from .config import SPOTIFY_API_BASE, Settings
from .errors import MalformedResponse, PlaylistExportError, RateLimited, UpstreamUnavailable
from .log import log, verbose_log
from .models import LikedEntry, PlaylistExportResult
from .ratelimit import ApiResponse, cached_get_json
from .utils import chunks, unique_keep_order

ProgressFn = Callable[[int, int], None]


class SpotifyApi:
    """Thin Spotify client bound to one bearer token."""

    def __init__(
        self,
        access_token: str,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        cache: Optional[ResponseCache] = None,
        sleep: Callable[[float], None] = time.sleep,
        sp: Optional[spotipy.Spotify] = None,
    ):
        self.access_token = access_token
        self.settings = settings or Settings()
        self.session = session or requests.Session()
        self.cache = cache
        self._sleep = sleep
        self._sp = sp

    # -------------------------
    # Helpers
    # -------------------------
    @property
    def _headers(self) -> dict:
        return {"Authorization": f"Bearer {self.access_token}"}

    @property
    def sp(self) -> spotipy.Spotify:
        """spotipy client for write calls (created lazily)."""
        if self._sp is None:
            self._sp = spotipy.Spotify(
                auth=self.access_token,
                requests_timeout=self.settings.request_timeout,
                retries=0,
                status_retries=0,
            )
        return self._sp

    def _get(self, path: str, params: Optional[dict] = None) -> ApiResponse:
        url = f"{SPOTIFY_API_BASE}{path}"
        if params:
            url = f"{url}?{urlencode(params, safe=',')}"
        return cached_get_json(
            self.session, self.cache, url,
            headers=self._headers,
            timeout=self.settings.request_timeout,
        )

    def _wait_rate_limited(self, retry_after: float, attempt: int, what: str) -> None:
        log(f"⏳ Rate limited on {what} - waiting {retry_after}s "
            f"(attempt {attempt}/{self.settings.max_rate_limit_retries})")
        self._sleep(retry_after)

    # -------------------------
    # Liked songs
    # -------------------------
    def liked_songs_page(self, offset: int, limit: Optional[int] = None) -> dict:
        """Fetch one page of the user's saved tracks.

        Returns:
            The raw page dict ({"items", "next", "total", ...}).

        Raises:
            RateLimited: on HTTP 429 (carries Retry-After seconds)
            UpstreamUnavailable: on any other non-2xx status or transport error
            MalformedResponse: if the body is not a page object
        """
        limit = limit or self.settings.page_size
        resp = self._get("/me/tracks", {"offset": offset, "limit": limit})
        resp.raise_for_rate_limit()
        if not resp.ok:
            raise UpstreamUnavailable("Failed to fetch liked songs", status=resp.status)
        page = resp.data
        if not isinstance(page, dict) or not isinstance(page.get("items"), list):
            raise MalformedResponse("Liked songs page has no items list")
        return page

    def fetch_liked_songs(self, on_progress: Optional[Callable[[int, Optional[int]], None]] = None) -> List[LikedEntry]:
        """Fetch the whole liked-songs collection, page by page.

        Pagination stops only when a page has no `next` link; the `total`
        reported by the first page is used for progress display only. A
        429 sleeps for Retry-After and re-requests the same offset.

        Args:
            on_progress: called as (songs_so_far, estimated_total) after each page

        Returns:
            Liked entries in library order. Items without a track object
            (removed from the catalog) are skipped.
        """
        limit = self.settings.page_size
        entries: List[LikedEntry] = []
        offset = 0
        estimated_total: Optional[int] = None
        has_more = True
        attempts = 0

        while has_more:
            try:
                page = self.liked_songs_page(offset, limit)
            except RateLimited as e:
                attempts += 1
                if attempts > self.settings.max_rate_limit_retries:
                    raise
                self._wait_rate_limited(e.retry_after, attempts, f"liked songs offset {offset}")
                # Same offset again: nothing skipped, nothing duplicated
                continue
            attempts = 0

            for item in page["items"]:
                if not isinstance(item, dict) or not item.get("track"):
                    verbose_log(f"Skipping liked item without track at offset {offset}")
                    continue
                entries.append(LikedEntry.from_api(item))

            if estimated_total is None:
                estimated_total = page.get("total")

            has_more = page.get("next") is not None
            offset += limit

            if on_progress:
                on_progress(len(entries), estimated_total)

            if has_more and self.settings.request_delay > 0:
                self._sleep(self.settings.request_delay)

        return entries

    # -------------------------
    # Artist genres
    # -------------------------
    def artist_genres(self, artist_ids: Iterable[Optional[str]], on_progress: Optional[ProgressFn] = None) -> Dict[str, List[str]]:
        """Resolve genres for many artists using the batch /artists endpoint.

        Ids are de-duplicated (order kept) and requested in chunks. Every
        input id ends up in the result: artists in a chunk that failed,
        or that Spotify did not return, map to an empty list.

        Args:
            artist_ids: artist ids; empty values are ignored
            on_progress: called as (completed_chunks, total_chunks) once per chunk

        Returns:
            Mapping of artist id to its Spotify genre list.
        """
        ids = unique_keep_order(a for a in artist_ids if a)
        if not ids:
            return {}

        batches = list(chunks(ids, self.settings.artist_batch_size))
        total = len(batches)
        genre_map: Dict[str, List[str]] = {}

        for completed, batch in enumerate(batches, start=1):
            genre_map.update(self._resolve_artist_batch(batch))
            if on_progress:
                on_progress(completed, total)
            # Small delay between chunks
            if total > 1 and self.settings.request_delay > 0:
                self._sleep(self.settings.request_delay)

        return genre_map

    def _resolve_artist_batch(self, batch: List[str]) -> Dict[str, List[str]]:
        result: Dict[str, List[str]] = {artist_id: [] for artist_id in batch}
        attempts = 0

        while True:
            try:
                resp = self._get("/artists", {"ids": ",".join(batch)})
            except UpstreamUnavailable as e:
                log(f"⚠️  Skipping {len(batch)} artists: {e}")
                return result

            if resp.rate_limited:
                attempts += 1
                if attempts > self.settings.max_rate_limit_retries:
                    log(f"⚠️  Skipping {len(batch)} artists: still rate limited after {attempts - 1} retries")
                    return result
                self._wait_rate_limited(resp.retry_after(), attempts, f"{len(batch)} artists")
                continue

            if not resp.ok:
                log(f"⚠️  Failed to fetch artists: {resp.status}")
                return result

            artists = resp.data.get("artists") if isinstance(resp.data, dict) else None
            if not isinstance(artists, list):
                log("⚠️  Artists response had no artists list; treating as empty")
                return result

            for artist in artists:
                if isinstance(artist, dict) and artist.get("id"):
                    genres = artist.get("genres")
                    if not isinstance(genres, list):
                        genres = []
                    result[artist["id"]] = [g for g in genres if isinstance(g, str)]
            return result

    # -------------------------
    # Profile & playlists
    # -------------------------
    def current_user(self) -> dict:
        """Fetch the current user's profile (cached like any other read)."""
        attempts = 0
        while True:
            resp = self._get("/me")
            if resp.rate_limited:
                attempts += 1
                if attempts > self.settings.max_rate_limit_retries:
                    raise RateLimited(resp.retry_after())
                self._wait_rate_limited(resp.retry_after(), attempts, "user profile")
                continue
            if not resp.ok:
                raise UpstreamUnavailable("Failed to fetch user profile", status=resp.status)
            if not isinstance(resp.data, dict) or not resp.data.get("id"):
                raise MalformedResponse("User profile has no id")
            return resp.data

    def create_playlist(self, user_id: str, name: str, description: str = "", public: bool = True) -> dict:
        try:
            return self.sp.user_playlist_create(user_id, name, public=public, description=description or "")
        except (spotipy.SpotifyException, requests.exceptions.RequestException) as e:
            raise PlaylistExportError(f"Failed to create playlist: {e}") from e

    def add_tracks_to_playlist(self, playlist_id: str, track_uris: List[str]) -> None:
        batches = list(chunks(track_uris, self.settings.playlist_add_chunk))
        for batch in batches:
            try:
                self.sp.playlist_add_items(playlist_id, batch)
            except (spotipy.SpotifyException, requests.exceptions.RequestException) as e:
                raise PlaylistExportError(f"Failed to add tracks to playlist: {e}") from e
            # Small delay between chunks to avoid rate limiting
            if len(batches) > 1 and self.settings.request_delay > 0:
                self._sleep(self.settings.request_delay)

    def export_playlist(self, name: str, track_uris: List[str], description: str = "", public: bool = True) -> PlaylistExportResult:
        """Create a playlist named `name` holding `track_uris`."""
        user = self.current_user()
        playlist = self.create_playlist(user["id"], name, description, public=public)
        playlist_id = playlist.get("id") if isinstance(playlist, dict) else None
        if not playlist_id:
            raise PlaylistExportError("Spotify did not return a playlist id")
        self.add_tracks_to_playlist(playlist_id, track_uris)
        log(f"✅ Created playlist \"{name}\" with {len(track_uris)} tracks")
        return PlaylistExportResult(
            playlist_id=playlist_id,
            playlist_url=(playlist.get("external_urls") or {}).get("spotify"),
            track_count=len(track_uris),
        )
