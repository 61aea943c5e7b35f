"""
LikedGenres client - liked songs enriched with genres, filterable by query.
"""

from __future__ import annotations

import time
from typing import Callable, Dict, List, Optional

import pandas as pd
import requests
from spotipy.oauth2 import SpotifyPKCE
from tqdm import tqdm

from .cache import CacheStats, ResponseCache
from .config import Settings, require_env
from .errors import ConfigError, LikedGenresError
from .genres import available_genres, filter_songs, merge_genre_labels
from .lastfm import LastfmTagger, make_tag_key
from .log import log, verbose_log
from .models import EnrichedSong, LikedEntry, LoadingState, PlaylistExportResult, Progress
from .spotify import SpotifyApi
from .utils import unique_keep_order

PHASE_IDLE = "idle"
PHASE_FETCHING_SONGS = "fetching_songs"
PHASE_FETCHING_GENRES = "fetching_genres"
PHASE_PROCESSING = "processing"
PHASE_COMPLETE = "complete"

SONG_COLUMNS = [
    "track_id", "name", "artists", "album", "release_date", "duration_ms",
    "added_at", "uri", "url", "primary_genres", "secondary_genres", "genres",
]


class LikedGenres:
    """Fetch, enrich and filter a user's liked songs.

    Usage:
        lg = LikedGenres.from_env(progress=True)
        lg.fetch()
        trap = lg.filter("trap, -pop")
        lg.export_to_playlist(trap, "Trap (no pop)")
    """

    def __init__(
        self,
        access_token: str,
        settings: Optional[Settings] = None,
        session: Optional[requests.Session] = None,
        cache: Optional[ResponseCache] = None,
        progress: bool = False,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if not access_token:
            raise ConfigError("An access token is required")
        self.settings = settings or Settings()
        self.cache = cache or ResponseCache(self.settings.cache_dir, ttl_seconds=self.settings.cache_ttl_seconds)
        self.session = session or requests.Session()
        self.progress = progress
        self.spotify = SpotifyApi(access_token, self.settings, session=self.session, cache=self.cache, sleep=sleep)
        self.lastfm = LastfmTagger(self.settings.lastfm_api_key, self.settings, session=self.session,
                                   cache=self.cache, sleep=sleep)
        self.state = LoadingState()
        self._songs: List[EnrichedSong] = []
        self._on_state: Optional[Callable[[LoadingState], None]] = None

    # -------------------------
    # Constructors
    # -------------------------
    @classmethod
    def from_pkce(
        cls,
        client_id: str,
        redirect_uri: str,
        settings: Optional[Settings] = None,
        progress: bool = False,
    ) -> "LikedGenres":
        """Authorize with PKCE (opens a browser on first use) and build a client."""
        settings = settings or Settings(client_id=client_id, redirect_uri=redirect_uri)
        auth = SpotifyPKCE(
            client_id=client_id,
            redirect_uri=redirect_uri,
            scope=settings.scope,
            open_browser=True,
        )
        token = auth.get_access_token()
        return cls(token, settings=settings, progress=progress)

    @classmethod
    def from_env(cls, progress: bool = False) -> "LikedGenres":
        settings = Settings.from_env()
        if settings.access_token:
            return cls(settings.access_token, settings=settings, progress=progress)
        client_id = require_env("SPOTIFY_CLIENT_ID")
        return cls.from_pkce(client_id, settings.redirect_uri, settings=settings, progress=progress)

    # -------------------------
    # Helpers
    # -------------------------
    def _set_state(self, phase: str, message: str, progress: Optional[Progress] = None) -> None:
        self.state = LoadingState(phase=phase, message=message, progress=progress)
        if self._on_state:
            self._on_state(self.state)

    def _progress_bar(self, desc: str, unit: str) -> Optional[tqdm]:
        return tqdm(total=0, desc=desc, unit=unit) if self.progress else None

    @staticmethod
    def _advance(pbar: Optional[tqdm], current: int, total: Optional[int]) -> None:
        if pbar is None:
            return
        if total and pbar.total != total:
            pbar.total = total
        pbar.update(current - pbar.n)

    # -------------------------
    # Pipeline
    # -------------------------
    def fetch(
        self,
        enable_lastfm: Optional[bool] = None,
        on_state: Optional[Callable[[LoadingState], None]] = None,
    ) -> List[EnrichedSong]:
        """Run one full fetch cycle and return the enriched collection.

        Args:
            enable_lastfm: force Last.fm on/off; default follows settings.
                Without an API key Last.fm stays off either way.
            on_state: receives every LoadingState transition

        Raises:
            RateLimited, UpstreamUnavailable, MalformedResponse: if the
                liked songs could not be fetched. Genre lookups never raise.
        """
        self._on_state = on_state
        use_lastfm = self.settings.lastfm_enabled if enable_lastfm is None else enable_lastfm
        use_lastfm = use_lastfm and self.lastfm.enabled

        try:
            entries = self._fetch_entries()
            artist_genres = self._fetch_artist_genres(entries)
            tag_map = self._fetch_lastfm_tags(entries) if use_lastfm else {}

            self._set_state(PHASE_PROCESSING, "Processing songs and genres...")
            songs = [self._enrich(entry, artist_genres, tag_map) for entry in entries]
        except LikedGenresError as e:
            log(f"❌ Fetch failed: {e}")
            self._set_state(PHASE_IDLE, "Error occurred")
            self._on_state = None
            raise

        self._songs = songs
        with_genres = sum(1 for s in songs if s.genres)
        self._set_state(PHASE_COMPLETE, f"Analysis complete! Found {len(songs)} songs")
        log(f"✅ {len(songs):,} liked songs, {with_genres:,} with genres")
        self._on_state = None
        return songs

    def _fetch_entries(self) -> List[LikedEntry]:
        self._set_state(PHASE_FETCHING_SONGS, "Fetching your liked songs...")
        pbar = self._progress_bar("Fetching Liked Songs", "track")

        def on_progress(current: int, total: Optional[int]) -> None:
            self._advance(pbar, current, total)
            self._set_state(
                PHASE_FETCHING_SONGS,
                f"Fetching liked songs... ({current} songs found)",
                Progress(current, total, "songs") if total else None,
            )

        try:
            entries = self.spotify.fetch_liked_songs(on_progress=on_progress)
        finally:
            if pbar is not None:
                pbar.close()
        log(f"❤️  Fetched {len(entries):,} liked songs")
        return entries

    def _fetch_artist_genres(self, entries: List[LikedEntry]) -> Dict[str, List[str]]:
        artist_ids = unique_keep_order(a.id for e in entries for a in e.track.artists if a.id)
        self._set_state(PHASE_FETCHING_GENRES, f"Fetching genres for {len(artist_ids)} unique artists...")
        pbar = self._progress_bar("Fetching artist genres", "chunk")

        def on_progress(completed: int, total: int) -> None:
            self._advance(pbar, completed, total)
            self._set_state(
                PHASE_FETCHING_GENRES,
                f"Fetching Spotify artist genres ({completed}/{total} batches)",
                Progress(completed, total, "spotify_artists"),
            )

        try:
            return self.spotify.artist_genres(artist_ids, on_progress=on_progress)
        finally:
            if pbar is not None:
                pbar.close()

    def _fetch_lastfm_tags(self, entries: List[LikedEntry]) -> Dict[str, List[str]]:
        self._set_state(PHASE_FETCHING_GENRES, "Fetching Last.fm tags...")
        pbar = self._progress_bar("Fetching Last.fm tags", "track")

        def on_progress(completed: int, total: int) -> None:
            self._advance(pbar, completed, total)
            self._set_state(
                PHASE_FETCHING_GENRES,
                f"Fetching Last.fm tags ({completed}/{total} tracks)",
                Progress(completed, total, "lastfm"),
            )

        try:
            return self.lastfm.enrich(entries, on_progress=on_progress)
        finally:
            if pbar is not None:
                pbar.close()

    @staticmethod
    def _enrich(entry: LikedEntry, artist_genres: Dict[str, List[str]], tag_map: Dict[str, List[str]]) -> EnrichedSong:
        primary: List[str] = []
        for artist in entry.track.artists:
            primary.extend(artist_genres.get(artist.id, []) if artist.id else [])
        primary = unique_keep_order(primary)

        secondary: List[str] = []
        first = entry.track.primary_artist
        if first is not None and first.name:
            secondary = tag_map.get(make_tag_key(first.name, entry.track.name), [])

        return EnrichedSong(
            liked_entry=entry,
            primary_genres=tuple(primary),
            secondary_genres=tuple(secondary),
            merged_genres=tuple(merge_genre_labels(primary, secondary)),
        )

    def refresh(self, enable_lastfm: Optional[bool] = None) -> List[EnrichedSong]:
        """Clear the response cache and fetch everything again."""
        self.clear_cache()
        return self.fetch(enable_lastfm=enable_lastfm)

    # -------------------------
    # Query & views
    # -------------------------
    @property
    def songs(self) -> List[EnrichedSong]:
        return list(self._songs)

    def filter(self, query: str) -> List[EnrichedSong]:
        return filter_songs(self._songs, query)

    def available_genres(self) -> List[str]:
        return available_genres(self._songs)

    def songs_frame(self, songs: Optional[List[EnrichedSong]] = None) -> pd.DataFrame:
        """One row per song; genre columns hold Python lists."""
        songs = self._songs if songs is None else songs
        return songs_to_frame(songs)

    def genre_counts(self, songs: Optional[List[EnrichedSong]] = None) -> pd.DataFrame:
        """Number of songs per merged genre label, most common first."""
        df = self.songs_frame(songs)
        if df.empty:
            return pd.DataFrame(columns=["genre", "songs"])
        counts = df["genres"].explode().dropna().value_counts()
        return counts.rename_axis("genre").reset_index(name="songs")

    # -------------------------
    # Cache & status
    # -------------------------
    def clear_cache(self) -> None:
        self.cache.clear()
        log("🧹 Cache cleared")

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()

    def status(self) -> dict:
        stats = self.cache_stats()
        return {
            "cache_dir": str(self.cache.dir),
            "cache_entries": stats.count,
            "cache_size_bytes": stats.total_size_bytes,
            "phase": self.state.phase,
            "songs": len(self._songs),
            "songs_with_genres": sum(1 for s in self._songs if s.genres),
            "lastfm_enabled": self.settings.lastfm_enabled,
        }

    def print_status(self) -> None:
        s = self.status()
        print("\n" + "=" * 50)
        print("        LIKED GENRES STATUS")
        print("=" * 50)
        print(f"📁 Cache directory: {s['cache_dir']}")
        print(f"🗃️  Cached responses: {s['cache_entries']:,} ({s['cache_size_bytes'] / 1024:.1f} KB)")
        print(f"🎵 Songs loaded: {s['songs']:,} ({s['songs_with_genres']:,} with genres)")
        print(f"🏷️  Last.fm: {'on' if s['lastfm_enabled'] else 'off'}")
        print("=" * 50 + "\n")

    # -------------------------
    # Playlist export
    # -------------------------
    def export_to_playlist(
        self,
        songs: List[EnrichedSong],
        name: str,
        description: str = "",
        public: bool = True,
    ) -> PlaylistExportResult:
        uris = [s.track.uri for s in songs if s.track.uri]
        verbose_log(f"Exporting {len(uris)} tracks to playlist {name!r}")
        return self.spotify.export_playlist(name, uris, description=description, public=public)


def songs_to_frame(songs: List[EnrichedSong]) -> pd.DataFrame:
    rows = []
    for s in songs:
        t = s.track
        rows.append({
            "track_id": t.id,
            "name": t.name,
            "artists": ", ".join(t.artist_names),
            "album": t.album.name,
            "release_date": t.album.release_date,
            "duration_ms": t.duration_ms,
            "added_at": s.added_at,
            "uri": t.uri,
            "url": t.external_url,
            "primary_genres": list(s.primary_genres),
            "secondary_genres": list(s.secondary_genres),
            "genres": list(s.merged_genres),
        })
    return pd.DataFrame(rows, columns=SONG_COLUMNS)
