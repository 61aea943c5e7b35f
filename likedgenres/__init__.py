"""
likedgenres - your Spotify liked songs, grouped and filtered by genre.

Fetches the whole liked-songs library, tags every track with Spotify
artist genres plus (optionally) Last.fm top tags, and filters the result
with a small include/exclude query language.

Usage:
    from likedgenres import LikedGenres

    lg = LikedGenres.from_env(progress=True)
    lg.fetch()

    chill = lg.filter("lo-fi | chillhop, -rap")
    df = lg.songs_frame(chill)
"""

from .cache import CacheEntry, CacheStats, ResponseCache, make_cache_key
from .client import LikedGenres, songs_to_frame
from .concurrency import map_with_concurrency
from .config import Settings
from .errors import (
    CacheIOError,
    ConfigError,
    LikedGenresError,
    MalformedResponse,
    PlaylistExportError,
    RateLimited,
    UpstreamUnavailable,
)
from .export import export_table
from .genres import (
    available_genres,
    filter_genre_labels,
    filter_songs,
    is_spam_label,
    merge_genre_labels,
    parse_genre_query,
    parse_genre_query_terms,
    song_matches_query,
    to_search_key,
)
from .lastfm import LastfmTagger, clean_track_title, is_junk_tag
from .models import (
    Album,
    Artist,
    EnrichedSong,
    GenreQuery,
    Image,
    LikedEntry,
    LoadingState,
    PlaylistExportResult,
    Progress,
    Track,
)
from .spotify import SpotifyApi

__version__ = "1.0.0"

__all__ = [
    # Main client
    "LikedGenres",
    "SpotifyApi",
    "LastfmTagger",
    # Configuration
    "Settings",
    # Cache
    "ResponseCache",
    "CacheEntry",
    "CacheStats",
    "make_cache_key",
    # Errors
    "LikedGenresError",
    "ConfigError",
    "RateLimited",
    "UpstreamUnavailable",
    "MalformedResponse",
    "CacheIOError",
    "PlaylistExportError",
    # Models
    "Image",
    "Artist",
    "Album",
    "Track",
    "LikedEntry",
    "EnrichedSong",
    "GenreQuery",
    "LoadingState",
    "Progress",
    "PlaylistExportResult",
    # Genre matching
    "to_search_key",
    "is_spam_label",
    "filter_genre_labels",
    "merge_genre_labels",
    "parse_genre_query",
    "parse_genre_query_terms",
    "song_matches_query",
    "filter_songs",
    "available_genres",
    # Last.fm helpers
    "clean_track_title",
    "is_junk_tag",
    # Utilities
    "map_with_concurrency",
    "export_table",
    "songs_to_frame",
]
