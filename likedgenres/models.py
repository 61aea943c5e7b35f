"""
Immutable records for liked songs and their genre enrichment.

The `from_api` constructors accept raw Spotify Web API JSON and raise
MalformedResponse when a required field is missing.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Tuple

from .errors import MalformedResponse


@dataclass(frozen=True)
class Image:
    url: str
    height: Optional[int] = None
    width: Optional[int] = None

    @classmethod
    def from_api(cls, data: dict) -> "Image":
        return cls(url=data.get("url") or "", height=data.get("height"), width=data.get("width"))


@dataclass(frozen=True)
class Artist:
    id: Optional[str]
    name: str

    @classmethod
    def from_api(cls, data: dict) -> "Artist":
        return cls(id=data.get("id"), name=data.get("name") or "")


@dataclass(frozen=True)
class Album:
    id: Optional[str]
    name: str
    images: Tuple[Image, ...] = ()
    release_date: Optional[str] = None

    @classmethod
    def from_api(cls, data: Optional[dict]) -> "Album":
        data = data or {}
        return cls(
            id=data.get("id"),
            name=data.get("name") or "",
            images=tuple(Image.from_api(i) for i in data.get("images") or [] if isinstance(i, dict)),
            release_date=data.get("release_date"),
        )


@dataclass(frozen=True)
class Track:
    id: Optional[str]
    name: str
    uri: Optional[str]
    artists: Tuple[Artist, ...]
    album: Album
    duration_ms: int = 0
    external_url: Optional[str] = None

    @property
    def primary_artist(self) -> Optional[Artist]:
        return self.artists[0] if self.artists else None

    @property
    def artist_names(self) -> List[str]:
        return [a.name for a in self.artists if a.name]

    @classmethod
    def from_api(cls, data: dict) -> "Track":
        if not isinstance(data, dict) or "name" not in data:
            raise MalformedResponse("Track object is missing its name")
        return cls(
            id=data.get("id"),
            name=data.get("name") or "",
            uri=data.get("uri"),
            artists=tuple(Artist.from_api(a) for a in data.get("artists") or [] if isinstance(a, dict)),
            album=Album.from_api(data.get("album")),
            duration_ms=data.get("duration_ms") or 0,
            external_url=(data.get("external_urls") or {}).get("spotify"),
        )


@dataclass(frozen=True)
class LikedEntry:
    added_at: Optional[str]
    track: Track

    @classmethod
    def from_api(cls, item: dict) -> "LikedEntry":
        if not isinstance(item, dict) or not isinstance(item.get("track"), dict):
            raise MalformedResponse("Liked songs item has no track object")
        return cls(added_at=item.get("added_at"), track=Track.from_api(item["track"]))


@dataclass(frozen=True)
class EnrichedSong:
    """A liked entry with genre labels from both sources.

    merged_genres is primary_genres followed by secondary_genres,
    de-duplicated by search key (first-seen casing wins), spam removed.
    """

    liked_entry: LikedEntry
    primary_genres: Tuple[str, ...] = ()
    secondary_genres: Tuple[str, ...] = ()
    merged_genres: Tuple[str, ...] = ()

    @property
    def track(self) -> Track:
        return self.liked_entry.track

    @property
    def added_at(self) -> Optional[str]:
        return self.liked_entry.added_at

    @property
    def genres(self) -> Tuple[str, ...]:
        return self.merged_genres


@dataclass(frozen=True)
class GenreQuery:
    include: Tuple[str, ...] = ()
    exclude: Tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.include and not self.exclude


@dataclass(frozen=True)
class PlaylistExportResult:
    playlist_id: str
    playlist_url: Optional[str]
    track_count: int


@dataclass(frozen=True)
class Progress:
    current: int
    total: int
    source: str


@dataclass(frozen=True)
class LoadingState:
    """Phase of a fetch cycle, as shown by the presentation layer."""

    phase: str = "idle"
    message: str = "Ready to start"
    progress: Optional[Progress] = field(default=None)
