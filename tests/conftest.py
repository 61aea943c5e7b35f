"""
Shared fixtures: temp caches, a scripted fake HTTP session, recording sleep.
"""

import json
import threading
from urllib.parse import parse_qs, urlparse

import pytest

from likedgenres.cache import ResponseCache
from likedgenres.config import Settings
from likedgenres.log import set_log_fn


class FakeResponse:
    """Enough of requests.Response for cached_get_json()."""

    def __init__(self, status_code=200, payload=None, headers=None, text=None):
        self.status_code = status_code
        self._payload = payload
        self.headers = dict(headers or {})
        self._text = text

    def json(self):
        if self._text is not None:
            return json.loads(self._text)
        if self._payload is None:
            raise ValueError("No JSON body")
        return self._payload


class FakeSession:
    """Routes GETs to a handler(url, params) -> FakeResponse and records calls."""

    def __init__(self, handler):
        self.handler = handler
        self.calls = []
        self._lock = threading.Lock()

    def get(self, url, headers=None, timeout=None):
        parsed = urlparse(url)
        params = {k: v[0] for k, v in parse_qs(parsed.query).items()}
        with self._lock:
            self.calls.append({"url": url, "path": parsed.path, "params": params, "headers": headers})
        return self.handler(url, params)

    def calls_to(self, path_suffix):
        return [c for c in self.calls if c["path"].endswith(path_suffix)]


class RecordingSleep:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


def make_track(track_id, name, artists, album="Album"):
    """Raw Spotify track JSON. `artists` is a list of (id, name)."""
    return {
        "id": track_id,
        "name": name,
        "uri": f"spotify:track:{track_id}",
        "artists": [{"id": aid, "name": aname} for aid, aname in artists],
        "album": {
            "id": f"album-{track_id}",
            "name": album,
            "images": [{"url": f"https://img/{track_id}/640", "height": 640, "width": 640}],
            "release_date": "2020-01-01",
        },
        "duration_ms": 180000,
        "external_urls": {"spotify": f"https://open.spotify.com/track/{track_id}"},
    }


def make_liked_item(track, added_at="2024-01-01T00:00:00Z"):
    return {"added_at": added_at, "track": track}


def make_page(items, offset, total, limit=50):
    has_next = offset + limit < total
    return {
        "items": items,
        "total": total,
        "offset": offset,
        "limit": limit,
        "next": f"https://api.spotify.com/v1/me/tracks?offset={offset + limit}&limit={limit}" if has_next else None,
    }


@pytest.fixture(autouse=True)
def quiet_log():
    """Capture log lines instead of printing them."""
    lines = []
    set_log_fn(lines.append)
    yield lines
    set_log_fn(None)


@pytest.fixture
def cache_dir(tmp_path):
    return tmp_path / "api_cache"


@pytest.fixture
def cache(cache_dir):
    return ResponseCache(cache_dir)


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def settings(cache_dir):
    return Settings(cache_dir=cache_dir, request_delay=0, lastfm_request_delay=0, max_rate_limit_retries=3)


# Three-song library: A has artist genres, B only a Last.fm tag, C nothing
LIBRARY_TRACKS = [
    make_track("A", "Song A", [("artA", "Artist A"), ("artA2", "Guest")]),
    make_track("B", "Song B", [("artB", "Artist B")]),
    make_track("C", "Song C", [("artC", "Artist C")]),
]
LIBRARY_ARTIST_GENRES = {"artA": ["Hip Hop"], "artA2": ["hip-hop", "rap"], "artB": [], "artC": []}
LIBRARY_TRACK_TAGS = {("Artist B", "Song B"): ["Trap", "seen live"]}


def library_handler(liked_status=200):
    """Serve the three-song library for liked songs, artists, profile and Last.fm."""

    def handler(url, params):
        if url.startswith("https://ws.audioscrobbler.com"):
            names = []
            if params["method"] == "track.gettoptags":
                names = LIBRARY_TRACK_TAGS.get((params["artist"], params["track"]), [])
            return FakeResponse(200, {"toptags": {"tag": [{"name": n} for n in names]}})
        if url.startswith("https://api.spotify.com/v1/me/tracks"):
            if liked_status != 200:
                return FakeResponse(liked_status, {"error": "nope"})
            items = [make_liked_item(t, f"2024-01-0{i + 1}T00:00:00Z") for i, t in enumerate(LIBRARY_TRACKS)]
            return FakeResponse(200, make_page(items, 0, len(items)))
        if url.startswith("https://api.spotify.com/v1/artists"):
            ids = params["ids"].split(",")
            return FakeResponse(200, {"artists": [{"id": i, "genres": LIBRARY_ARTIST_GENRES.get(i, [])} for i in ids]})
        if url.startswith("https://api.spotify.com/v1/me"):
            return FakeResponse(200, {"id": "user1"})
        return FakeResponse(404, {"error": "unknown"})

    return handler
