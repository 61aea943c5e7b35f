"""
Tests for liked-songs pagination, the batch artist resolver and playlist export.
"""

from unittest.mock import MagicMock

import pytest
import spotipy

from likedgenres.errors import MalformedResponse, PlaylistExportError, RateLimited, UpstreamUnavailable
from likedgenres.spotify import SpotifyApi

from conftest import FakeResponse, FakeSession, make_liked_item, make_page, make_track


def library(n):
    return [make_liked_item(make_track(f"t{i}", f"Song {i}", [(f"a{i % 7}", f"Artist {i % 7}")])) for i in range(n)]


def paging_handler(items, limit=50, rate_limit_offsets=None, retry_after="2"):
    """Serve /me/tracks pages; 429 once for each offset in rate_limit_offsets."""
    pending = set(rate_limit_offsets or [])

    def handler(url, params):
        offset = int(params["offset"])
        if offset in pending:
            pending.discard(offset)
            return FakeResponse(429, None, {"Retry-After": retry_after})
        page_items = items[offset:offset + limit]
        return FakeResponse(200, make_page(page_items, offset, len(items), limit))

    return handler


def make_api(session, settings, cache=None, sleep=None):
    return SpotifyApi("token", settings, session=session, cache=cache, sleep=sleep or (lambda s: None))


# =============================================================================
# Pagination
# =============================================================================

def test_fetches_every_page_in_order(settings, sleep):
    items = library(120)
    session = FakeSession(paging_handler(items))
    api = make_api(session, settings, sleep=sleep)

    entries = api.fetch_liked_songs()

    assert [e.track.id for e in entries] == [f"t{i}" for i in range(120)]
    assert [c["params"]["offset"] for c in session.calls] == ["0", "50", "100"]
    assert all(c["params"]["limit"] == "50" for c in session.calls)
    assert session.calls[0]["headers"] == {"Authorization": "Bearer token"}


def test_rate_limit_retries_same_offset_without_duplicates(settings, sleep):
    items = library(130)
    session = FakeSession(paging_handler(items, rate_limit_offsets={50, 100}, retry_after="4"))
    api = make_api(session, settings, sleep=sleep)

    entries = api.fetch_liked_songs()

    ids = [e.track.id for e in entries]
    assert len(ids) == 130
    assert len(set(ids)) == 130
    assert [c["params"]["offset"] for c in session.calls] == ["0", "50", "50", "100", "100"]
    assert sleep.calls == [4, 4]


def test_rate_limit_retries_are_bounded(settings, sleep):
    session = FakeSession(lambda url, params: FakeResponse(429, None, {"Retry-After": "1"}))
    api = make_api(session, settings, sleep=sleep)

    with pytest.raises(RateLimited):
        api.fetch_liked_songs()
    assert len(session.calls) == settings.max_rate_limit_retries + 1


def test_termination_follows_next_not_total(settings):
    # First page claims 500 songs, but there is no next link
    page = make_page(library(3), 0, 500)
    page["next"] = None
    session = FakeSession(lambda url, params: FakeResponse(200, page))
    progress = []

    entries = make_api(session, settings).fetch_liked_songs(on_progress=lambda c, t: progress.append((c, t)))

    assert len(entries) == 3
    assert len(session.calls) == 1
    assert progress == [(3, 500)]


def test_estimated_total_fixed_from_first_page(settings):
    items = library(60)

    def handler(url, params):
        offset = int(params["offset"])
        page = make_page(items[offset:offset + 50], offset, len(items))
        page["total"] = 60 if offset == 0 else 999
        return FakeResponse(200, page)

    progress = []
    make_api(FakeSession(handler), settings).fetch_liked_songs(on_progress=lambda c, t: progress.append((c, t)))
    assert progress == [(50, 60), (60, 60)]


def test_other_errors_are_fatal(settings):
    session = FakeSession(lambda url, params: FakeResponse(500, {"error": "boom"}))
    with pytest.raises(UpstreamUnavailable) as exc:
        make_api(session, settings).fetch_liked_songs()
    assert exc.value.status == 500
    assert "Failed to fetch liked songs" in str(exc.value)


def test_malformed_page_is_fatal(settings):
    session = FakeSession(lambda url, params: FakeResponse(200, {"unexpected": True}))
    with pytest.raises(MalformedResponse):
        make_api(session, settings).fetch_liked_songs()


def test_items_without_track_are_skipped(settings):
    items = library(2) + [{"added_at": "2024-01-01T00:00:00Z", "track": None}]
    session = FakeSession(lambda url, params: FakeResponse(200, make_page(items, 0, 3)))
    entries = make_api(session, settings).fetch_liked_songs()
    assert [e.track.id for e in entries] == ["t0", "t1"]


def test_cached_pages_skip_network(settings, cache):
    items = library(75)
    first_session = FakeSession(paging_handler(items))
    make_api(first_session, settings, cache=cache).fetch_liked_songs()
    assert len(first_session.calls) == 2

    second_session = FakeSession(paging_handler(items))
    entries = make_api(second_session, settings, cache=cache).fetch_liked_songs()
    assert len(entries) == 75
    assert second_session.calls == []


def test_track_fields_are_parsed(settings):
    session = FakeSession(paging_handler(library(1)))
    entry = make_api(session, settings).fetch_liked_songs()[0]
    assert entry.added_at == "2024-01-01T00:00:00Z"
    assert entry.track.uri == "spotify:track:t0"
    assert entry.track.artists[0].id == "a0"
    assert entry.track.album.images[0].height == 640
    assert entry.track.album.release_date == "2020-01-01"
    assert entry.track.duration_ms == 180000
    assert entry.track.external_url == "https://open.spotify.com/track/t0"


def test_delay_between_pages(cache_dir, sleep):
    from likedgenres.config import Settings
    settings = Settings(cache_dir=cache_dir, request_delay=0.1)
    session = FakeSession(paging_handler(library(120)))
    make_api(session, settings, sleep=sleep).fetch_liked_songs()
    # Two pauses: after page 1 and page 2, none after the last
    assert sleep.calls == [0.1, 0.1]


# =============================================================================
# Batch artist resolver
# =============================================================================

def artists_handler(genres_by_id, fail_chunks=(), rate_limit_once=(), drop_ids=()):
    """Serve /artists?ids=...; chunk index counted per distinct request."""
    state = {"seen": [], "limited": set()}

    def handler(url, params):
        ids = params["ids"].split(",")
        key = tuple(ids)
        if key not in state["seen"]:
            state["seen"].append(key)
        index = state["seen"].index(key)
        if index in rate_limit_once and index not in state["limited"]:
            state["limited"].add(index)
            return FakeResponse(429, None, {"Retry-After": "2"})
        if index in fail_chunks:
            return FakeResponse(503, {"error": "unavailable"})
        artists = []
        for aid in ids:
            if aid in drop_ids:
                artists.append(None)
                continue
            artist = {"id": aid, "name": aid}
            if aid in genres_by_id:
                artist["genres"] = genres_by_id[aid]
            artists.append(artist)
        return FakeResponse(200, {"artists": artists})

    return handler


def test_resolver_dedupes_filters_and_chunks(settings):
    ids = [f"a{i}" for i in range(120)] + ["a0", "", None, "a5"]
    session = FakeSession(artists_handler({"a1": ["pop"]}))

    result = make_api(session, settings).artist_genres(ids)

    assert list(result) == [f"a{i}" for i in range(120)]
    assert result["a1"] == ["pop"]
    assert result["a2"] == []
    sizes = [len(c["params"]["ids"].split(",")) for c in session.calls]
    assert sizes == [50, 50, 20]


def test_resolver_is_total_when_chunks_fail(settings):
    ids = [f"a{i}" for i in range(110)]
    session = FakeSession(artists_handler({"a60": ["rock"], "a0": ["jazz"]}, fail_chunks={1}))

    result = make_api(session, settings).artist_genres(ids)

    assert set(result) == set(ids)
    assert result["a0"] == ["jazz"]
    assert result["a60"] == []


def test_resolver_retries_rate_limited_chunk_only(settings, sleep):
    ids = [f"a{i}" for i in range(110)]
    session = FakeSession(artists_handler({"a55": ["house"]}, rate_limit_once={1}))
    progress = []

    result = make_api(session, settings, sleep=sleep).artist_genres(
        ids, on_progress=lambda c, t: progress.append((c, t)))

    assert result["a55"] == ["house"]
    assert progress == [(1, 3), (2, 3), (3, 3)]
    assert len(session.calls) == 4
    assert session.calls[1]["params"]["ids"] == session.calls[2]["params"]["ids"]
    assert sleep.calls == [2]


def test_resolver_progress_once_per_chunk_even_on_failure(settings):
    ids = [f"a{i}" for i in range(150)]
    session = FakeSession(artists_handler({}, fail_chunks={0, 2}))
    progress = []
    make_api(session, settings).artist_genres(ids, on_progress=lambda c, t: progress.append((c, t)))
    assert progress == [(1, 3), (2, 3), (3, 3)]


def test_resolver_gives_up_on_persistent_rate_limit(settings, sleep):
    session = FakeSession(lambda url, params: FakeResponse(429, None, {"Retry-After": "1"}))
    result = make_api(session, settings, sleep=sleep).artist_genres(["a", "b"])
    assert result == {"a": [], "b": []}
    assert len(session.calls) == settings.max_rate_limit_retries + 1


def test_resolver_handles_missing_artists_and_malformed_body(settings):
    session = FakeSession(artists_handler({"x": ["pop"]}, drop_ids={"y"}))
    assert make_api(session, settings).artist_genres(["x", "y"]) == {"x": ["pop"], "y": []}

    session = FakeSession(lambda url, params: FakeResponse(200, {"nope": []}))
    assert make_api(session, settings).artist_genres(["x"]) == {"x": []}


def test_resolver_treats_malformed_genres_as_empty(settings):
    def handler(url, params):
        return FakeResponse(200, {"artists": [
            {"id": "x", "genres": "pop"},
            {"id": "y", "genres": ["rock", None, 3]},
            {"id": "z", "genres": {"name": "jazz"}},
        ]})

    result = make_api(FakeSession(handler), settings).artist_genres(["x", "y", "z"])
    assert result == {"x": [], "y": ["rock"], "z": []}


def test_resolver_empty_input(settings):
    session = FakeSession(artists_handler({}))
    assert make_api(session, settings).artist_genres([None, ""]) == {}
    assert session.calls == []


def test_inter_chunk_delay_only_with_multiple_chunks(cache_dir, sleep):
    from likedgenres.config import Settings
    settings = Settings(cache_dir=cache_dir, request_delay=0.1)

    make_api(FakeSession(artists_handler({})), settings, sleep=sleep).artist_genres(["a", "b"])
    assert sleep.calls == []

    make_api(FakeSession(artists_handler({})), settings, sleep=sleep).artist_genres([f"a{i}" for i in range(60)])
    assert sleep.calls == [0.1, 0.1]


# =============================================================================
# Profile & playlist export
# =============================================================================

def test_current_user_errors_are_fatal(settings):
    session = FakeSession(lambda url, params: FakeResponse(401, {"error": "expired"}))
    with pytest.raises(UpstreamUnavailable):
        make_api(session, settings).current_user()

    session = FakeSession(lambda url, params: FakeResponse(200, {"display_name": "no id"}))
    with pytest.raises(MalformedResponse):
        make_api(session, settings).current_user()


def test_export_playlist_chunks_uris(settings):
    session = FakeSession(lambda url, params: FakeResponse(200, {"id": "user1"}))
    sp = MagicMock()
    sp.user_playlist_create.return_value = {"id": "pl1", "external_urls": {"spotify": "https://open.spotify.com/playlist/pl1"}}
    api = SpotifyApi("token", settings, session=session, sleep=lambda s: None, sp=sp)
    uris = [f"spotify:track:{i}" for i in range(230)]

    result = api.export_playlist("Mix", uris, description="desc", public=False)

    sp.user_playlist_create.assert_called_once_with("user1", "Mix", public=False, description="desc")
    batches = [call.args[1] for call in sp.playlist_add_items.call_args_list]
    assert [len(b) for b in batches] == [100, 100, 30]
    assert sum(batches, []) == uris
    assert result.playlist_id == "pl1"
    assert result.playlist_url == "https://open.spotify.com/playlist/pl1"
    assert result.track_count == 230


def test_export_playlist_failure_raises(settings):
    session = FakeSession(lambda url, params: FakeResponse(200, {"id": "user1"}))
    sp = MagicMock()
    sp.user_playlist_create.side_effect = spotipy.SpotifyException(403, -1, "forbidden")
    api = SpotifyApi("token", settings, session=session, sp=sp)

    with pytest.raises(PlaylistExportError):
        api.export_playlist("Mix", ["spotify:track:1"])
