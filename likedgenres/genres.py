"""
Genre label normalization, spam filtering and query matching.

Spotify artist genres and Last.fm tags spell the same genre in many ways
("R&B", "r and b", "rnb"). Every comparison in this module goes through
to_search_key(), which folds case, punctuation, whitespace and the known
aliases into one canonical alphanumeric key.

Query syntax (free text):
    "rnb, phonk | trap"     include any of rnb, phonk, trap
    "rock, -pop, !live"     include rock, drop anything tagged pop or live

Include and exclude terms match as substrings of a song's genre keys, so
"rock" matches "Hard Rock" and "hop" matches "Hip Hop".
"""

import re
from typing import Iterable, List, Sequence

from .models import GenreQuery

# Number-ish "genres" like: "100", "-100", "3s", "3-5", "1-2-3"
_SPAM_PATTERNS = [
    re.compile(r"^-?\d+$"),
    re.compile(r"^-?\d+s$"),
    re.compile(r"^\d+\s*-\s*\d+$"),
    re.compile(r"^-?\d+(?:-\d+)+$"),
]

_TERM_SPLIT = re.compile(r"[,|]+")
_EXCLUDE_PREFIXES = ("-", "!")


def to_search_key(label: str) -> str:
    """Canonical matching key for a genre label.

    >>> to_search_key("R&B") == to_search_key("R and B") == "rnb"
    True
    >>> to_search_key("Lo-Fi Hip Hop")
    'lofihiphop'
    """
    t = (label or "").lower().strip()
    if not t:
        return ""

    # Normalize common separators/aliases
    t = t.replace("&", " and ").replace("+", " and ")
    t = re.sub(r"\s+", " ", t).strip()

    t = re.sub(r"[^a-z0-9]", "", t)

    # r&b / r and b / randb -> rnb
    return t.replace("randb", "rnb")


def is_spam_label(label: str) -> bool:
    """True for empty or purely numeric labels (counts, decades, ranges)."""
    t = (label or "").strip().lower()
    if not t:
        return True
    return any(p.match(t) for p in _SPAM_PATTERNS)


def filter_genre_labels(labels: Iterable[str]) -> List[str]:
    return [label for label in labels if not is_spam_label(label)]


def merge_genre_labels(*label_lists: Iterable[str]) -> List[str]:
    """Concatenate label lists in order, keeping the first label per search key.

    Spam labels are dropped. The original casing of the first occurrence
    is what gets displayed.
    """
    seen = set()
    merged = []
    for labels in label_lists:
        for label in labels or []:
            if is_spam_label(label):
                continue
            key = to_search_key(label)
            if not key or key in seen:
                continue
            seen.add(key)
            merged.append(label.strip())
    return merged


def _split_terms(text: str) -> List[str]:
    return [part.strip() for part in _TERM_SPLIT.split(text or "") if part.strip()]


def parse_genre_query_terms(text: str) -> List[str]:
    """All terms as search keys, de-duplicated, include/exclude ignored."""
    seen = set()
    out = []
    for term in _split_terms(text):
        key = to_search_key(term)
        if key and key not in seen:
            seen.add(key)
            out.append(key)
    return out


def parse_genre_query(text: str) -> GenreQuery:
    """Parse free text into include/exclude search keys.

    Terms are separated by commas or pipes. A term starting with "-" or
    "!" is an exclude term. Each list keeps first-seen order without
    duplicates; terms that normalize to nothing are dropped.
    """
    include: List[str] = []
    exclude: List[str] = []

    for term in _split_terms(text):
        is_exclude = term.startswith(_EXCLUDE_PREFIXES)
        cleaned = term[1:].strip() if is_exclude else term
        key = to_search_key(cleaned)
        if not key:
            continue
        target = exclude if is_exclude else include
        if key not in target:
            target.append(key)

    return GenreQuery(include=tuple(include), exclude=tuple(exclude))


def song_matches_query(genres: Sequence[str], query: GenreQuery) -> bool:
    """Does a song with these genre labels satisfy `query`?

    - an empty query matches everything
    - include terms: at least one must be a substring of some genre key
      (a song without genres can never satisfy an include term)
    - exclude terms: any hit rejects the song, include hits notwithstanding
    """
    if query.is_empty:
        return True

    genre_keys = [k for k in (to_search_key(g) for g in genres or []) if k]

    if query.include:
        if not genre_keys:
            return False
        if not any(term in g for term in query.include for g in genre_keys):
            return False

    return not any(term in g for term in query.exclude for g in genre_keys)


def filter_songs(songs: Iterable, query_text: str) -> list:
    """Keep songs (anything with a `.genres` sequence) matching `query_text`."""
    query = parse_genre_query(query_text)
    return [song for song in songs if song_matches_query(song.genres, query)]


def available_genres(songs: Iterable) -> List[str]:
    """Sorted distinct non-spam labels across `songs`, for a genre picker."""
    labels = set()
    for song in songs:
        labels.update(filter_genre_labels(song.genres))
    return sorted(labels)
