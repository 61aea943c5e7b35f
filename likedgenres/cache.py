"""
Persistent API response cache.

Each entry lives in its own JSON file under the cache directory, named by
the SHA-256 of its key, so entries survive process restarts and can be
inspected or deleted by hand. Reads fail closed: a missing, expired,
unreadable or corrupt entry is simply a miss. Writes are best effort.

Usage:
    cache = ResponseCache(Path("data/.api_cache"), ttl_seconds=24 * 3600)
    key = make_cache_key(url, "GET", {"Authorization": f"Bearer {token}"})
    entry = cache.get(key)
    if entry is None:
        ...
        cache.set(key, data, dict(resp.headers))
"""

from __future__ import annotations

import hashlib
import json
import os
import re
import tempfile
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Mapping, Optional

from .errors import CacheIOError
from .log import log, verbose_log

DEFAULT_TTL_SECONDS = 24 * 3600
ENTRY_SUFFIX = ".json"
# sha256 hex digest + suffix; anything else in the directory is not ours
_ENTRY_NAME = re.compile(r"[0-9a-f]{64}\.json")


@dataclass(frozen=True)
class CacheEntry:
    key: str
    response: Any
    headers: dict = field(default_factory=dict)
    stored_at: float = 0.0


@dataclass(frozen=True)
class CacheStats:
    count: int
    total_size_bytes: int


def make_cache_key(url: str, method: str = "GET", headers: Optional[Mapping[str, str]] = None) -> str:
    """Derive a stable cache key from request URL, method and headers.

    Header order does not matter. Because the Authorization header is part
    of the key, entries are naturally scoped to one bearer credential.
    """
    options = {
        "method": (method or "GET").upper(),
        "headers": dict(headers) if headers else None,
    }
    return url + json.dumps(options, sort_keys=True, separators=(",", ":"))


class ResponseCache:
    """Directory-backed key -> {response, headers, stored_at} store with a TTL."""

    def __init__(self, directory, ttl_seconds: float = DEFAULT_TTL_SECONDS,
                 clock: Callable[[], float] = time.time):
        self.dir = Path(directory)
        self.ttl_seconds = ttl_seconds
        self._clock = clock

    def _path_for(self, key: str) -> Path:
        digest = hashlib.sha256(key.encode("utf-8")).hexdigest()
        return self.dir / f"{digest}{ENTRY_SUFFIX}"

    def _is_expired(self, stored_at: float) -> bool:
        return self._clock() - stored_at > self.ttl_seconds

    def _read(self, path: Path) -> dict:
        try:
            with open(path, "r", encoding="utf-8") as f:
                record = json.load(f)
        except (OSError, ValueError) as e:
            raise CacheIOError(f"Could not read cache entry {path.name}: {e}") from e
        if not isinstance(record, dict) or "stored_at" not in record or "response" not in record:
            raise CacheIOError(f"Cache entry {path.name} has an unexpected layout")
        if not isinstance(record.get("headers") or {}, dict):
            raise CacheIOError(f"Cache entry {path.name} has malformed headers")
        return record

    def get(self, key: str) -> Optional[CacheEntry]:
        """Return the live entry for `key`, or None.

        Never raises: read errors are logged and treated as a miss. An
        expired entry is removed on the spot and reported as a miss.
        """
        path = self._path_for(key)
        if not path.exists():
            return None
        try:
            record = self._read(path)
            stored_at = float(record["stored_at"])
        except (CacheIOError, TypeError, ValueError) as e:
            log(f"⚠️  Cache read error: {e}")
            return None

        if record.get("key") != key:
            # sha256 collision or foreign file; not ours
            return None

        if self._is_expired(stored_at):
            verbose_log(f"Cache entry expired: {key[:80]}")
            self._remove(path)
            return None

        headers = record.get("headers") or {}
        return CacheEntry(key=key, response=record["response"], headers=dict(headers), stored_at=stored_at)

    def set(self, key: str, response: Any, headers: Optional[Mapping[str, str]] = None) -> None:
        """Persist `response` under `key`. Failures are logged, never raised."""
        record = {
            "key": key,
            "response": response,
            "headers": dict(headers or {}),
            "stored_at": self._clock(),
        }
        try:
            self._write(self._path_for(key), record)
        except CacheIOError as e:
            log(f"⚠️  Cache write error: {e}")

    def _write(self, path: Path, record: dict) -> None:
        tmp_name = None
        try:
            self.dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=self.dir, prefix=".tmp-", suffix=ENTRY_SUFFIX)
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record, f, ensure_ascii=False)
            # Atomic on POSIX and Windows; readers never see a half-written file
            os.replace(tmp_name, path)
        except (OSError, TypeError, ValueError) as e:
            if tmp_name and os.path.exists(tmp_name):
                self._remove(Path(tmp_name))
            raise CacheIOError(f"Could not write cache entry {path.name}: {e}") from e

    def _remove(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            log(f"⚠️  Could not remove cache entry {path.name}: {e}")

    def _entry_paths(self):
        if not self.dir.exists():
            return []
        return [p for p in self.dir.glob(f"*{ENTRY_SUFFIX}") if _ENTRY_NAME.fullmatch(p.name)]

    def clear(self) -> None:
        """Remove every entry in the cache directory."""
        for path in self._entry_paths():
            self._remove(path)

    def stats(self) -> CacheStats:
        count = 0
        total = 0
        for path in self._entry_paths():
            try:
                total += path.stat().st_size
            except OSError:
                # Removed concurrently
                continue
            count += 1
        return CacheStats(count=count, total_size_bytes=total)
